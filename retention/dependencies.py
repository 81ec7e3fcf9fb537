"""
Processing-order advisory.

Processing order is the operator's contract: archive parents before children,
purge children before parents. The engine never reorders jobs. This module
only reads the store's foreign keys and reports jobs whose declared order
contradicts them, so the run can log a warning.
"""
from typing import Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError

from retention.jobs import Action, JobDefinition

TableKey = Tuple[Optional[str], str]


def _parents_of(inspector, key: TableKey, cache: Dict[TableKey, Set[TableKey]]) -> Set[TableKey]:
    if key not in cache:
        schema, table = key
        try:
            fks = inspector.get_foreign_keys(table, schema=schema)
        except NoSuchTableError:
            fks = []
        cache[key] = {
            (fk.get("referred_schema") or schema, fk["referred_table"])
            for fk in fks
            if fk.get("referred_table")
        }
    return cache[key]


def _pairs_out_of_order(inspector, by_table, cache, parent_first: bool):
    for child_key, child_jobs in by_table.items():
        for parent_key in _parents_of(inspector, child_key, cache):
            if parent_key == child_key or parent_key not in by_table:
                continue
            for child in child_jobs:
                for parent in by_table[parent_key]:
                    child_pos = (child.processing_order, child.id)
                    parent_pos = (parent.processing_order, parent.id)
                    if parent_first and child_pos < parent_pos:
                        yield parent, child
                    elif not parent_first and parent_pos < child_pos:
                        yield parent, child


def check_processing_order(jobs: Sequence[JobDefinition], engine: Engine) -> List[str]:
    """Return one advisory per parent/child pair whose jobs run in the wrong order."""
    inspector = inspect(engine)
    cache: Dict[TableKey, Set[TableKey]] = {}
    archive_sources: Dict[TableKey, List[JobDefinition]] = {}
    archive_targets: Dict[TableKey, List[JobDefinition]] = {}
    purges: Dict[TableKey, List[JobDefinition]] = {}

    for job in jobs:
        if job.dry_run:
            continue
        if job.action is Action.COPY_THEN_DELETE:
            archive_sources.setdefault((job.source_schema, job.source_table), []).append(job)
            # Remote targets are not visible to this inspector.
            if job.target_store is None:
                archive_targets.setdefault((job.target_schema, job.target_table), []).append(job)
        else:
            purges.setdefault((job.source_schema, job.source_table), []).append(job)

    advisories = []
    seen = set()
    for by_table in (archive_sources, archive_targets):
        for parent, child in _pairs_out_of_order(inspector, by_table, cache, parent_first=True):
            if (parent.id, child.id) in seen:
                continue
            seen.add((parent.id, child.id))
            advisories.append(
                f"ARCHIVE job {child.id} ({child.source}) runs before ARCHIVE job "
                f"{parent.id} ({parent.source}) which it references; archive parents first"
            )
    for parent, child in _pairs_out_of_order(inspector, purges, cache, parent_first=False):
        advisories.append(
            f"DELETE job {parent.id} ({parent.source}) runs before DELETE job "
            f"{child.id} ({child.source}) which references it; purge children first"
        )
    return advisories

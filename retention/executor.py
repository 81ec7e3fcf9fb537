"""
Runs one retire job to completion.

The cutoff is computed once per job. In dry-run mode a single count query is
issued. Otherwise bounded batches run until one affects no rows, each batch
in its own unit of work:

  ARCHIVE: fetch up to batch_size qualifying rows, insert them into the
           target, delete exactly those rows (by primary key) from the source.
  DELETE:  delete up to batch_size qualifying rows by primary key.

Store I/O runs in a worker thread so the event loop (scheduler, admin API)
keeps serving while a batch is in flight.

A failed batch is rolled back and the error propagates; batches committed
before it stay committed, so the next run resumes where this one stopped.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import Table

from core.connectors import CutoffPredicate, StoreConnector
from core.errors import ConservationError, JobConfigurationError
from core.pacer import BatchPacer
from core.transaction import TransactionCoordinator
from retention.jobs import BatchPlan, JobDefinition, JobOutcome

logger = logging.getLogger(__name__)


class BatchExecutor:
    def __init__(self, pacer: Optional[BatchPacer] = None):
        self.pacer = pacer or BatchPacer()

    async def run_job(self, job: JobDefinition, source: StoreConnector,
                      target: Optional[StoreConnector], now: datetime) -> JobOutcome:
        cutoff = now - timedelta(days=job.retention_days)
        predicate = CutoffPredicate(job.date_column, cutoff)
        plan = job.plan

        source_table = await asyncio.to_thread(source.reflect, job.source)
        predicate.check(source_table)

        logger.info(
            f"[JOB] {job.id} {job.label} {job.source} (cutoff={cutoff.isoformat()}, batch_size={job.batch_size})"
        )

        if plan is BatchPlan.COUNT_ONLY:
            rows = await asyncio.to_thread(source.count, source_table, predicate)
            logger.info(f"[JOB] {job.id} dry run: {rows} rows qualify")
            return JobOutcome(rows_affected=rows, label=job.label)

        source.primary_key(source_table)
        target_table = None
        if plan is BatchPlan.COPY_THEN_DELETE:
            if target is None:
                raise JobConfigurationError(f"Job {job.id} has no target store")
            target_table = await asyncio.to_thread(target.reflect, job.target)
            self._check_copy_target(source_table, target_table)

        total = 0
        batches = []
        while True:
            if self.pacer.expired():
                logger.warning(
                    f"[JOB] {job.id} run deadline reached after {len(batches)} batches; "
                    f"{total} rows committed, remainder left for the next run"
                )
                return JobOutcome(total, job.label, tuple(batches), stopped_early=True)

            affected = await asyncio.to_thread(
                self._run_batch, job, plan, source, target, source_table, target_table, predicate
            )
            batches.append(affected)
            logger.debug(f"[BATCH] job={job.id} batch={len(batches)} rows={affected}")
            if affected == 0:
                break
            total += affected
            await self.pacer.wait()

        logger.info(f"[JOB] {job.id} finished: {total} rows in {len(batches) - 1} batches")
        return JobOutcome(total, job.label, tuple(batches))

    def _run_batch(self, job: JobDefinition, plan: BatchPlan, source: StoreConnector,
                   target: Optional[StoreConnector], source_table: Table,
                   target_table: Optional[Table], predicate: CutoffPredicate) -> int:
        cross_store = plan is BatchPlan.COPY_THEN_DELETE and target is not source
        coordinator = TransactionCoordinator(distributed=cross_store)
        try:
            if cross_store:
                # Target first: a best-effort commit then duplicates rather than loses rows.
                target_unit = target.join_transaction(coordinator)
                source_unit = source.join_transaction(coordinator)
            else:
                source_unit = source.join_transaction(coordinator)
                target_unit = source_unit

            if plan is BatchPlan.COPY_THEN_DELETE:
                rows = source.fetch_batch(source_unit, source_table, predicate, job.batch_size)
                keys = source.row_keys(source_table, rows)
                key_names = [c.name for c in source.primary_key(source_table)]
                archived = target.fetch_by_keys(target_unit, target_table, key_names, keys)
                fresh = self._unarchived_rows(job, rows, keys, archived)
                inserted = target.insert_rows(target_unit, target_table, fresh)
                deleted = source.delete_keys(source_unit, source_table, keys)
                if deleted != inserted + len(archived):
                    raise ConservationError(
                        f"Batch copied {inserted} rows to {job.target} "
                        f"({len(archived)} already there) but deleted {deleted} from {job.source}"
                    )
                affected = deleted
            else:
                affected = source.delete_batch(source_unit, source_table, predicate, job.batch_size)
        except Exception:
            coordinator.rollback()
            raise

        coordinator.commit()
        return affected

    @staticmethod
    def _unarchived_rows(job: JobDefinition, rows: Sequence[Dict[str, Any]], keys: Sequence[Tuple],
                         archived: Dict[Tuple, Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Rows not yet in the target. A row already archived by an earlier batch
        whose source delete never committed is only removed from the source;
        a different row under the same key is a conflict.
        """
        fresh = []
        for row, key in zip(rows, keys):
            existing = archived.get(key)
            if existing is None:
                fresh.append(row)
                continue
            if any(existing[name] != value for name, value in row.items() if name in existing):
                raise ConservationError(
                    f"Key {key} already exists in {job.target} with different values"
                )
        if archived:
            logger.warning(
                f"[BATCH] job={job.id} {len(archived)} rows already in {job.target}; "
                f"removing them from {job.source} only"
            )
        return fresh

    @staticmethod
    def _check_copy_target(source_table: Table, target_table: Table):
        missing = [c for c in source_table.c.keys() if c not in target_table.c]
        if missing:
            raise JobConfigurationError(
                f"Target {target_table.fullname} is missing source columns: {', '.join(missing)}"
            )

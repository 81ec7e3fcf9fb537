"""
Job definitions and outcomes.

`JobPayload` is what an administrator writes into the catalog; `JobDefinition`
is the same thing read back with its id. The validators run both when the
admin API accepts a row and again when the engine loads it.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from core.connectors import TableLocator
from core.identifiers import validate_identifier, validate_optional_identifier

ERROR_LABEL = "ERROR"
DRY_RUN_PREFIX = "TEST-"


class Action(str, Enum):
    """Catalog action tokens."""
    COPY_THEN_DELETE = "ARCHIVE"
    DELETE_ONLY = "DELETE"


class BatchPlan(Enum):
    """The closed set of query templates a job can run."""
    COPY_THEN_DELETE = "copy_then_delete"
    DELETE_ONLY = "delete_only"
    COUNT_ONLY = "count_only"


class JobPayload(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    source_schema: Optional[str] = None
    source_table: str
    date_column: str
    target_store: Optional[str] = None
    target_schema: Optional[str] = None
    target_table: Optional[str] = None
    retention_days: int
    batch_size: int = 5000
    action: Action
    dry_run: bool = False
    processing_order: int = 1
    is_enabled: bool = True
    notes: Optional[str] = None

    @field_validator("source_schema")
    @classmethod
    def _check_source_schema(cls, v):
        return validate_optional_identifier(v, "source schema")

    @field_validator("source_table")
    @classmethod
    def _check_source_table(cls, v):
        return validate_identifier(v, "source table")

    @field_validator("date_column")
    @classmethod
    def _check_date_column(cls, v):
        return validate_identifier(v, "date column")

    @field_validator("retention_days", "batch_size")
    @classmethod
    def _check_positive(cls, v, info):
        if v is None or v <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return v

    @model_validator(mode="after")
    def _check_target(self):
        # Target fields only matter for ARCHIVE; DELETE ignores them entirely.
        if self.action is Action.COPY_THEN_DELETE:
            if not self.target_table:
                raise ValueError("ARCHIVE jobs require a target table")
            validate_identifier(self.target_table, "target table")
            validate_optional_identifier(self.target_schema, "target schema")
            validate_optional_identifier(self.target_store, "target store alias")
        return self

    @property
    def source(self) -> TableLocator:
        return TableLocator(self.source_schema, self.source_table)

    @property
    def target(self) -> Optional[TableLocator]:
        if self.action is not Action.COPY_THEN_DELETE:
            return None
        return TableLocator(self.target_schema, self.target_table)

    @property
    def remote_alias(self) -> Optional[str]:
        if self.action is not Action.COPY_THEN_DELETE:
            return None
        return self.target_store

    @property
    def plan(self) -> BatchPlan:
        if self.dry_run:
            return BatchPlan.COUNT_ONLY
        if self.action is Action.COPY_THEN_DELETE:
            return BatchPlan.COPY_THEN_DELETE
        return BatchPlan.DELETE_ONLY

    @property
    def label(self) -> str:
        """Action label written to the execution log on success."""
        if self.dry_run:
            return DRY_RUN_PREFIX + self.action.value
        return self.action.value


class JobDefinition(JobPayload):
    id: int


@dataclass
class JobOutcome:
    rows_affected: int
    label: str
    batches: Tuple[int, ...] = ()
    stopped_early: bool = False


@dataclass
class RunSummary:
    run_number: int
    jobs_processed: int = 0
    jobs_failed: int = 0
    rows_affected: int = 0
    advisories: List[str] = field(default_factory=list)

    def as_dict(self):
        return {
            "run_number": self.run_number,
            "jobs_processed": self.jobs_processed,
            "jobs_failed": self.jobs_failed,
            "rows_affected": self.rows_affected,
            "advisories": list(self.advisories),
        }

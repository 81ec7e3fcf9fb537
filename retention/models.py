"""
SQLAlchemy models for the job catalog, the execution log and the sample
operational schema.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Numeric,
    Boolean, ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# Job Catalog
# ============================================================================

class RetireJob(Base):
    """A retirement rule: which expired rows to archive or purge, and how."""
    __tablename__ = "retire_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Source
    source_schema = Column(String(128))                        # NULL = store default schema
    source_table = Column(String(128), nullable=False)
    date_column = Column(String(128), nullable=False)

    # Target (ARCHIVE only)
    target_store = Column(String(128))                         # Remote store alias, NULL = local
    target_schema = Column(String(128))
    target_table = Column(String(128))

    # Rules
    retention_days = Column(Integer, nullable=False)
    batch_size = Column(Integer, nullable=False, default=5000)
    action = Column(String(10), nullable=False)                # ARCHIVE, DELETE
    dry_run = Column(Boolean, nullable=False, default=False)   # Count only
    processing_order = Column(Integer, nullable=False, default=1)
    is_enabled = Column(Boolean, nullable=False, default=True)
    notes = Column(Text)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("action IN ('ARCHIVE', 'DELETE')", name="ck_retire_jobs_action"),
        Index("ix_retire_jobs_order", "is_enabled", "processing_order", "id"),
    )

    def __repr__(self):
        return f"<RetireJob {self.id} {self.action} {self.source_table} (order={self.processing_order})>"


# ============================================================================
# Execution Log
# ============================================================================

class ExecutionLogEntry(Base):
    """One outcome per (run, job). Append-only."""
    __tablename__ = "execution_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_number = Column(Integer, nullable=False)
    job_id = Column(Integer, nullable=False)                   # No FK: the log outlives deleted jobs
    action = Column(String(20), nullable=False)                # ARCHIVE, DELETE, TEST-ARCHIVE, TEST-DELETE, ERROR
    table_name = Column(String(300))
    rows_affected = Column(Integer, nullable=False, default=0)
    is_dry_run = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    duration_ms = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)

    __table_args__ = (
        Index("ix_execution_log_run", "run_number"),
        Index("ix_execution_log_job", "job_id", "started_at"),
    )

    def __repr__(self):
        return f"<ExecutionLogEntry run={self.run_number} job={self.job_id} {self.action} rows={self.rows_affected}>"


# ============================================================================
# Sample Operational Schema (seed only, never created by init_db)
# ============================================================================

SampleBase = declarative_base()


class Customer(SampleBase):
    __tablename__ = "Customers"

    CustomerID = Column(Integer, primary_key=True, autoincrement=True)
    FirstName = Column(String(50))
    LastName = Column(String(50))
    Email = Column(String(100))
    CreatedDate = Column(DateTime, default=utcnow)
    UpdatedDate = Column(DateTime)


class Order(SampleBase):
    __tablename__ = "Orders"

    OrderID = Column(Integer, primary_key=True, autoincrement=True)
    CustomerID = Column(Integer, ForeignKey("Customers.CustomerID"), nullable=False)
    OrderDate = Column(DateTime, default=utcnow)               # Business date
    TotalAmount = Column(Numeric(10, 2))
    CreatedDate = Column(DateTime, default=utcnow)
    UpdatedDate = Column(DateTime)

    customer = relationship("Customer")


class OrderDetail(SampleBase):
    __tablename__ = "OrderDetails"

    OrderDetailID = Column(Integer, primary_key=True, autoincrement=True)
    OrderID = Column(Integer, ForeignKey("Orders.OrderID"), nullable=False)
    ProductName = Column(String(100))
    Quantity = Column(Integer)
    UnitPrice = Column(Numeric(10, 2))
    CreatedDate = Column(DateTime, default=utcnow)
    UpdatedDate = Column(DateTime)

    order = relationship("Order")


class AuditLog(SampleBase):
    """Standalone table, no relationships."""
    __tablename__ = "AuditLog"

    LogID = Column(Integer, primary_key=True, autoincrement=True)
    ActionType = Column(String(50))
    TableName = Column(String(50))
    RecordID = Column(Integer)
    ActionDate = Column(DateTime, default=utcnow)
    Details = Column(Text)


class OrderArchive(SampleBase):
    __tablename__ = "Orders_Archive"

    OrderID = Column(Integer, primary_key=True, autoincrement=False)
    CustomerID = Column(Integer)
    OrderDate = Column(DateTime)
    TotalAmount = Column(Numeric(10, 2))
    CreatedDate = Column(DateTime)
    UpdatedDate = Column(DateTime)
    ArchivedDate = Column(DateTime, server_default=func.current_timestamp())


class OrderDetailArchive(SampleBase):
    __tablename__ = "OrderDetails_Archive"

    OrderDetailID = Column(Integer, primary_key=True, autoincrement=False)
    OrderID = Column(Integer, ForeignKey("Orders_Archive.OrderID"))
    ProductName = Column(String(100))
    Quantity = Column(Integer)
    UnitPrice = Column(Numeric(10, 2))
    CreatedDate = Column(DateTime)
    UpdatedDate = Column(DateTime)
    ArchivedDate = Column(DateTime, server_default=func.current_timestamp())


class AuditLogArchive(SampleBase):
    __tablename__ = "AuditLog_Archive"

    LogID = Column(Integer, primary_key=True, autoincrement=False)
    ActionType = Column(String(50))
    TableName = Column(String(50))
    RecordID = Column(Integer)
    ActionDate = Column(DateTime)
    Details = Column(Text)
    ArchivedDate = Column(DateTime, server_default=func.current_timestamp())

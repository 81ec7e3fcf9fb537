from datetime import datetime, timedelta

import pytest
from sqlalchemy import Column, DateTime, ForeignKey, Integer, MetaData, String, Table, func, select
from sqlalchemy.orm import sessionmaker

from core.pacer import BatchPacer
from retention.database import init_db, make_engine
from retention.executor import BatchExecutor
from retention.models import RetireJob

NOW = datetime(2026, 1, 1, 12, 0, 0)


def events_table(metadata, name="events", schema=None, primary_key=True, archived=False):
    columns = [
        Column("id", Integer, primary_key=primary_key, autoincrement=False),
        Column("created_at", DateTime, nullable=False),
        Column("payload", String(50)),
    ]
    if archived:
        columns.append(Column("archived_at", DateTime, server_default=func.current_timestamp()))
    return Table(name, metadata, *columns, schema=schema)


def create_events(engine, name="events", schema=None, primary_key=True, archived=False):
    metadata = MetaData()
    table = events_table(metadata, name, schema, primary_key, archived)
    metadata.create_all(engine)
    return table


def fill_events(engine, table, old=55, recent=45, retention_days=10, now=NOW, start_id=1):
    """`old` rows older than the cutoff, `recent` rows newer."""
    rows = []
    for i in range(old):
        rows.append({"id": start_id + i, "created_at": now - timedelta(days=retention_days + 1, minutes=i),
                     "payload": f"old-{i}"})
    for i in range(recent):
        rows.append({"id": start_id + old + i, "created_at": now - timedelta(days=1, minutes=i),
                     "payload": f"recent-{i}"})
    with engine.begin() as conn:
        conn.execute(table.insert(), rows)


def count_rows(engine, table) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(table)).scalar()


def create_parent_child(engine, parent="Parents", child="Children"):
    """Two tables where child.parent_id references parent.id, each with a created_at column."""
    metadata = MetaData()
    parent_table = Table(
        parent, metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("created_at", DateTime, nullable=False),
    )
    child_table = Table(
        child, metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("parent_id", Integer, ForeignKey(f"{parent}.id"), nullable=False),
        Column("created_at", DateTime, nullable=False),
    )
    metadata.create_all(engine)
    return parent_table, child_table


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store_engine(tmp_path):
    """Operational store with the catalog and log tables."""
    engine = make_engine(f"sqlite:///{tmp_path / 'operational.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def archive_engine(tmp_path):
    """A second, separate store used as a remote archive."""
    engine = make_engine(f"sqlite:///{tmp_path / 'archive.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(store_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=store_engine)


@pytest.fixture
def executor():
    return BatchExecutor(BatchPacer(pause_seconds=0, deadline_seconds=None))


@pytest.fixture
def add_job(session_factory):
    """Insert a retire_jobs row directly (no validation) and return its id."""
    def _add(**fields):
        values = {
            "source_table": "events",
            "date_column": "created_at",
            "retention_days": 10,
            "batch_size": 30,
            "action": "DELETE",
            "processing_order": 1,
        }
        values.update(fields)
        session = session_factory()
        try:
            job = RetireJob(**values)
            session.add(job)
            session.commit()
            return job.id
        finally:
            session.close()
    return _add

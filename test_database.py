import pytest
from sqlalchemy import inspect

from conftest import count_rows, create_events, fill_events
from core.connectors import LocalConnector
from core.errors import IdentifierError, StoreResolutionError
from retention.database import make_engine, parse_attach_spec
from retention.jobs import JobDefinition
from retention.stores import StoreRegistry


def test_parse_attach_spec():
    assert parse_attach_spec("") == {}
    assert parse_attach_spec("archive=/data/a.db, cold = /data/c.db") == {
        "archive": "/data/a.db",
        "cold": "/data/c.db",
    }


@pytest.mark.parametrize("spec", ["archive", "archive=", "bad alias=/x.db"])
def test_parse_attach_spec_rejects_bad_entries(spec):
    with pytest.raises(ValueError):
        parse_attach_spec(spec)


def test_parse_attach_spec_alias_is_an_identifier():
    with pytest.raises(IdentifierError):
        parse_attach_spec('x"; DROP=/tmp/a.db')


def test_init_db_creates_catalog_tables(store_engine):
    tables = set(inspect(store_engine).get_table_names())
    assert {"retire_jobs", "execution_log"} <= tables


@pytest.mark.asyncio
async def test_archive_into_attached_database(tmp_path, executor, now):
    engine = make_engine(
        f"sqlite:///{tmp_path / 'ops.db'}",
        attach={"archive": str(tmp_path / "archive.db")},
    )
    source = create_events(engine)
    target = create_events(engine, "events", schema="archive")
    fill_events(engine, source)

    local = LocalConnector("local", engine)
    job = JobDefinition(
        id=1,
        source_table="events",
        date_column="created_at",
        target_schema="archive",
        target_table="events",
        retention_days=10,
        batch_size=40,
        action="ARCHIVE",
    )
    outcome = await executor.run_job(job, local, local, now)

    assert outcome.batches == (40, 15, 0)
    assert count_rows(engine, source) == 45
    assert count_rows(engine, target) == 55
    engine.dispose()


def test_registry_local_and_cache(store_engine, tmp_path):
    url = f"sqlite:///{tmp_path / 'remote.db'}"
    registry = StoreRegistry(local_engine=store_engine, environ={"RETENTION_STORE_COLD_URL": url})

    assert registry.resolve(None) is registry.local
    remote = registry.resolve("cold")
    assert remote.kind == "remote"
    assert registry.resolve("COLD") is remote
    registry.dispose()


@pytest.mark.parametrize("alias,environ", [
    ("missing", {}),
    ("bad alias", {}),
    ("broken", {"RETENTION_STORE_BROKEN_URL": "not a url"}),
])
def test_registry_resolution_errors(store_engine, alias, environ):
    registry = StoreRegistry(local_engine=store_engine, environ=environ)
    with pytest.raises(StoreResolutionError):
        registry.resolve(alias)


def test_local_connector_dispose_keeps_shared_engine(store_engine):
    table = create_events(store_engine)
    fill_events(store_engine, table, old=2, recent=1)

    LocalConnector("local", store_engine).dispose()

    assert count_rows(store_engine, table) == 3

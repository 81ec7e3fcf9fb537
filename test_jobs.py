import pytest
from pydantic import ValidationError

from retention.jobs import Action, BatchPlan, JobDefinition, JobPayload


def _job(**overrides):
    values = {
        "id": 1,
        "source_table": "Orders",
        "date_column": "OrderDate",
        "retention_days": 30,
        "action": "DELETE",
    }
    values.update(overrides)
    return JobDefinition(**values)


def test_defaults():
    job = _job()
    assert job.batch_size == 5000
    assert job.processing_order == 1
    assert job.dry_run is False
    assert job.action is Action.DELETE_ONLY


def test_plan_selection():
    assert _job().plan is BatchPlan.DELETE_ONLY
    assert _job(action="ARCHIVE", target_table="Orders_Archive").plan is BatchPlan.COPY_THEN_DELETE
    assert _job(dry_run=True).plan is BatchPlan.COUNT_ONLY
    assert _job(action="ARCHIVE", target_table="Orders_Archive", dry_run=True).plan is BatchPlan.COUNT_ONLY


def test_labels():
    assert _job().label == "DELETE"
    assert _job(dry_run=True).label == "TEST-DELETE"
    assert _job(action="ARCHIVE", target_table="A").label == "ARCHIVE"
    assert _job(action="ARCHIVE", target_table="A", dry_run=True).label == "TEST-ARCHIVE"


def test_archive_requires_target_table():
    with pytest.raises(ValidationError):
        _job(action="ARCHIVE")


def test_delete_ignores_target_fields():
    job = _job(target_store="not valid!", target_table="also bad;")
    assert job.target is None
    assert job.remote_alias is None


def test_archive_target_and_alias():
    job = _job(action="ARCHIVE", target_store="ARCHIVE_SRV", target_schema="archive", target_table="Orders_Archive")
    assert job.target.qualified_name == "archive.Orders_Archive"
    assert job.remote_alias == "ARCHIVE_SRV"


@pytest.mark.parametrize("field", ["retention_days", "batch_size"])
@pytest.mark.parametrize("value", [0, -5])
def test_non_positive_values_rejected(field, value):
    with pytest.raises(ValidationError):
        _job(**{field: value})


@pytest.mark.parametrize("field,value", [
    ("source_table", "Orders; DELETE FROM Customers"),
    ("source_schema", "dbo.x"),
    ("date_column", "OrderDate)"),
])
def test_unsafe_identifiers_rejected(field, value):
    with pytest.raises(ValidationError):
        _job(**{field: value})


def test_unsafe_target_rejected_for_archive():
    with pytest.raises(ValidationError):
        _job(action="ARCHIVE", target_table="Orders_Archive", target_store="srv;drop")


def test_unknown_action_rejected():
    with pytest.raises(ValidationError):
        _job(action="TRUNCATE")


def test_payload_has_no_id():
    payload = JobPayload(source_table="AuditLog", date_column="ActionDate", retention_days=90, action="DELETE")
    assert "id" not in payload.model_dump()

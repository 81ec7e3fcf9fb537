from conftest import create_parent_child
from retention.dependencies import check_processing_order
from retention.jobs import JobDefinition


def _job(job_id, table, action="DELETE", order=1, **extra):
    return JobDefinition(
        id=job_id,
        source_table=table,
        date_column="created_at",
        retention_days=30,
        action=action,
        processing_order=order,
        **extra,
    )


def test_purge_children_first_is_clean(store_engine):
    create_parent_child(store_engine)
    jobs = [_job(1, "Children", order=1), _job(2, "Parents", order=2)]
    assert check_processing_order(jobs, store_engine) == []


def test_purge_parent_first_is_flagged(store_engine):
    create_parent_child(store_engine)
    jobs = [_job(1, "Parents", order=1), _job(2, "Children", order=2)]
    [advisory] = check_processing_order(jobs, store_engine)
    assert "purge children first" in advisory


def test_same_order_falls_back_to_id(store_engine):
    create_parent_child(store_engine)
    jobs = [_job(5, "Parents", order=1), _job(4, "Children", order=1)]
    assert check_processing_order(jobs, store_engine) == []


def test_archive_child_first_is_flagged(store_engine):
    create_parent_child(store_engine)
    jobs = [
        _job(1, "Children", action="ARCHIVE", order=1, target_table="Children_Archive"),
        _job(2, "Parents", action="ARCHIVE", order=2, target_table="Parents_Archive"),
    ]
    [advisory] = check_processing_order(jobs, store_engine)
    assert "archive parents first" in advisory


def test_local_archive_targets_are_checked(store_engine):
    # Sources unrelated, archive tables linked by a foreign key.
    create_parent_child(store_engine, "Parents_Archive", "Children_Archive")
    jobs = [
        _job(1, "Children", action="ARCHIVE", order=1, target_table="Children_Archive"),
        _job(2, "Parents", action="ARCHIVE", order=2, target_table="Parents_Archive"),
    ]
    assert len(check_processing_order(jobs, store_engine)) == 1


def test_dry_run_jobs_are_ignored(store_engine):
    create_parent_child(store_engine)
    jobs = [_job(1, "Parents", order=1, dry_run=True), _job(2, "Children", order=2)]
    assert check_processing_order(jobs, store_engine) == []


def test_unrelated_or_missing_tables(store_engine):
    jobs = [_job(1, "Nowhere", order=2), _job(2, "Elsewhere", order=1)]
    assert check_processing_order(jobs, store_engine) == []

from unittest.mock import AsyncMock, patch

import pytest

import retention.__main__ as cli
import retention.database as database
import retention.orchestrator as orchestrator
from core.errors import CatalogError, StoreResolutionError
from retention.jobs import RunSummary


@pytest.fixture(autouse=True)
def no_init_db(monkeypatch):
    monkeypatch.setattr(database, "init_db", lambda bind=None: None)


def test_run_exits_zero_even_when_jobs_fail(capsys):
    summary = RunSummary(run_number=4, jobs_processed=3, jobs_failed=2, rows_affected=7)
    with patch.object(orchestrator, "run_all", new=AsyncMock(return_value=summary)) as run_all:
        assert cli.main(["run"]) == 0
    run_all.assert_awaited_once()
    assert "Run 4: 3 jobs, 2 failed, 7 rows" in capsys.readouterr().out


@pytest.mark.parametrize("error", [CatalogError("log unwritable"), StoreResolutionError("unknown alias")])
def test_run_exits_one_on_fatal_error(error):
    with patch.object(orchestrator, "run_all", new=AsyncMock(side_effect=error)):
        assert cli.main(["run"]) == 1

"""
CLI and logging setup tests
"""

import json
import logging
import pytest
from sqlalchemy.orm import sessionmaker

import database
import planning_cli
from logging_conf import configure_logging
from planning_models import PlanningSegment, SegmentCode


@pytest.fixture
def cli(db_session, monkeypatch):
    """Route the CLI's sessions to the test database"""
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(bind=db_session.get_bind()))
    monkeypatch.setattr(planning_cli, "configure_logging", lambda level: None)
    return planning_cli.main


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.integration
class TestCommands:

    def test_bootstrap_then_report(self, cli, capsys):
        assert cli(["bootstrap", "--year", "2026", "--month", "2"]) == 0
        seeded = json.loads(capsys.readouterr().out)
        assert "RAIL" in seeded["segments"]

        assert cli(["report", "RAIL", "--year", "2026", "--month", "2", "--as-of", "2026-02-04"]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["segment"]["code"] == "RAIL"
        assert report["dashboard"]["completed_days"] == 3

    def test_summary_and_year_totals(self, cli, capsys):
        cli(["bootstrap", "--year", "2026", "--month", "2"])
        capsys.readouterr()

        assert cli(["summary", "--year", "2026", "--month", "2", "--segment", "RAIL"]) == 0
        rows = json.loads(capsys.readouterr().out)
        assert [r["segment_code"] for r in rows] == ["RAIL"]

        assert cli(["year-totals", "--year", "2026", "--segment", "MAINTENANCE"]) == 0
        totals = json.loads(capsys.readouterr().out)
        assert totals[0]["row_id"] == "MAINTENANCE:MAINTENANCE_PLAN"

    def test_set_base_plan(self, cli, capsys):
        cli(["bootstrap", "--year", "2026", "--month", "2"])
        capsys.readouterr()

        code = cli(["set-base-plan", "RAIL", "RAIL_PLAN", "--year", "2026", "--month", "1", "--value", "40"])

        assert code == 0
        carry = json.loads(capsys.readouterr().out)["carry_plans"]
        assert len(carry) == 12
        assert float(carry[0]) == 40

    def test_planning_errors_exit_with_code_2(self, cli, capsys):
        cli(["bootstrap", "--year", "2026", "--month", "2"])
        capsys.readouterr()

        code = cli(["report", "PORT", "--year", "2026", "--month", "2"])

        assert code == 2
        assert json.loads(capsys.readouterr().out)["error"] == "SegmentNotFoundError"

    def test_invalid_as_of_date(self, cli, capsys):
        code = cli(["report", "RAIL", "--year", "2026", "--month", "2", "--as-of", "04.02.2026"])

        assert code == 2
        assert json.loads(capsys.readouterr().out)["error"] == "InvalidPeriodError"

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            planning_cli.build_parser().parse_args([])


@pytest.mark.unit
class TestConfigureLogging:

    def test_single_handler_after_repeated_calls(self, restore_root_logger):
        configure_logging("DEBUG")
        configure_logging("DEBUG")

        assert len(restore_root_logger.handlers) == 1
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_invalid_level_falls_back_to_info(self, restore_root_logger):
        configure_logging("LOUD")

        assert restore_root_logger.level == logging.INFO


@pytest.mark.integration
class TestSessionScope:

    def test_bootstrap_with_invalid_month_exits_with_code_2(self, cli, capsys, db_session):
        code = cli(["bootstrap", "--year", "2026", "--month", "13"])

        assert code == 2
        assert json.loads(capsys.readouterr().out)["error"] == "InvalidPeriodError"
        assert db_session.query(PlanningSegment).count() == 0

    def test_failure_inside_scope_rolls_back(self, cli, db_session):
        with pytest.raises(RuntimeError):
            with database.session_scope() as db:
                db.add(PlanningSegment(code=SegmentCode.RAIL, name="Rail"))
                db.flush()
                raise RuntimeError("interrupted")

        assert db_session.query(PlanningSegment).count() == 0

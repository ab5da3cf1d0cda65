"""Tests for the checkpoint-qa command line."""

import json

import pytest
from typer.testing import CliRunner

from conftest import make_pre_flight, nice_to_have
from orchestrator import TestRunner
from pipeline.cli import app
from pipeline.config import reload_config
from schemas.session import SessionStatus
from sessions import JsonFileStore, SessionManager

cli = CliRunner()


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    """Point the CLI at an empty file store under tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CQA_STORAGE_BACKEND", "file")
    monkeypatch.setenv("CQA_STORAGE_DIR", str(tmp_path / "store"))
    monkeypatch.setenv("CQA_USER", "alice")
    monkeypatch.delenv("CQA_STORAGE_KEY", raising=False)
    reload_config()
    yield tmp_path / "store"
    monkeypatch.undo()
    reload_config()


def _manager(directory) -> SessionManager:
    manager = SessionManager(JsonFileStore(directory))
    manager.initialize()
    return manager


@pytest.fixture
def seeded(storage_dir):
    """A stored session in testing with one passed and one rejected checkpoint."""
    runner = TestRunner()
    session = runner.start_session("Patient check-in")
    runner.complete_pre_flight(make_pre_flight(3))
    runner.approve_checkpoint()
    runner.reject_checkpoint(nice_to_have())
    _manager(storage_dir).save_session(session)
    return session


def test_version(storage_dir):
    """version prints the package version and storage backend."""
    result = cli.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "Checkpoint QA" in result.output
    assert "Storage: file" in result.output


def test_sessions_empty(storage_dir):
    result = cli.invoke(app, ["sessions"])

    assert result.exit_code == 0
    assert "No sessions found" in result.output


def test_sessions_lists_seeded(seeded):
    """Stored sessions are listed with progress."""
    result = cli.invoke(app, ["sessions", "--status", "testing"])

    assert result.exit_code == 0
    assert "Test Sessions" in result.output
    assert "2/3" in result.output

    result = cli.invoke(app, ["sessions", "--status", "completed"])
    assert "No sessions found" in result.output


def test_show(seeded):
    """show prints checkpoints and feedback."""
    result = cli.invoke(app, ["show", seeded.id])

    assert result.exit_code == 0
    assert "action 1" in result.output
    assert "Label is misaligned" in result.output


def test_show_unknown(storage_dir):
    """Unknown ids exit with an error."""
    result = cli.invoke(app, ["show", "missing"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_resume_summary(seeded):
    result = cli.invoke(app, ["resume-summary", seeded.id])

    assert result.exit_code == 0
    assert "Status: testing" in result.output
    assert "Next checkpoint: 3. action 3" in result.output


def test_export_import_delete(seeded, tmp_path):
    """A session exported to a file imports under a new id and can be deleted."""
    export_path = tmp_path / "export.json"

    result = cli.invoke(app, ["export", seeded.id, "--output", str(export_path)])
    assert result.exit_code == 0
    assert json.loads(export_path.read_text())["session"]["id"] == seeded.id

    result = cli.invoke(app, ["import", str(export_path)])
    assert result.exit_code == 0
    assert "Imported as" in result.output

    result = cli.invoke(app, ["delete", seeded.id, "--yes"])
    assert result.exit_code == 0

    remaining = _manager(tmp_path / "store").sessions
    assert len(remaining) == 1
    assert remaining[0].imported_from == seeded.id


def test_import_bad_file(storage_dir, tmp_path):
    """A file that is not an export is refused."""
    path = tmp_path / "bad.json"
    path.write_text('{"nope": true}')

    result = cli.invoke(app, ["import", str(path)])

    assert result.exit_code == 1
    assert "Invalid export file" in result.output


def test_handoff_writes_package(seeded, tmp_path):
    """handoff prints next steps and writes the package."""
    output = tmp_path / "handoff.json"

    result = cli.invoke(app, ["handoff", seeded.id, "--notes", "over to you", "-o", str(output)])

    assert result.exit_code == 0
    assert "LOW" in result.output
    package = json.loads(output.read_text())
    assert package["prepared_by"] == "alice"
    assert package["notes"] == "over to you"


def test_run_auto_approve(storage_dir):
    """A full run with an interview and auto-approval completes and is saved."""
    answers = "\n".join(
        [
            "Let patients check in",  # scope
            "1",  # users
            "Open kiosk",  # step 1 action
            "Welcome screen shows",  # step 1 expected
            "Enter date of birth",  # step 2 action
            "",  # step 2 expected
            "",  # finish steps
            "Name, DOB",  # data
            "",  # validation
            "",  # integration
            "n",  # flag ambiguity
        ]
    )

    result = cli.invoke(app, ["run", "Patient check-in", "--auto-approve"], input=answers + "\n")

    assert result.exit_code == 0, result.output
    sessions = _manager(storage_dir).sessions
    assert len(sessions) == 1
    assert sessions[0].status == SessionStatus.COMPLETED
    assert sessions[0].summary.passed == 2


def test_run_requires_feature(storage_dir):
    result = cli.invoke(app, ["run"])
    assert result.exit_code == 1

"""Summary: Tests for the command-line interface.

Importance: Confirms the fixture command drives the full pipeline from the CLI.
Alternatives: Only test services directly.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

from triageflow.cli import run_cli


REPO_ROOT = Path(__file__).resolve().parents[1]


def test_cli_sort_fixture_and_progress(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Summary: Register an account, sort the fixture mailbox, and read progress.

    Importance: Exercises the offline demo path end to end.
    Alternatives: Invoke the CLI in a subprocess.
    """

    (tmp_path / "config").mkdir()
    shutil.copy(REPO_ROOT / "config" / "defaults.json", tmp_path / "config" / "defaults.json")
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("TRIAGEFLOW_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("TRIAGEFLOW_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("TRIAGEFLOW_CLASSIFIER_PACING_MS", "0")

    run_cli(["add-account", "--email", "owner@example.com", "--name", "Owner", "--plan", "pro", "--onboarded"])
    run_cli(["sort-fixture", "--account-id", "1", "--fixture", str(REPO_ROOT / "data" / "mock_messages.json")])
    run_cli(["progress", "--account-id", "1"])
    output = capsys.readouterr().out
    assert "Registered account 1" in output
    assert "completed: 6 new of 6 candidates, processed=6 labelled=5" in output
    assert "status: completed" in output

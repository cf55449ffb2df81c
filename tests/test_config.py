"""Summary: Tests for configuration loading.

Importance: Ensures defaults, .env, and environment overrides behave correctly.
Alternatives: Validate configuration manually during runtime.
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path

import pytest

from triageflow.config import AppConfig, load_defaults, load_dotenv


REPO_DEFAULTS = Path(__file__).resolve().parents[1] / "config" / "defaults.json"


def test_load_defaults_reads_json(tmp_path: Path) -> None:
    """Summary: Verify defaults are parsed from JSON.

    Importance: Confirms config file is the source of truth for variables.
    Alternatives: Hardcode defaults in the test.
    """

    defaults_path = tmp_path / "defaults.json"
    defaults_path.write_text(json.dumps({"db_path": "test.db"}), encoding="utf-8")
    assert load_defaults(defaults_path)["db_path"] == "test.db"


def test_load_defaults_requires_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_defaults(tmp_path / "missing.json")


def test_load_dotenv_sets_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Ensure .env values populate environment variables.

    Importance: Validates local secret loading without external tools.
    Alternatives: Assume OS environment is always set.
    """

    env_path = tmp_path / ".env"
    env_path.write_text("# local\nTRIAGEFLOW_AI_PROVIDER=ollama\n", encoding="utf-8")
    monkeypatch.delenv("TRIAGEFLOW_AI_PROVIDER", raising=False)
    load_dotenv(env_path)
    assert os.getenv("TRIAGEFLOW_AI_PROVIDER") == "ollama"


def test_app_config_uses_defaults_and_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Verify AppConfig honors defaults and environment overrides.

    Importance: Pipeline tuning values must come through typed.
    Alternatives: Inline defaults directly in the AppConfig class.
    """

    (tmp_path / "config").mkdir()
    shutil.copy(REPO_DEFAULTS, tmp_path / "config" / "defaults.json")
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("TRIAGEFLOW_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("TRIAGEFLOW_BATCH_SIZE", "10")
    monkeypatch.setenv("TRIAGEFLOW_BULK_PLANS", "business, pro ,")
    config = AppConfig.from_env()
    assert config.db_path == "triageflow.db"
    assert config.ai_provider == "mock"
    assert config.batch_size == 10
    assert config.pool_size == 5
    assert config.label_confidence_threshold == 0.6
    assert config.job_stale_after_seconds == 900
    assert config.bulk_plans == ("business", "pro")
    assert config.rate_limit_backend == "sqlite"

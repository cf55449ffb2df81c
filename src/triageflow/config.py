"""Summary: Application configuration for TriageFlow.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for providers, storage, and the sort pipeline.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    ai_provider: str
    openai_api_key: str | None
    openai_model: str
    ollama_url: str
    ollama_model: str
    api_host: str
    api_port: int
    api_key: str
    cron_secret: str
    google_client_id: str
    google_client_secret: str
    google_token_url: str
    token_secret: str
    bulk_max_messages: int = 5000
    batch_size: int = 20
    pool_size: int = 5
    label_confidence_threshold: float = 0.6
    classifier_pacing_ms: int = 100
    job_stale_after_seconds: int = 900
    rate_limit_backend: str = "sqlite"
    bulk_plans: tuple[str, ...] = ("pro", "business")

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("TRIAGEFLOW_DB_PATH", defaults["db_path"]),
            ai_provider=os.getenv("TRIAGEFLOW_AI_PROVIDER", defaults["ai_provider"]),
            openai_api_key=os.getenv("OPENAI_API_KEY") or defaults["openai_api_key"] or None,
            openai_model=os.getenv("OPENAI_MODEL", defaults["openai_model"]),
            ollama_url=os.getenv("OLLAMA_URL", defaults["ollama_url"]),
            ollama_model=os.getenv("OLLAMA_MODEL", defaults["ollama_model"]),
            api_host=os.getenv("TRIAGEFLOW_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("TRIAGEFLOW_API_PORT", defaults["api_port"])),
            api_key=os.getenv("TRIAGEFLOW_API_KEY", defaults["api_key"]),
            cron_secret=os.getenv("TRIAGEFLOW_CRON_SECRET", defaults["cron_secret"]),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", defaults["google_client_id"]),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", defaults["google_client_secret"]),
            google_token_url=os.getenv("GOOGLE_TOKEN_URL", defaults["google_token_url"]),
            token_secret=os.getenv("TRIAGEFLOW_TOKEN_SECRET", defaults["token_secret"]),
            bulk_max_messages=int(
                os.getenv("TRIAGEFLOW_BULK_MAX_MESSAGES", defaults["bulk_max_messages"])
            ),
            batch_size=int(os.getenv("TRIAGEFLOW_BATCH_SIZE", defaults["batch_size"])),
            pool_size=int(os.getenv("TRIAGEFLOW_POOL_SIZE", defaults["pool_size"])),
            label_confidence_threshold=float(
                os.getenv(
                    "TRIAGEFLOW_LABEL_CONFIDENCE_THRESHOLD",
                    defaults["label_confidence_threshold"],
                )
            ),
            classifier_pacing_ms=int(
                os.getenv("TRIAGEFLOW_CLASSIFIER_PACING_MS", defaults["classifier_pacing_ms"])
            ),
            job_stale_after_seconds=int(
                os.getenv(
                    "TRIAGEFLOW_JOB_STALE_AFTER_SECONDS", defaults["job_stale_after_seconds"]
                )
            ),
            rate_limit_backend=os.getenv(
                "TRIAGEFLOW_RATE_LIMIT_BACKEND", defaults["rate_limit_backend"]
            ),
            bulk_plans=_split_csv(os.getenv("TRIAGEFLOW_BULK_PLANS", defaults["bulk_plans"])),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())

"""Centralized configuration for the Agent Chat service.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/agent-chat/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 cannot reach
    SSM.  Errors are logged but never raised so that the local-dev fallback
    still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/agent-chat/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _optional_env(name: str, default: str | None = None) -> str | None:
    """Return a config value from env-var or SSM, or *default*."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value
    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value
    return default


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = _optional_env(name)
    if value:
        return value
    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /agent-chat/{name} (AWS)."
    )


# ── Environment ─────────────────────────────────────────────────────
APP_ENV: str = os.getenv("APP_ENV", "development")
IS_PRODUCTION: bool = APP_ENV == "production"

# ── LLM ─────────────────────────────────────────────────────────────
OPENAI_API_KEY: str = _require_env("OPENAI_API_KEY")
# Only needed when an agent is configured with a claude-* model
ANTHROPIC_API_KEY: str | None = _optional_env("ANTHROPIC_API_KEY")
DEFAULT_MODEL_NAME: str = os.getenv("DEFAULT_MODEL_NAME", "gpt-4.1")
DEFAULT_TEMPERATURE: float = float(os.getenv("DEFAULT_TEMPERATURE", "0.7"))
EMBEDDING_MODEL_NAME: str = os.getenv("EMBEDDING_MODEL_NAME", "text-embedding-3-large")

# ── Knowledge base (Supabase pgvector) ──────────────────────────────
# Checked lazily by the vector store so the API can boot without them.
SUPABASE_URL: str | None = _optional_env("SUPABASE_URL")
SUPABASE_ANON_KEY: str | None = _optional_env("SUPABASE_ANON_KEY")
MATCH_FUNCTION: str = os.getenv("MATCH_FUNCTION", "match_documents")
MATCH_COUNT: int = int(os.getenv("MATCH_COUNT", "3"))

RETRY_MAX_ATTEMPTS: int = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
RETRY_BASE_DELAY_SECONDS: float = float(os.getenv("RETRY_BASE_DELAY_SECONDS", "1.0"))

# ── Product extraction ──────────────────────────────────────────────
MAX_NAME_LENGTH: int = int(os.getenv("MAX_PRODUCT_NAME_LENGTH", "100"))
MAX_DESCRIPTION_LENGTH: int = int(os.getenv("MAX_PRODUCT_DESCRIPTION_LENGTH", "300"))

# ── Database ────────────────────────────────────────────────────────
DATABASE_URL: str = _optional_env("DATABASE_URL", "sqlite+aiosqlite:///./agentchat.db")
DB_ECHO: bool = os.getenv("DB_ECHO", "false").lower() == "true"

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")

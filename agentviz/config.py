"""agentviz configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    if not value or not value.strip():
        return default
    return Path(value.strip()).expanduser()


HOME_DIR = Path.home()

# Copilot CLI on-disk state
COPILOT_HOME = _env_path("AGENTVIZ_COPILOT_HOME", HOME_DIR / ".copilot")
SESSION_STATE_DIR = COPILOT_HOME / "session-state"
LOG_DIR = COPILOT_HOME / "logs"
DISMISSED_PATH = _env_path("AGENTVIZ_DISMISSED_PATH", HOME_DIR / ".agentviz-dismissed.json")

# Remote agent tasks
GH_BINARY = os.getenv("AGENTVIZ_GH_BINARY", "gh")
REPO_FILTER = os.getenv("AGENTVIZ_REPO", "").strip()
GH_TIMEOUT_SECONDS = _env_int("AGENTVIZ_GH_TIMEOUT_SECONDS", 30)
REMOTE_ENABLED = _env_bool("AGENTVIZ_REMOTE_ENABLED", True)

# Classification thresholds
ATTENTION_STALE_MINUTES = _env_int("AGENTVIZ_ATTENTION_STALE_MINUTES", 20)
# 0 disables the upper bound
ATTENTION_STALE_MAX_MINUTES = _env_int("AGENTVIZ_ATTENTION_STALE_MAX_MINUTES", 0)
FRESH_WINDOW_MINUTES = _env_int("AGENTVIZ_FRESH_WINDOW_MINUTES", 20)
QUIET_DUPLICATE_MINUTES = _env_int("AGENTVIZ_QUIET_DUPLICATE_MINUTES", 60)
TOKEN_USAGE_WINDOW_DAYS = _env_int("AGENTVIZ_TOKEN_USAGE_WINDOW_DAYS", 7)
DEFAULT_STATUS_FILTER = os.getenv("AGENTVIZ_DEFAULT_FILTER", "").strip().lower()

# Observability
OTEL_ENABLED = _env_bool("AGENTVIZ_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("AGENTVIZ_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("AGENTVIZ_OTEL_SERVICE_NAME", "agentviz")
PROM_PORT = _env_int("AGENTVIZ_PROM_PORT", 0)

# Server settings
HOST = os.getenv("AGENTVIZ_HOST", "127.0.0.1")
PORT = _env_int("AGENTVIZ_PORT", 8000)

# CORS
FRONTEND_ORIGIN = os.getenv("AGENTVIZ_FRONTEND_ORIGIN", "http://localhost:3000")

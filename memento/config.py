"""Central configuration for memento."""

import os
from pathlib import Path

# ── Paths ──────────────────────────────────────────────────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Load .env from project root
_env_path = _PROJECT_ROOT / ".env"
if _env_path.exists():
    for _line in _env_path.read_text().splitlines():
        _line = _line.strip()
        if _line and not _line.startswith("#") and "=" in _line:
            _k, _, _v = _line.partition("=")
            os.environ.setdefault(_k.strip(), _v.strip())


def _default_data_dir() -> Path:
    env = os.environ.get("MEMENTO_DATA_DIR")
    if env:
        return Path(env)
    if (_PROJECT_ROOT / "pyproject.toml").exists():
        return _PROJECT_ROOT / "data"
    return Path.home() / ".memento"


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


DATA_DIR = _default_data_dir()
DB_PATH = DATA_DIR / "memory.db"
LOG_PATH = DATA_DIR / "memento.log"
PID_PATH = DATA_DIR / "memento.pid"

# ── Ingestion ──────────────────────────────────────────────────────────
SAMPLE_INTERVAL = _float_env("MEMENTO_SAMPLE_INTERVAL", 2.0)  # seconds
CHROMIUM_TAB_TIMEOUT = 1  # seconds, osascript call for tab titles

# ── Search ─────────────────────────────────────────────────────────────
SEARCH_LIMIT = 100
RECENT_SEARCHES_MAX = 10
STATS_LIMIT = 20

# ── Daemon health ──────────────────────────────────────────────────────
HEALTH_HEARTBEAT_INTERVAL = 60

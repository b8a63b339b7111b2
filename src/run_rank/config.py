"""Configuration file management for run-rank.

Reads and writes ~/.run-rank/config.json for settings that don't belong in the DB
(database location, leaderboard size). XP rules live in the DB.
"""
from __future__ import annotations

import json
from pathlib import Path

DEFAULT_CONFIG_PATH: Path = Path.home() / ".run-rank" / "config.json"
DEFAULT_LEADERBOARD_SIZE = 3


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def get_db_path(config_path: Path | None = None) -> Path | None:
    """Return the configured database path, or None to use the default."""
    raw = load_config(config_path).get("db_path")
    if raw:
        return Path(raw).expanduser()
    return None


def set_db_path(db_path: Path, config_path: Path | None = None) -> None:
    """Persist the database path to config."""
    config = load_config(config_path)
    config["db_path"] = str(db_path)
    save_config(config, config_path)


def get_leaderboard_size(config_path: Path | None = None) -> int:
    """Number of ranked positions kept per title (top-N), at least 1."""
    raw = load_config(config_path).get("leaderboard_size", DEFAULT_LEADERBOARD_SIZE)
    try:
        size = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_LEADERBOARD_SIZE
    return max(1, size)


def set_leaderboard_size(size: int, config_path: Path | None = None) -> None:
    """Persist the top-N leaderboard size to config. Raises ValueError below 1."""
    if size < 1:
        raise ValueError(f"Leaderboard size must be at least 1, got {size}")
    config = load_config(config_path)
    config["leaderboard_size"] = int(size)
    save_config(config, config_path)

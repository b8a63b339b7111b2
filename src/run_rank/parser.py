"""Parse activity exports produced by the fitness-platform import adapter.

The adapter writes a JSON list (or {"activities": [...]}) of records with a
distance, a date and an external id. Distance is in km ("distance") or
meters ("distance_m"); dates may carry a time component, which is dropped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from run_rank.errors import InvalidActivityError

logger = logging.getLogger(__name__)


@dataclass
class ImportRecord:
    external_id: str
    date: str  # YYYY-MM-DD
    distance: float  # km


def parse_activity_date(raw: object) -> str:
    """Normalise a date or datetime string to YYYY-MM-DD.

    Raises InvalidActivityError if it can't be parsed.
    """
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidActivityError(f"Invalid date: {raw!r}")
    text = raw.strip()
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError as exc:
        raise InvalidActivityError(f"Invalid date: {raw!r}") from exc


def validate_distance(raw: object) -> float:
    """Return distance as a positive float in km, else raise InvalidActivityError."""
    if isinstance(raw, bool):
        raise InvalidActivityError(f"Invalid distance: {raw!r}")
    try:
        distance = float(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidActivityError(f"Invalid distance: {raw!r}") from exc
    if distance != distance or distance <= 0 or distance == float("inf"):
        raise InvalidActivityError(f"Invalid distance: {raw!r}")
    return distance


def parse_record(entry: dict) -> ImportRecord:
    """Parse one exported activity. Raises InvalidActivityError on bad data."""
    external_id = entry.get("external_id", entry.get("id"))
    if external_id is None or str(external_id) == "":
        raise InvalidActivityError("Missing external id")
    if "distance_m" in entry:
        distance = validate_distance(entry["distance_m"]) / 1000
    else:
        distance = validate_distance(entry.get("distance"))
    return ImportRecord(
        external_id=str(external_id),
        date=parse_activity_date(entry.get("date", entry.get("start_date_local"))),
        distance=distance,
    )


def parse_records(entries: list[dict]) -> tuple[list[ImportRecord], list[dict]]:
    """Parse raw entries. Returns (records, rejected) where rejected holds error details."""
    records: list[ImportRecord] = []
    rejected: list[dict] = []
    for entry in entries:
        if not isinstance(entry, dict):
            rejected.append({"entry": entry, "error": "Not an object"})
            continue
        try:
            records.append(parse_record(entry))
        except InvalidActivityError as exc:
            logger.warning("Skipping import record %r: %s", entry, exc)
            rejected.append({"entry": entry, "error": str(exc)})
    return records, rejected


def load_import_file(path: Path) -> list[dict]:
    """Read raw entries from an export file. Returns [] if missing or invalid."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return []
    if isinstance(raw, dict):
        raw = raw.get("activities", [])
    return raw if isinstance(raw, list) else []

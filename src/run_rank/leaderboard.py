"""Title leaderboard ranking for run-rank.

Ranks every user against each title, keeps the top-N per title, records
personal bests, and exports the grouped leaderboard as JSON.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from run_rank.config import DEFAULT_LEADERBOARD_SIZE
from run_rank.db import Database
from run_rank.titles import (
    TITLES,
    TitleDef,
    check_unlocked,
    compute_metric,
    get_title,
    qualified_since,
)

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1
# Sorts after any YYYY-MM-DD so candidates without a date lose ties
_NO_DATE = "9999-12-31"


def rank_candidates(candidates: list[dict], limit: int = DEFAULT_LEADERBOARD_SIZE) -> list[dict]:
    """Sort candidates by value descending and assign 1-based positions.

    Tie-break: earliest earned_at first, then user_id for a stable order.
    Returns at most `limit` entries with contiguous positions.
    """
    ordered = sorted(
        candidates,
        key=lambda c: (-c["value"], c.get("earned_at") or _NO_DATE, c["user_id"]),
    )
    ranked = []
    for i, candidate in enumerate(ordered[:limit]):
        ranked.append({**candidate, "position": i + 1})
    return ranked


def compute_candidates(db: Database, title: TitleDef) -> list[dict]:
    """Every user whose current metric meets the title's unlock requirement."""
    candidates = []
    for user in db.list_users():
        activities = db.list_activities(user["id"])
        if not activities:
            continue
        value = compute_metric(title.metric, activities)
        if not check_unlocked(title, value):
            continue
        candidates.append({
            "user_id": user["id"],
            "value": value,
            "earned_at": qualified_since(title.metric, activities, value),
        })
    return candidates


def achievement_value(db: Database, user_id: str, title_id: str, as_of: str | None = None) -> float:
    """A user's metric for a title using only activities dated on/before as_of."""
    title = get_title(title_id)
    return compute_metric(title.metric, db.list_activities(user_id), as_of=as_of)


def _record_personal_best(db: Database, title: TitleDef, candidate: dict, now: str) -> bool:
    """Upsert the user's title record when the value beats the stored one."""
    existing = db.get_user_title(candidate["user_id"], title.id)
    if existing is not None and existing["value"] >= candidate["value"]:
        return False
    db.upsert_user_title(candidate["user_id"], title.id, candidate["value"], now)
    return True


def refresh_title(
    db: Database,
    title: TitleDef,
    limit: int = DEFAULT_LEADERBOARD_SIZE,
    now: str | None = None,
) -> list[dict]:
    """Recompute one title's leaderboard and personal bests."""
    now = now or datetime.now(tz=timezone.utc).isoformat()
    with db.transaction():
        candidates = compute_candidates(db, title)
        ranked = rank_candidates(candidates, limit)
        db.replace_title_leaderboard(title.id, ranked)
        improved = sum(1 for c in candidates if _record_personal_best(db, title, c, now))
    logger.info(
        "Refreshed %s: %d qualifying, %d ranked, %d personal bests",
        title.id,
        len(candidates),
        len(ranked),
        improved,
    )
    return ranked


def refresh_titles(
    db: Database,
    titles: list[TitleDef] | None = None,
    limit: int = DEFAULT_LEADERBOARD_SIZE,
    now: str | None = None,
) -> dict[str, list[dict]]:
    """Refresh several titles (all by default). Returns ranked rows per title id."""
    return {
        title.id: refresh_title(db, title, limit=limit, now=now)
        for title in (titles or TITLES)
    }


def get_title_board(db: Database) -> list[dict]:
    """Grouped leaderboard: one dict per title with holder and runners-up."""
    board = []
    for title in TITLES:
        rows = db.get_title_leaderboard(title.id)
        holder = None
        runners_up = []
        for row in rows:
            entry = {
                "position": row["position"],
                "user_id": row["user_id"],
                "user_name": row.get("user_name"),
                "value": row["value"],
                "earned_at": row["earned_at"],
            }
            if row["position"] == 1:
                holder = entry
            else:
                runners_up.append(entry)
        board.append({
            "id": title.id,
            "name": title.name,
            "description": title.description,
            "unit": title.unit,
            "unlock_requirement": title.unlock_requirement,
            "holder": holder,
            "runners_up": runners_up,
        })
    return board


def get_user_titles(db: Database, user_id: str) -> list[dict]:
    """Titles a user places in, plus their personal best for every title reached."""
    positions = {row["title_id"]: row for row in db.get_user_leaderboard_positions(user_id)}
    bests = {row["title_id"]: row for row in db.get_user_titles(user_id)}
    result = []
    for title in TITLES:
        if title.id not in positions and title.id not in bests:
            continue
        ranked = positions.get(title.id)
        best = bests.get(title.id)
        result.append({
            "title_id": title.id,
            "title_name": title.name,
            "position": ranked["position"] if ranked else None,
            "value": ranked["value"] if ranked else None,
            "is_current_holder": bool(ranked and ranked["position"] == 1),
            "personal_best": best["value"] if best else None,
            "personal_best_at": best["earned_at"] if best else None,
        })
    return result


def build_snapshot(db: Database) -> dict:
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "titles": get_title_board(db),
    }


def write_snapshot(snapshot: dict, output_path: Path) -> None:
    """Write a leaderboard snapshot JSON to output_path using atomic write."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(dir=output_path.parent, suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, output_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_snapshot(path: Path) -> dict | None:
    """Read and validate a snapshot file. None if missing or invalid."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    if data.get("schema_version") != SNAPSHOT_SCHEMA_VERSION or "titles" not in data:
        return None
    return data

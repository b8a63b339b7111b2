"""MCP server for run-rank.

Exposes read-only run-rank stats and title boards as MCP tools.
Run via: python3 -m run_rank.mcp_server
"""
from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

mcp = FastMCP(name="run-rank")


def _get_db():
    from run_rank.config import get_db_path
    from run_rank.db import Database
    return Database(db_path=get_db_path())


@mcp.tool()
def get_user_stats(user_id: str) -> dict[str, Any]:
    """Get a runner's totals: XP, level progress, distance, runs and streaks."""
    db = _get_db()
    try:
        from run_rank.aggregate import load_level_thresholds
        from run_rank.levels import level_progress
        user = db.get_user(user_id)
        if user is None:
            return {"error": f"Unknown user {user_id!r}"}
        aggregate = db.get_user_aggregate(user_id)
        if not aggregate:
            return {"error": "No runs logged yet."}
        progress = level_progress(aggregate["total_xp"], load_level_thresholds(db))
        return {
            "user_id": user_id,
            "name": user["name"],
            "total_xp": aggregate["total_xp"],
            "total_distance": aggregate["total_distance"],
            "total_runs": aggregate["total_runs"],
            "current_streak": aggregate["current_streak"],
            "longest_streak": aggregate["longest_streak"],
            "level": progress["level"],
            "progress": round(progress["progress"], 1),
            "xp_to_next": progress["xp_to_next"],
        }
    finally:
        db.close()


@mcp.tool()
def get_recent_runs(user_id: str, limit: int = 10) -> list[dict[str, Any]]:
    """Get a runner's most recent runs with their XP breakdown."""
    db = _get_db()
    try:
        activities = db.list_activities(user_id)
        recent = list(reversed(activities))[:max(1, limit)]
        return [
            {
                "id": a["id"],
                "date": a["date"],
                "distance": a["distance"],
                "streak_day": a["streak_day"],
                "multiplier": a["multiplier"],
                "xp_gained": a["xp_gained"],
            }
            for a in recent
        ]
    finally:
        db.close()


@mcp.tool()
def get_title_leaderboard() -> list[dict[str, Any]]:
    """Get every title with its current holder and runners-up."""
    db = _get_db()
    try:
        from run_rank.leaderboard import get_title_board
        return get_title_board(db)
    finally:
        db.close()


@mcp.tool()
def get_user_titles(user_id: str) -> list[dict[str, Any]]:
    """Get the titles a runner ranks in and their personal bests."""
    db = _get_db()
    try:
        from run_rank.leaderboard import get_user_titles as _user_titles
        return _user_titles(db, user_id)
    finally:
        db.close()


if __name__ == "__main__":
    mcp.run()

"""SQLite database layer for run-rank."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".run-rank" / "data.db"

ACTIVITY_SCORE_FIELDS = (
    "base_xp",
    "distance_xp",
    "distance_bonus",
    "streak_day",
    "multiplier",
    "streak_bonus",
    "xp_gained",
)

RULE_FIELDS = (
    "base_xp",
    "xp_per_km",
    "bonus_5km",
    "bonus_10km",
    "bonus_15km",
    "bonus_20km",
    "min_run_distance",
)

AGGREGATE_FIELDS = (
    "total_xp",
    "total_distance",
    "total_runs",
    "current_streak",
    "longest_streak",
    "level",
)


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class Database:
    """SQLite record store with WAL mode.

    One connection shared across threads, guarded by a re-entrant lock.
    Writes commit immediately unless they run inside transaction().
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._lock = threading.RLock()
        self._depth = 0
        self.init_db()
        logger.debug("Opened database at %s", self.db_path)

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_admin BOOLEAN DEFAULT 0,
                created_at TEXT
            );

            CREATE TABLE IF NOT EXISTS activities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                date TEXT NOT NULL,
                distance REAL NOT NULL,
                source TEXT DEFAULT 'manual',
                external_id TEXT,
                base_xp INTEGER DEFAULT 0,
                distance_xp INTEGER DEFAULT 0,
                distance_bonus INTEGER DEFAULT 0,
                streak_day INTEGER DEFAULT 1,
                multiplier REAL DEFAULT 1.0,
                streak_bonus INTEGER DEFAULT 0,
                xp_gained INTEGER DEFAULT 0,
                created_at TEXT,
                UNIQUE (user_id, external_id)
            );

            CREATE INDEX IF NOT EXISTS idx_activities_user_date
                ON activities (user_id, date);

            CREATE TABLE IF NOT EXISTS rule_set (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                base_xp INTEGER,
                xp_per_km REAL,
                bonus_5km INTEGER,
                bonus_10km INTEGER,
                bonus_15km INTEGER,
                bonus_20km INTEGER,
                min_run_distance REAL
            );

            CREATE TABLE IF NOT EXISTS multiplier_tiers (
                days INTEGER PRIMARY KEY,
                multiplier REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS level_thresholds (
                level INTEGER PRIMARY KEY,
                xp_required INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_stats (
                user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
                total_xp INTEGER DEFAULT 0,
                total_distance REAL DEFAULT 0.0,
                total_runs INTEGER DEFAULT 0,
                current_streak INTEGER DEFAULT 0,
                longest_streak INTEGER DEFAULT 0,
                level INTEGER DEFAULT 1,
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS title_leaderboard (
                title_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                user_id TEXT NOT NULL,
                value REAL NOT NULL,
                earned_at TEXT,
                PRIMARY KEY (title_id, position)
            );

            CREATE TABLE IF NOT EXISTS user_titles (
                user_id TEXT NOT NULL,
                title_id TEXT NOT NULL,
                value REAL NOT NULL,
                earned_at TEXT,
                PRIMARY KEY (user_id, title_id)
            );
        """)
        self.conn.commit()

    # ── transactions ─────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Group writes into one commit. Nested calls join the outer transaction."""
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self.conn.rollback()
                raise
            self._depth -= 1
            if self._depth == 0:
                self.conn.commit()

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def _commit(self) -> None:
        if self._depth == 0:
            self.conn.commit()

    def _fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        with self._lock:
            row = self.conn.execute(sql, params).fetchone()
        return dict(row) if row else None

    def _fetchall(self, sql: str, params: tuple = ()) -> list[dict]:
        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def _write(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self.conn.execute(sql, params)
            self._commit()
        return cursor

    # ── users ────────────────────────────────────────────────────────────

    def create_user(self, user_id: str, name: str, is_admin: bool = False) -> dict:
        """Insert a user (no-op if the id exists) and return it."""
        self._write(
            "INSERT INTO users (id, name, is_admin, created_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(id) DO NOTHING",
            (user_id, name, int(is_admin), _now()),
        )
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> dict | None:
        return self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))

    def list_users(self) -> list[dict]:
        return self._fetchall("SELECT * FROM users ORDER BY id")

    def set_admin(self, user_id: str, is_admin: bool) -> None:
        self._write("UPDATE users SET is_admin = ? WHERE id = ?", (int(is_admin), user_id))

    # ── activities ───────────────────────────────────────────────────────

    def create_activity(
        self,
        user_id: str,
        date: str,
        distance: float,
        source: str = "manual",
        external_id: str | None = None,
    ) -> dict:
        """Insert an activity with empty derived fields and return it."""
        cursor = self._write(
            "INSERT INTO activities (user_id, date, distance, source, external_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (user_id, date, distance, source, external_id, _now()),
        )
        return self.get_activity(cursor.lastrowid)

    def get_activity(self, activity_id: int) -> dict | None:
        return self._fetchone("SELECT * FROM activities WHERE id = ?", (activity_id,))

    def find_activity_by_external_id(self, user_id: str, external_id: str) -> dict | None:
        return self._fetchone(
            "SELECT * FROM activities WHERE user_id = ? AND external_id = ?",
            (user_id, external_id),
        )

    def list_activities(self, user_id: str) -> list[dict]:
        """All activities of a user, ordered by date then insertion."""
        return self._fetchall(
            "SELECT * FROM activities WHERE user_id = ? ORDER BY date, id",
            (user_id,),
        )

    def update_activity(self, activity_id: int, **kwargs: object) -> None:
        """Update raw activity fields (date, distance)."""
        if not kwargs:
            return
        set_clause = ", ".join(f"{k} = ?" for k in kwargs)
        values = tuple(kwargs.values()) + (activity_id,)
        self._write(f"UPDATE activities SET {set_clause} WHERE id = ?", values)

    def write_activity_score(self, activity_id: int, score: dict) -> None:
        """Write all derived fields of an activity in a single update."""
        values = tuple(score[k] for k in ACTIVITY_SCORE_FIELDS) + (activity_id,)
        set_clause = ", ".join(f"{k} = ?" for k in ACTIVITY_SCORE_FIELDS)
        self._write(f"UPDATE activities SET {set_clause} WHERE id = ?", values)

    def delete_activity(self, activity_id: int) -> None:
        self._write("DELETE FROM activities WHERE id = ?", (activity_id,))

    # ── rules and reference data ─────────────────────────────────────────

    def get_rule_set(self) -> dict | None:
        """Stored admin XP settings, or None if never configured."""
        row = self._fetchone("SELECT * FROM rule_set WHERE id = 1")
        if row is None:
            return None
        row.pop("id", None)
        return row

    def set_rule_set(self, **kwargs: float) -> None:
        """Upsert admin XP settings. Unknown keys raise ValueError."""
        unknown = set(kwargs) - set(RULE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown rule fields: {', '.join(sorted(unknown))}")
        if not kwargs:
            return
        columns = ["id"] + list(kwargs.keys())
        placeholders = ", ".join(["?"] * len(columns))
        update = ", ".join(f"{k} = excluded.{k}" for k in kwargs)
        self._write(
            f"INSERT INTO rule_set ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {update}",
            (1,) + tuple(kwargs.values()),
        )

    def get_multiplier_tiers(self) -> list[dict]:
        return self._fetchall("SELECT days, multiplier FROM multiplier_tiers ORDER BY days")

    def set_multiplier_tiers(self, tiers: dict[int, float]) -> None:
        """Replace the multiplier tier table."""
        with self.transaction():
            self.conn.execute("DELETE FROM multiplier_tiers")
            self.conn.executemany(
                "INSERT INTO multiplier_tiers (days, multiplier) VALUES (?, ?)",
                sorted(tiers.items()),
            )

    def get_level_thresholds(self) -> list[dict]:
        return self._fetchall("SELECT level, xp_required FROM level_thresholds ORDER BY level")

    def set_level_thresholds(self, thresholds: list[dict]) -> None:
        """Replace the level threshold table."""
        with self.transaction():
            self.conn.execute("DELETE FROM level_thresholds")
            self.conn.executemany(
                "INSERT INTO level_thresholds (level, xp_required) VALUES (?, ?)",
                [(row["level"], row["xp_required"]) for row in thresholds],
            )

    # ── user aggregates ──────────────────────────────────────────────────

    def write_user_aggregate(self, user_id: str, aggregate: dict) -> None:
        """Upsert the full aggregate row for a user."""
        values = tuple(aggregate[k] for k in AGGREGATE_FIELDS)
        update = ", ".join(f"{k} = excluded.{k}" for k in AGGREGATE_FIELDS + ("updated_at",))
        self._write(
            f"INSERT INTO user_stats (user_id, {', '.join(AGGREGATE_FIELDS)}, updated_at) "
            f"VALUES ({', '.join(['?'] * (len(AGGREGATE_FIELDS) + 2))}) "
            f"ON CONFLICT(user_id) DO UPDATE SET {update}",
            (user_id,) + values + (_now(),),
        )

    def get_user_aggregate(self, user_id: str) -> dict | None:
        return self._fetchone("SELECT * FROM user_stats WHERE user_id = ?", (user_id,))

    # ── titles ───────────────────────────────────────────────────────────

    def replace_title_leaderboard(self, title_id: str, entries: list[dict]) -> None:
        """Replace all ranked rows for a title."""
        with self.transaction():
            self.conn.execute("DELETE FROM title_leaderboard WHERE title_id = ?", (title_id,))
            self.conn.executemany(
                "INSERT INTO title_leaderboard (title_id, position, user_id, value, earned_at) "
                "VALUES (?, ?, ?, ?, ?)",
                [
                    (title_id, e["position"], e["user_id"], e["value"], e.get("earned_at"))
                    for e in entries
                ],
            )

    def get_title_leaderboard(self, title_id: str) -> list[dict]:
        return self._fetchall(
            "SELECT tl.*, u.name AS user_name FROM title_leaderboard tl "
            "LEFT JOIN users u ON u.id = tl.user_id "
            "WHERE tl.title_id = ? ORDER BY tl.position",
            (title_id,),
        )

    def get_user_leaderboard_positions(self, user_id: str) -> list[dict]:
        return self._fetchall(
            "SELECT * FROM title_leaderboard WHERE user_id = ? ORDER BY position, title_id",
            (user_id,),
        )

    def upsert_user_title(self, user_id: str, title_id: str, value: float, earned_at: str) -> None:
        self._write(
            "INSERT INTO user_titles (user_id, title_id, value, earned_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(user_id, title_id) DO UPDATE SET "
            "value = excluded.value, earned_at = excluded.earned_at",
            (user_id, title_id, value, earned_at),
        )

    def get_user_title(self, user_id: str, title_id: str) -> dict | None:
        return self._fetchone(
            "SELECT * FROM user_titles WHERE user_id = ? AND title_id = ?",
            (user_id, title_id),
        )

    def get_user_titles(self, user_id: str) -> list[dict]:
        return self._fetchall(
            "SELECT * FROM user_titles WHERE user_id = ? ORDER BY title_id",
            (user_id,),
        )

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

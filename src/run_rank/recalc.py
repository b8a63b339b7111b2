"""Recalculation orchestrator for run-rank.

Every activity mutation re-derives the affected activity scores, the user's
totals and the title leaderboards. A user's rescoring and totals are written
in one transaction, and all work for one user is serialized by a per-user lock.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from run_rank.aggregate import UserAggregate, update_user_aggregate
from run_rank.config import DEFAULT_LEADERBOARD_SIZE
from run_rank.db import Database
from run_rank.errors import (
    ActivityNotFoundError,
    AggregateWriteError,
    PermissionDeniedError,
    RecalculationError,
    UserNotFoundError,
)
from run_rank.leaderboard import refresh_titles
from run_rank.parser import parse_activity_date, parse_records, validate_distance
from run_rank.xp import RuleSet, score_activity, score_history

logger = logging.getLogger(__name__)

RECALC_ATTEMPTS = 3


@dataclass
class ImportResult:
    imported: int = 0
    skipped_duplicates: int = 0
    failed: int = 0
    details: list[dict] = field(default_factory=list)


class Recalculator:
    """Applies activity mutations and keeps derived data consistent."""

    def __init__(
        self,
        db: Database,
        leaderboard_size: int = DEFAULT_LEADERBOARD_SIZE,
        clock: Callable[[], date] | None = None,
    ) -> None:
        self.db = db
        self.leaderboard_size = leaderboard_size
        self._clock = clock or date.today
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def today(self) -> str:
        return self._clock().isoformat()

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def _require_user(self, user_id: str) -> dict:
        user = self.db.get_user(user_id)
        if user is None:
            raise UserNotFoundError(f"Unknown user {user_id!r}")
        return user

    def _require_activity(self, activity_id: int, user_id: str | None) -> dict:
        activity = self.db.get_activity(activity_id)
        if activity is None:
            raise ActivityNotFoundError(f"Unknown activity {activity_id}")
        if user_id is not None and activity["user_id"] != user_id:
            raise PermissionDeniedError(f"Activity {activity_id} belongs to another user")
        return activity

    # ── configuration ────────────────────────────────────────────────────

    def load_rules(self) -> RuleSet:
        stored = self.db.get_rule_set()
        if stored is None:
            logger.warning("No rule set stored, using default XP rules")
        return RuleSet.from_dict(stored)

    def load_tiers(self) -> list[dict] | None:
        tiers = self.db.get_multiplier_tiers()
        if not tiers:
            logger.warning("No multiplier tiers stored, using default tiers")
            return None
        return tiers

    # ── scoring ──────────────────────────────────────────────────────────

    def reprocess_user(self, user_id: str) -> int:
        """Rescore all of a user's activities in date order. Returns how many changed."""
        activities = self.db.list_activities(user_id)
        rules = self.load_rules()
        tiers = self.load_tiers()
        changed = 0
        for activity, score in score_history(activities, rules, tiers):
            fields = score.as_fields()
            if any(activity.get(k) != v for k, v in fields.items()):
                changed += 1
            self.db.write_activity_score(activity["id"], fields)
            logger.debug(
                "Scored activity %s on %s: %.2f km, day %d, %.2fx, %d XP",
                activity["id"],
                activity["date"],
                activity["distance"],
                score.streak_day,
                score.multiplier,
                score.xp_gained,
            )
        logger.info("Reprocessed %d activities for %s (%d changed)", len(activities), user_id, changed)
        return changed

    def rescore_activity(self, activity: dict) -> None:
        """Rescore one activity, keeping its stored streak day and multiplier."""
        score = score_activity(
            activity["distance"],
            activity["streak_day"],
            self.load_rules(),
            multiplier=activity["multiplier"],
        )
        self.db.write_activity_score(activity["id"], score.as_fields())
        logger.debug("Rescored activity %s: %d XP", activity["id"], score.xp_gained)

    def _update_aggregate(self, user_id: str, activity_id: int | None) -> UserAggregate:
        try:
            return update_user_aggregate(self.db, user_id, today=self.today())
        except sqlite3.Error as exc:
            raise AggregateWriteError(user_id, activity_id, str(exc)) from exc

    def _settle(self, user_id: str, activity_id: int | None = None, mode: str = "full") -> UserAggregate:
        """Re-derive a user's data after a saved mutation.

        mode is "full" (replay all activities), "single" (rescore activity_id only)
        or "totals" (aggregate only). Titles are refreshed afterwards.
        """
        try:
            with self.db.transaction():
                if mode == "full":
                    self.reprocess_user(user_id)
                elif mode == "single":
                    self.rescore_activity(self.db.get_activity(activity_id))
                aggregate = self._update_aggregate(user_id, activity_id)
        except RecalculationError:
            logger.exception("Recalculation failed for %s", user_id)
            raise
        except Exception as exc:
            logger.exception("Recalculation failed for %s", user_id)
            raise RecalculationError(user_id, activity_id, str(exc)) from exc

        self._refresh_titles(user_id, activity_id)
        return aggregate

    def _refresh_titles(self, user_id: str, activity_id: int | None) -> None:
        try:
            refresh_titles(self.db, limit=self.leaderboard_size)
        except Exception as exc:
            logger.exception("Title refresh failed after change for %s", user_id)
            raise RecalculationError(user_id, activity_id, f"title refresh: {exc}") from exc

    # ── public operations ────────────────────────────────────────────────

    def recalculate_user(self, user_id: str) -> UserAggregate:
        """Full reprocess of one user. Safe to repeat."""
        with self._user_lock(user_id):
            self._require_user(user_id)
            return self._settle(user_id, mode="full")

    @retry(
        stop=stop_after_attempt(RECALC_ATTEMPTS),
        wait=wait_exponential(multiplier=0.1, max=2),
        retry=retry_if_exception_type(RecalculationError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def recalculate_user_with_retry(self, user_id: str) -> UserAggregate:
        return self.recalculate_user(user_id)

    def recalculate_all(self) -> dict[str, UserAggregate]:
        """Reprocess every user (e.g. after a rule change), then refresh titles once."""
        results: dict[str, UserAggregate] = {}
        for user in self.db.list_users():
            user_id = user["id"]
            with self._user_lock(user_id):
                try:
                    with self.db.transaction():
                        self.reprocess_user(user_id)
                        results[user_id] = self._update_aggregate(user_id, None)
                except RecalculationError:
                    raise
                except Exception as exc:
                    raise RecalculationError(user_id, None, str(exc)) from exc
        self._refresh_titles("*", None)
        return results

    def log_activity(
        self,
        user_id: str,
        run_date: object,
        distance: object,
        source: str = "manual",
        external_id: str | None = None,
    ) -> dict:
        """Save a new activity and rescore the user's history."""
        day = parse_activity_date(run_date)
        km = validate_distance(distance)
        with self._user_lock(user_id):
            self._require_user(user_id)
            activity = self.db.create_activity(user_id, day, km, source=source, external_id=external_id)
            logger.info("Logged %.2f km on %s for %s", km, day, user_id)
            self._settle(user_id, activity["id"], mode="full")
        return self.db.get_activity(activity["id"])

    def edit_activity(
        self,
        activity_id: int,
        distance: object = None,
        run_date: object = None,
        user_id: str | None = None,
    ) -> dict:
        """Change distance and/or date of an activity.

        A date change replays the user's whole history; a distance-only change
        rescores just this activity.
        """
        new_distance = validate_distance(distance) if distance is not None else None
        new_date = parse_activity_date(run_date) if run_date is not None else None

        owner = self._require_activity(activity_id, user_id)["user_id"]
        with self._user_lock(owner):
            # Re-read under the lock; a concurrent edit may have moved the activity
            existing = self._require_activity(activity_id, user_id)
            changes: dict[str, object] = {}
            if new_date is not None and new_date != existing["date"]:
                changes["date"] = new_date
            if new_distance is not None and new_distance != existing["distance"]:
                changes["distance"] = new_distance

            if "date" in changes:
                mode = "full"
            elif "distance" in changes:
                mode = "single"
            else:
                mode = "totals"

            self.db.update_activity(activity_id, **changes)
            logger.info(
                "Edited activity %s: %s %.2f km -> %s %.2f km (%s)",
                activity_id,
                existing["date"],
                existing["distance"],
                changes.get("date", existing["date"]),
                changes.get("distance", existing["distance"]),
                mode,
            )
            self._settle(owner, activity_id, mode=mode)
        return self.db.get_activity(activity_id)

    def delete_activity(self, activity_id: int, user_id: str | None = None) -> None:
        """Delete an activity and rescore the user's remaining history."""
        owner = self._require_activity(activity_id, user_id)["user_id"]
        with self._user_lock(owner):
            self._require_activity(activity_id, user_id)
            self.db.delete_activity(activity_id)
            logger.info("Deleted activity %s of %s", activity_id, owner)
            self._settle(owner, activity_id, mode="full")

    def import_activities(self, user_id: str, entries: list[dict]) -> ImportResult:
        """Import adapter records sequentially, then rescore once.

        Records already stored (same external id) or repeated in the batch are
        skipped. Invalid records are counted as failed.
        """
        records, rejected = parse_records(entries)
        result = ImportResult(failed=len(rejected))
        for item in rejected:
            result.details.append({"external_id": None, "status": "failed", "error": item["error"]})

        with self._user_lock(user_id):
            self._require_user(user_id)
            seen: set[str] = set()
            for record in records:
                duplicate = (
                    record.external_id in seen
                    or self.db.find_activity_by_external_id(user_id, record.external_id) is not None
                )
                seen.add(record.external_id)
                if duplicate:
                    result.skipped_duplicates += 1
                    result.details.append({"external_id": record.external_id, "status": "duplicate"})
                    continue
                self.db.create_activity(
                    user_id,
                    record.date,
                    record.distance,
                    source="import",
                    external_id=record.external_id,
                )
                result.imported += 1
                result.details.append({"external_id": record.external_id, "status": "imported"})

            logger.info(
                "Import for %s: %d imported, %d duplicates, %d failed",
                user_id,
                result.imported,
                result.skipped_duplicates,
                result.failed,
            )
            if result.imported:
                self._settle(user_id, None, mode="full")
        return result

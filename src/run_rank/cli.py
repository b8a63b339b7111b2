"""CLI commands for run-rank."""

from __future__ import annotations

import argparse
import logging
import math
import sys
from dataclasses import asdict
from datetime import date
from pathlib import Path

from run_rank.aggregate import load_level_thresholds
from run_rank.config import (
    get_db_path,
    get_leaderboard_size,
    load_config,
    set_db_path,
    set_leaderboard_size,
)
from run_rank.db import ACTIVITY_SCORE_FIELDS, RULE_FIELDS, Database
from run_rank.display import (
    console,
    print_activities,
    print_activity_result,
    print_config,
    print_error,
    print_import_result,
    print_rules,
    print_title_board,
    print_user_stats,
    print_user_titles,
    print_warning,
)
from run_rank.errors import (
    PermissionDeniedError,
    RecalculationError,
    RunRankError,
    UserNotFoundError,
)
from run_rank.leaderboard import build_snapshot, get_title_board, get_user_titles, write_snapshot
from run_rank.levels import level_progress
from run_rank.parser import load_import_file
from run_rank.recalc import Recalculator
from run_rank.xp import ActivityScore, RuleSet, format_breakdown, normalize_tiers

logger = logging.getLogger(__name__)

# Rules stored as whole XP amounts
INT_RULE_FIELDS = ("base_xp", "bonus_5km", "bonus_10km", "bonus_15km", "bonus_20km")


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="run-rank",
        description="Gamified running tracker: XP, streaks and titles",
    )
    parser.add_argument("--db", default=None, help="Path to the SQLite database")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More logging (-vv for debug)")
    subparsers = parser.add_subparsers(dest="command")

    user_p = subparsers.add_parser("user", help="Manage users")
    user_sub = user_p.add_subparsers(dest="user_command")
    user_add = user_sub.add_parser("add", help="Create a user")
    user_add.add_argument("user_id")
    user_add.add_argument("--name", "-n", default=None)
    user_add.add_argument("--admin", action="store_true", help="Grant the admin role")

    log_p = subparsers.add_parser("log", help="Log a run")
    log_p.add_argument("user_id")
    log_p.add_argument("distance", help="Distance in km")
    log_p.add_argument("--date", "-d", default=None, help="YYYY-MM-DD (default: today)")

    edit_p = subparsers.add_parser("edit", help="Edit a run")
    edit_p.add_argument("activity_id", type=int)
    edit_p.add_argument("--distance", default=None)
    edit_p.add_argument("--date", "-d", default=None)
    edit_p.add_argument("--user", "-u", default=None, help="Only edit if owned by this user")

    delete_p = subparsers.add_parser("delete", help="Delete a run")
    delete_p.add_argument("activity_id", type=int)
    delete_p.add_argument("--user", "-u", default=None, help="Only delete if owned by this user")

    import_p = subparsers.add_parser("import", help="Import runs exported by the fitness platform")
    import_p.add_argument("user_id")
    import_p.add_argument("file", help="JSON file of {external_id, date, distance} records")

    runs_p = subparsers.add_parser("runs", help="List a user's runs")
    runs_p.add_argument("user_id")

    stats_p = subparsers.add_parser("stats", help="Show a user's totals")
    stats_p.add_argument("user_id")

    titles_p = subparsers.add_parser("titles", help="Show title leaderboard")
    titles_p.add_argument("--user", "-u", default=None, help="Show titles for one user")

    export_p = subparsers.add_parser("export", help="Export title leaderboard as JSON")
    export_p.add_argument("--output", "-o", default="titles.json", help="Output file path")

    recalc_p = subparsers.add_parser("recalc", help="Recalculate derived stats")
    recalc_p.add_argument("user_id", nargs="?", default=None)
    recalc_p.add_argument("--all", action="store_true", dest="all_users", help="Recalculate every user")

    rules_p = subparsers.add_parser("rules", help="Show or change XP rules")
    rules_sub = rules_p.add_subparsers(dest="rules_command")
    rules_sub.add_parser("show", help="Show active rules and multiplier tiers")
    rules_set = rules_sub.add_parser("set", help="Change XP rules (admin only)")
    rules_set.add_argument("--as", dest="actor", required=True, help="Acting admin user id")
    rules_set.add_argument("values", nargs="+", help="key=value pairs, e.g. base_xp=20")
    tiers_set = rules_sub.add_parser("tiers", help="Replace multiplier tiers (admin only)")
    tiers_set.add_argument("--as", dest="actor", required=True, help="Acting admin user id")
    tiers_set.add_argument("values", nargs="+", help="days=multiplier pairs, e.g. 5=1.1")

    config_p = subparsers.add_parser("config", help="Show or change stored settings")
    config_p.add_argument("--db-path", default=None, help="Database location used when --db is not given")
    config_p.add_argument("--leaderboard-size", type=int, default=None, help="Ranked positions per title")
    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "config":
        try:
            do_config(db_path=args.db_path, leaderboard_size=args.leaderboard_size)
        except RunRankError as exc:
            print_error(str(exc))
            return 1
        return 0

    db_path = Path(args.db) if args.db else get_db_path()
    db = Database(db_path=db_path)
    recalc = Recalculator(db, leaderboard_size=get_leaderboard_size())

    try:
        _dispatch(args, db, recalc)
    except RecalculationError as exc:
        print_warning(str(exc))
        return 2
    except RunRankError as exc:
        print_error(str(exc) or exc.__class__.__name__)
        return 1
    finally:
        db.close()
    return 0


def _dispatch(args: argparse.Namespace, db: Database, recalc: Recalculator) -> None:
    command = args.command
    if command == "user" and args.user_command == "add":
        do_user_add(db, args.user_id, name=args.name, is_admin=args.admin)
    elif command == "log":
        do_log(recalc, args.user_id, args.distance, run_date=args.date)
    elif command == "edit":
        do_edit(recalc, args.activity_id, distance=args.distance, run_date=args.date, user_id=args.user)
    elif command == "delete":
        do_delete(recalc, args.activity_id, user_id=args.user)
    elif command == "import":
        do_import(recalc, args.user_id, Path(args.file))
    elif command == "runs":
        do_runs(db, args.user_id)
    elif command == "stats":
        do_stats(db, args.user_id)
    elif command == "titles":
        do_titles(db, user_id=args.user)
    elif command == "export":
        do_export(db, Path(args.output))
    elif command == "recalc":
        do_recalc(recalc, user_id=args.user_id, all_users=args.all_users)
    elif command == "rules":
        if args.rules_command == "set":
            do_rules_set(recalc, args.actor, args.values)
        elif args.rules_command == "tiers":
            do_tiers_set(recalc, args.actor, args.values)
        else:
            do_rules_show(db)


def do_config(
    db_path: str | None = None,
    leaderboard_size: int | None = None,
    config_path: Path | None = None,
) -> dict:
    """Update the settings file, then show what it holds."""
    if db_path:
        set_db_path(Path(db_path).expanduser().resolve(), config_path)
    if leaderboard_size is not None:
        try:
            set_leaderboard_size(leaderboard_size, config_path)
        except ValueError as exc:
            raise RunRankError(str(exc)) from exc
    config = load_config(config_path)
    print_config(config)
    return config


def require_admin(db: Database, user_id: str) -> dict:
    """Return the user if they carry the admin role, else raise PermissionDeniedError."""
    user = db.get_user(user_id)
    if user is None:
        raise UserNotFoundError(f"Unknown user {user_id!r}")
    if not user["is_admin"]:
        raise PermissionDeniedError(f"{user_id} is not an admin")
    return user


def do_user_add(db: Database, user_id: str, name: str | None = None, is_admin: bool = False) -> dict:
    user = db.create_user(user_id, name or user_id, is_admin=is_admin)
    if is_admin and not user["is_admin"]:
        db.set_admin(user_id, True)
        user = db.get_user(user_id)
    console.print(f"  User [bold]{user['id']}[/] ready{' (admin)' if user['is_admin'] else ''}.")
    return user


def do_log(recalc: Recalculator, user_id: str, distance: str, run_date: str | None = None) -> dict:
    """Log a run, then show its XP breakdown."""
    activity = recalc.log_activity(user_id, run_date or date.today().isoformat(), distance)
    _print_saved(activity)
    return activity


def do_edit(
    recalc: Recalculator,
    activity_id: int,
    distance: str | None = None,
    run_date: str | None = None,
    user_id: str | None = None,
) -> dict:
    activity = recalc.edit_activity(activity_id, distance=distance, run_date=run_date, user_id=user_id)
    _print_saved(activity)
    return activity


def _print_saved(activity: dict) -> None:
    score = ActivityScore(**{k: activity[k] for k in ACTIVITY_SCORE_FIELDS})
    print_activity_result(activity, format_breakdown(score))


def do_delete(recalc: Recalculator, activity_id: int, user_id: str | None = None) -> None:
    recalc.delete_activity(activity_id, user_id=user_id)
    console.print(f"  Run {activity_id} deleted.")


def do_import(recalc: Recalculator, user_id: str, path: Path) -> dict:
    entries = load_import_file(path)
    if not entries:
        print_warning(f"No activities found in {path}")
    result = asdict(recalc.import_activities(user_id, entries))
    print_import_result(result)
    return result


def do_runs(db: Database, user_id: str) -> list[dict]:
    if db.get_user(user_id) is None:
        raise UserNotFoundError(f"Unknown user {user_id!r}")
    activities = db.list_activities(user_id)
    print_activities(activities)
    return activities


def do_stats(db: Database, user_id: str) -> dict:
    user = db.get_user(user_id)
    if user is None:
        raise UserNotFoundError(f"Unknown user {user_id!r}")
    aggregate = db.get_user_aggregate(user_id) or {
        "total_xp": 0,
        "total_distance": 0.0,
        "total_runs": 0,
        "current_streak": 0,
        "longest_streak": 0,
        "level": 1,
    }
    progress = level_progress(aggregate["total_xp"], load_level_thresholds(db))
    data = {**aggregate, **progress, "user_id": user_id, "name": user["name"]}
    print_user_stats(data)
    return data


def do_titles(db: Database, user_id: str | None = None) -> list[dict]:
    if user_id:
        titles = get_user_titles(db, user_id)
        print_user_titles(user_id, titles)
        return titles
    board = get_title_board(db)
    print_title_board(board)
    return board


def do_export(db: Database, output: Path) -> dict:
    snapshot = build_snapshot(db)
    write_snapshot(snapshot, output)
    console.print(f"  Title leaderboard saved to: [bold]{output}[/]")
    return snapshot


def do_recalc(recalc: Recalculator, user_id: str | None = None, all_users: bool = False) -> dict:
    if all_users:
        results = recalc.recalculate_all()
        console.print(f"  Recalculated {len(results)} users.")
        return {uid: asdict(agg) for uid, agg in results.items()}
    if not user_id:
        raise RunRankError("Give a user id or --all")
    aggregate = recalc.recalculate_user_with_retry(user_id)
    console.print(f"  Recalculated {user_id}: {aggregate.total_xp} XP, level {aggregate.level}.")
    return {user_id: asdict(aggregate)}


def do_rules_show(db: Database) -> dict:
    rules = asdict(RuleSet.from_dict(db.get_rule_set()))
    tiers = normalize_tiers(db.get_multiplier_tiers() or None)
    print_rules(rules, tiers)
    return {"rules": rules, "tiers": tiers}


def _parse_pairs(values: list[str]) -> list[tuple[str, str]]:
    pairs = []
    for value in values:
        key, sep, raw = value.partition("=")
        if not sep or not key or not raw:
            raise RunRankError(f"Expected key=value, got {value!r}")
        pairs.append((key.strip(), raw.strip()))
    return pairs


def _parse_rule_value(key: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise RunRankError(f"Invalid number for {key}: {raw!r}") from exc
    if not math.isfinite(value) or value < 0:
        raise RunRankError(f"{key} must be a finite, non-negative number, got {raw!r}")
    if key in INT_RULE_FIELDS:
        if not value.is_integer():
            raise RunRankError(f"{key} must be a whole number, got {raw!r}")
        return int(value)
    return value


def do_rules_set(recalc: Recalculator, actor: str, values: list[str]) -> dict:
    """Change XP rules (admin only) and rescore every user."""
    require_admin(recalc.db, actor)
    changes: dict[str, float] = {}
    for key, raw in _parse_pairs(values):
        if key not in RULE_FIELDS:
            raise RunRankError(f"Unknown rule {key!r}. Known: {', '.join(RULE_FIELDS)}")
        changes[key] = _parse_rule_value(key, raw)
    recalc.db.set_rule_set(**changes)
    logger.info("%s changed rules: %s", actor, changes)
    recalc.recalculate_all()
    return do_rules_show(recalc.db)


def do_tiers_set(recalc: Recalculator, actor: str, values: list[str]) -> dict:
    """Replace streak multiplier tiers (admin only) and rescore every user."""
    require_admin(recalc.db, actor)
    tiers: dict[int, float] = {}
    for key, raw in _parse_pairs(values):
        try:
            tiers[int(key)] = float(raw)
        except ValueError as exc:
            raise RunRankError(f"Invalid tier {key}={raw}") from exc
    recalc.db.set_multiplier_tiers(tiers)
    logger.info("%s replaced multiplier tiers: %s", actor, tiers)
    recalc.recalculate_all()
    return do_rules_show(recalc.db)


if __name__ == "__main__":
    sys.exit(main())

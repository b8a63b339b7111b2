"""Rich terminal display for run-rank."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

_POSITION_LABELS: dict[int, str] = {1: "Holder", 2: "Runner-up", 3: "Third"}


def format_number(n: int) -> str:
    """Format large numbers: 421543 -> '421.5K', 1200 -> '1,200', 1234567 -> '1.2M'."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 10_000:
        return f"{n / 1_000:.1f}K"
    return f"{n:,}"


def format_value(value: float | None, unit: str = "") -> str:
    """Render a metric value: whole numbers without decimals, others with one."""
    if value is None:
        return "-"
    text = f"{value:.0f}" if float(value).is_integer() else f"{value:.1f}"
    return f"{text} {unit}".strip()


def _xp_bar(progress: float, width: int = 20) -> str:
    """Render a progress bar as text: [████████░░░░░░░░░░░░]."""
    ratio = max(0.0, min(progress / 100, 1.0))
    filled = int(ratio * width)
    return "[" + "█" * filled + "░" * (width - filled) + "]"


def print_user_stats(data: dict) -> None:
    """Print a user's totals, level progress and streaks."""
    lines: list[str] = []
    lines.append("")
    lines.append(f"  [bold]Level {data.get('level', 1)}[/]")
    bar = _xp_bar(data.get("progress", 0.0))
    if data.get("xp_to_next", 0) > 0:
        lines.append(f"  {bar} {format_number(data['xp_to_next'])} XP to next level")
    else:
        lines.append(f"  {bar} MAX LEVEL")
    lines.append(f"  Total: [bold]{format_number(data.get('total_xp', 0))}[/] XP")
    lines.append("")
    lines.append(
        f"  \U0001f525 Streak: {data.get('current_streak', 0)} days  |  "
        f"Longest: {data.get('longest_streak', 0)} days"
    )
    lines.append(
        f"  \U0001f3c3 Runs: {data.get('total_runs', 0)}  |  "
        f"Distance: {format_value(data.get('total_distance', 0.0), 'km')}"
    )
    lines.append("")

    panel = Panel(
        "\n".join(lines),
        title=f"[bold]{data.get('name', data.get('user_id', ''))}[/]",
        box=box.ROUNDED,
        border_style="cyan",
        width=56,
    )
    console.print(panel)


def print_activities(activities: list[dict]) -> None:
    """Print a user's activities with their XP breakdown."""
    if not activities:
        console.print("  No runs logged yet.")
        return

    table = Table(title="Runs", box=box.SIMPLE_HEAVY, show_lines=False)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Date")
    table.add_column("Km", justify="right")
    table.add_column("Base", justify="right")
    table.add_column("Dist", justify="right")
    table.add_column("Bonus", justify="right")
    table.add_column("Day", justify="right")
    table.add_column("Mult", justify="right")
    table.add_column("Streak", justify="right")
    table.add_column("XP", justify="right", style="bold")
    table.add_column("Source", style="dim")

    for a in activities:
        table.add_row(
            str(a["id"]),
            a["date"],
            f"{a['distance']:.2f}",
            str(a["base_xp"]),
            str(a["distance_xp"]),
            str(a["distance_bonus"]),
            str(a["streak_day"]),
            f"{a['multiplier']:.1f}x",
            str(a["streak_bonus"]),
            str(a["xp_gained"]),
            a.get("source") or "manual",
        )
    console.print(table)


def print_activity_result(activity: dict, breakdown: list[str]) -> None:
    """Print the outcome of logging or editing a run."""
    lines = ["", f"  {activity['date']}: [bold]{activity['distance']:.2f} km[/]", ""]
    lines.extend(f"  {line}" for line in breakdown)
    lines.append("")
    panel = Panel(
        "\n".join(lines),
        title="[bold]Run Saved[/]",
        box=box.ROUNDED,
        border_style="green",
        width=60,
    )
    console.print(panel)


def print_title_board(board: list[dict]) -> None:
    """Print every title with its holder and runners-up."""
    table = Table(title="Titles", box=box.ROUNDED)
    table.add_column("Title", min_width=24)
    table.add_column("Position")
    table.add_column("Runner", min_width=12)
    table.add_column("Value", justify="right")
    table.add_column("Since", width=12)

    for title in board:
        rows = ([title["holder"]] if title["holder"] else []) + title["runners_up"]
        name = f"[bold]{title['name']}[/]\n[dim]{title['description']}[/]"
        if not rows:
            requirement = format_value(title["unlock_requirement"], title["unit"])
            table.add_row(name, "-", f"[dim]unclaimed (needs {requirement})[/]", "", "")
            continue
        for i, row in enumerate(rows):
            table.add_row(
                name if i == 0 else "",
                _POSITION_LABELS.get(row["position"], f"#{row['position']}"),
                row.get("user_name") or row["user_id"],
                format_value(row["value"], title["unit"]),
                (row.get("earned_at") or "")[:10],
            )
    console.print(table)


def print_user_titles(user_id: str, titles: list[dict]) -> None:
    """Print the titles a user places in and their personal bests."""
    if not titles:
        console.print(f"  {user_id} has not reached any title yet.")
        return
    table = Table(title=f"Titles for {user_id}", box=box.SIMPLE)
    table.add_column("Title")
    table.add_column("Position")
    table.add_column("Value", justify="right")
    table.add_column("Personal best", justify="right")
    for t in titles:
        position = _POSITION_LABELS.get(t["position"], "-") if t["position"] else "-"
        table.add_row(
            t["title_name"],
            position,
            format_value(t["value"]),
            format_value(t["personal_best"]),
        )
    console.print(table)


def print_import_result(result: dict) -> None:
    """Print import counts."""
    lines = [
        "",
        f"  Imported: [bold green]{result.get('imported', 0)}[/]",
        f"  Duplicates skipped: {result.get('skipped_duplicates', 0)}",
        f"  Failed: [red]{result.get('failed', 0)}[/]",
        "",
    ]
    panel = Panel(
        "\n".join(lines),
        title="[bold]Import Complete[/]",
        box=box.ROUNDED,
        border_style="green",
        width=44,
    )
    console.print(panel)


def print_rules(rules: dict, tiers: list[tuple[int, float]]) -> None:
    """Print the active XP rules and streak multiplier tiers."""
    table = Table(title="XP Rules", box=box.SIMPLE)
    table.add_column("Setting", style="bold")
    table.add_column("Value", justify="right")
    for key, value in rules.items():
        table.add_row(key, str(value))
    console.print(table)

    tier_table = Table(title="Streak Multipliers", box=box.SIMPLE)
    tier_table.add_column("From day", justify="right")
    tier_table.add_column("Multiplier", justify="right")
    for days, multiplier in tiers:
        tier_table.add_row(str(days), f"{multiplier:.2f}x")
    console.print(tier_table)


def print_config(config: dict) -> None:
    """Print the stored settings from config.json."""
    if not config:
        console.print("  No settings stored; using defaults.")
        return
    for key, value in sorted(config.items()):
        console.print(f"  [bold]{key}[/]: {value}")


def print_error(message: str) -> None:
    console.print(f"[bold red]Error:[/] {message}")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]Warning:[/] {message}")

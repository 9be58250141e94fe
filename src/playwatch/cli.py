"""CLI interface for playwatch."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import typer
from pydantic import SecretStr
from rich.console import Console

from playwatch.config import AppConfig, ensure_dirs, get_base_dir, load_config, save_config
from playwatch.logging import SERVICE_LOG, TRACKER_LOG, setup_logging
from playwatch.storage import Database, TrackedPlaylist
from playwatch.tracker.spotify import parse_playlist_ref

app = typer.Typer(
    name="playwatch",
    help="Watch Spotify playlists and report added, removed and renamed content to Telegram.",
    add_completion=False,
)
console = Console()

T = TypeVar("T")


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _with_db(fn: Callable[[Database], Awaitable[T]]) -> T:
    """Open the database, run *fn* against it and close it again."""

    async def _run() -> T:
        db = Database(get_base_dir() / "playwatch.db")
        await db.connect()
        try:
            return await fn(db)
        finally:
            await db.close()

    ensure_dirs()
    return asyncio.run(_run())


def _playlist_id(value: str) -> str:
    try:
        return parse_playlist_ref(value)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc


def _require_spotify(cfg: AppConfig) -> None:
    if not cfg.is_spotify_configured():
        console.print(
            "[red]Spotify is not configured.[/red]  Run [bold]playwatch config set spotify.client_id <id>[/bold] "
            "and [bold]playwatch config set spotify.client_secret <secret>[/bold].",
        )
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Service / checks
# ---------------------------------------------------------------------------


@app.command()
def run() -> None:
    """Run the service in the foreground: periodic checks plus the webhook server."""
    from playwatch.service import run_service

    ensure_dirs()
    cfg = load_config()
    setup_logging(cfg.service.log_level, cfg.log_dir)
    console.print(
        f"[green]playwatch running[/green] on {cfg.service.host}:{cfg.service.port} "
        f"(every {cfg.tracker.interval_minutes} min).  Press Ctrl+C to stop.",
    )
    asyncio.run(run_service(cfg))


@app.command()
def check() -> None:
    """Check every tracked playlist once and send notifications."""
    from playwatch.tracker.engine import PassStats, TrackerEngine

    cfg = load_config()
    _require_spotify(cfg)
    ensure_dirs()
    setup_logging(cfg.service.log_level, cfg.log_dir)

    async def _check(db: Database) -> PassStats:
        return await TrackerEngine(cfg, db).run_pass()

    with console.status("Checking playlists..."):
        stats = _with_db(_check)

    console.print()
    console.print(f"  [bold]Playlists checked:[/bold] {stats.entities_processed}")
    if stats.failed:
        console.print(f"  [red]Failed:[/red]            {stats.failed}")
    if stats.skipped:
        console.print(f"  [yellow]Skipped:[/yellow]           {stats.skipped}")
    console.print(f"  Tracks added:      {stats.tracks_added}")
    console.print(f"  Tracks removed:    {stats.tracks_removed}")
    console.print(f"  Metadata changes:  {stats.metadata_changes}")
    console.print(f"  Notifications:     {stats.notifications_sent}")
    console.print()


# ---------------------------------------------------------------------------
# Tracked playlists
# ---------------------------------------------------------------------------


@app.command()
def add(playlist: str = typer.Argument(help="Playlist id, spotify: URI or open.spotify.com URL")) -> None:
    """Start tracking a playlist."""
    playlist_id = _playlist_id(playlist)
    added = _with_db(lambda db: db.add_tracked_playlist(playlist_id))
    if added:
        console.print(f"[green]Playlist {playlist_id} added.[/green]")
    else:
        console.print(f"[yellow]Playlist {playlist_id} is already tracked.[/yellow]")


@app.command()
def remove(playlist: str = typer.Argument(help="Playlist id, spotify: URI or open.spotify.com URL")) -> None:
    """Stop tracking a playlist and drop its stored state."""
    playlist_id = _playlist_id(playlist)

    async def _remove(db: Database) -> TrackedPlaylist | None:
        entry = await db.get_tracked_playlist(playlist_id)
        if entry is not None:
            await db.remove_tracked_playlist(playlist_id)
            await db.forget_playlist(playlist_id)
        return entry

    removed = _with_db(_remove)
    if removed is not None:
        console.print(f"[green]Playlist {removed.display_name} removed.[/green]")
    else:
        console.print(f"[yellow]Playlist {playlist_id} is not tracked.[/yellow]")
        raise typer.Exit(1)


@app.command(name="list")
def list_playlists() -> None:
    """List tracked playlists."""
    playlists = _with_db(lambda db: db.list_tracked_playlists())
    if not playlists:
        console.print("[dim]No playlists are currently being tracked.[/dim]")
        return

    console.print("\n[bold]Tracked playlists[/bold]\n")
    for p in playlists:
        console.print(f"  • [bold]{p.display_name}[/bold]\n    [dim]{p.id}[/dim]")
    console.print()


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


@app.command()
def logs(
    tail_lines: int = typer.Option(50, "--lines", "-n", help="Number of lines to show"),
    tracker: bool = typer.Option(False, "--tracker", help="Show tracker.log (JSON) instead of service.log"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Follow log output (like tail -f)"),
) -> None:
    """Show recent log output (--tracker for the JSON tracker log, --follow for live tail)."""
    filename = TRACKER_LOG if tracker else SERVICE_LOG
    log_file = get_base_dir() / "logs" / filename
    if not log_file.exists():
        console.print(f"[yellow]Log file not found:[/yellow] {log_file}")
        raise typer.Exit(1)

    if follow:
        _follow_log(log_file, tail_lines)
        return

    with open(log_file, encoding="utf-8") as fh:
        last_lines = deque(fh, maxlen=tail_lines)

    if not last_lines:
        console.print("[dim]Log file is empty.[/dim]")
        return

    for line in last_lines:
        _print_log_line(line)


def _log_line_style(line: str) -> str | None:
    """Return a Rich style string based on the log level found in *line*."""
    lower = line.lower()
    if "[error" in lower or "[critical" in lower or '"level": "error"' in lower or '"level": "critical"' in lower:
        return "red"
    if "[warning" in lower or '"level": "warning"' in lower:
        return "yellow"
    if "[debug" in lower or '"level": "debug"' in lower:
        return "dim"
    return None


def _print_log_line(line: str) -> None:
    line = line.rstrip("\n")
    if not line:
        return
    console.print(line, style=_log_line_style(line), highlight=False, markup=False)


def _follow_log(log_file: Path, initial_lines: int = 10) -> None:
    """Follow a log file, printing new lines as they appear (like ``tail -f``)."""
    import time

    with open(log_file, encoding="utf-8") as fh:
        last = deque(fh, maxlen=initial_lines)
    for line in last:
        _print_log_line(line)

    with open(log_file, encoding="utf-8") as fh:
        fh.seek(0, 2)
        try:
            while True:
                line = fh.readline()
                if line:
                    _print_log_line(line)
                else:
                    time.sleep(0.5)
        except KeyboardInterrupt:
            pass


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _mask(secret: SecretStr) -> str:
    """Return '***' if the secret is non-empty, else '(not set)'."""
    return "[bold]***[/bold]" if secret.get_secret_value() else "[dim](not set)[/dim]"


config_app = typer.Typer(name="config", help="View and modify configuration.", add_completion=False)
app.add_typer(config_app)


def _section_map(cfg: AppConfig) -> dict:
    return {
        "service": cfg.service,
        "tracker": cfg.tracker,
        "spotify": cfg.spotify,
        "telegram": cfg.telegram,
    }


@config_app.command(name="show")
def config_show() -> None:
    """Show current configuration (secrets are masked)."""
    cfg = load_config()

    console.print("\n[bold]Current Configuration[/bold]\n")
    for section_name, section in _section_map(cfg).items():
        console.print(f"[bold cyan]\\[{section_name}][/bold cyan]")
        for key in type(section).model_fields:
            value = getattr(section, key)
            shown = _mask(value) if isinstance(value, SecretStr) else (value if value != "" else "[dim](not set)[/dim]")
            console.print(f"  {key:20s} = {shown}")
        console.print()


@config_app.command(name="set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. tracker.interval_minutes"),
    value: str = typer.Argument(help="New value"),
) -> None:
    """Set a configuration value (e.g. playwatch config set tracker.interval_minutes 30)."""
    parts = key.split(".", maxsplit=1)
    if len(parts) != 2:
        console.print("[red]Key must be in section.field format (e.g. tracker.interval_minutes).[/red]")
        raise typer.Exit(1)

    section_name, field_name = parts

    cfg = load_config()
    section_map = _section_map(cfg)

    if section_name not in section_map:
        console.print(f"[red]Unknown section:[/red] {section_name}")
        console.print(f"[dim]Valid sections: {', '.join(section_map)}[/dim]")
        raise typer.Exit(1)

    section_model = section_map[section_name]
    fields = type(section_model).model_fields
    if field_name not in fields:
        console.print(f"[red]Unknown field:[/red] {section_name}.{field_name}")
        console.print(f"[dim]Valid fields: {', '.join(fields)}[/dim]")
        raise typer.Exit(1)

    try:
        coerced = _coerce_value(value, fields[field_name].annotation)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Invalid value:[/red] {exc}")
        raise typer.Exit(1) from exc

    section_data = section_model.model_dump(mode="python")
    section_data[field_name] = coerced
    setattr(cfg, section_name, type(section_model)(**section_data))
    save_config(cfg)

    display_val = "***" if isinstance(coerced, SecretStr) else coerced
    console.print(f"[green]Set[/green] {key} = {display_val}")


def _coerce_value(raw: str, field_type: type | None) -> object:
    """Coerce a string value to the expected field type."""
    if field_type is SecretStr:
        return SecretStr(raw)

    if field_type is bool:
        if raw.lower() in ("true", "1", "yes"):
            return True
        if raw.lower() in ("false", "0", "no"):
            return False
        msg = f"Cannot convert '{raw}' to bool (use true/false)"
        raise ValueError(msg)

    if field_type is int:
        return int(raw)

    return raw

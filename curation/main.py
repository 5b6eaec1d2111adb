#!/usr/bin/env python3
"""
Lesson Library - Duplicate Review Command Line

Runs the duplicate review operations against the configured database as the
trusted service identity.

Usage:
    python -m curation.main pairs
    python -m curation.main groups --include-resolved
    python -m curation.main status lesson-a lesson-b
    python -m curation.main archive lesson-b lesson-a
    python -m curation.main resolve lesson-a lesson-b lesson-c --merge --title "lesson-a=Garden Basics"
    python -m curation.main dismiss lesson-a lesson-b --method same_title
    python -m curation.main undismiss lesson-a lesson-b
    python -m curation.main restore lesson-b
    python -m curation.main serve --port 8000
"""

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from curation.config import get_settings
from curation.database import SessionLocal
from curation.duplicates import (
    Caller,
    OperationResult,
    archive_duplicate_lesson,
    check_group_state,
    dismiss_group,
    fetch_duplicate_groups,
    find_duplicate_pairs,
    resolve_duplicate_group,
    restore_archived_lesson,
    undismiss_group,
)
from curation.duplicates.errors import DuplicateResolutionError
from curation.duplicates.finder import DETECTION_METHODS, SAME_TITLE


console = Console()

CLI_CALLER = Caller.service("cli")


def _report(result: OperationResult) -> None:
    """Print an operation result and exit non-zero on failure."""
    if result.success:
        console.print("[green]Done[/green]")
        for key, value in result.data.items():
            console.print(f"  {key}: {value}", markup=False)
        return

    console.print(f"[red]{result.error.value}: {result.message}[/red]")
    if result.hint:
        console.print(f"[dim]{result.hint}[/dim]")
    raise SystemExit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug):
    """Lesson Library duplicate review"""
    if debug:
        from curation.utils.logging import setup_logging
        setup_logging(level="DEBUG")


@cli.command()
@click.option("--limit", type=int, default=50, help="Number of pairs to show")
def pairs(limit: int):
    """List candidate duplicate pairs."""
    session = SessionLocal()
    try:
        found = find_duplicate_pairs(session)
    finally:
        session.close()

    if not found:
        console.print("[yellow]No duplicate pairs found.[/yellow]")
        return

    table = Table(title=f"Duplicate pairs ({len(found)})")
    table.add_column("Lesson 1")
    table.add_column("Lesson 2")
    table.add_column("Title")
    table.add_column("Method")
    table.add_column("Similarity")

    for pair in found[:limit]:
        table.add_row(
            pair.id1,
            pair.id2,
            pair.title1[:40],
            pair.detection_method,
            f"{pair.similarity:.3f}" if pair.similarity is not None else "-",
        )

    console.print(table)


@cli.command()
@click.option("--include-resolved", is_flag=True, help="Also show archived and dismissed groups")
def groups(include_resolved: bool):
    """List duplicate groups awaiting review."""
    session = SessionLocal()
    try:
        found = fetch_duplicate_groups(session, CLI_CALLER, include_resolved=include_resolved)
    except DuplicateResolutionError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1)
    finally:
        session.close()

    if not found:
        console.print("[yellow]No duplicate groups to review.[/yellow]")
        return

    table = Table(title=f"Duplicate groups ({len(found)})")
    table.add_column("Lessons")
    table.add_column("Method")
    table.add_column("Confidence")
    table.add_column("Recommended")

    for group in found:
        table.add_row(
            ", ".join(group["lesson_ids"]),
            group["detection_method"],
            group["confidence"],
            group["recommended_canonical"] or "-",
        )

    console.print(table)


@cli.command()
@click.argument("lesson_ids", nargs=-1, required=True)
def status(lesson_ids: tuple[str, ...]):
    """Show whether a group was already archived or dismissed."""
    session = SessionLocal()
    try:
        state = check_group_state(session, list(lesson_ids))
    except DuplicateResolutionError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1)
    finally:
        session.close()

    when = state.resolved_at.strftime("%Y-%m-%d %H:%M") if state.resolved_at else "-"
    console.print(f"{state.state} ({when})")


@cli.command()
@click.argument("duplicate_id")
@click.argument("canonical_id")
@click.confirmation_option(prompt="Archive this lesson and remove it from the live library?")
def archive(duplicate_id: str, canonical_id: str):
    """Archive DUPLICATE_ID in favour of CANONICAL_ID."""
    session = SessionLocal()
    try:
        result = archive_duplicate_lesson(session, CLI_CALLER, duplicate_id, canonical_id)
    finally:
        session.close()
    _report(result)


@cli.command()
@click.argument("canonical_id")
@click.argument("duplicate_ids", nargs=-1, required=True)
@click.option("--merge/--no-merge", default=False, help="Merge classification metadata into the canonical")
@click.option("--notes", default=None, help="Note stored with the resolution")
@click.option("--title", "titles", multiple=True, metavar="LESSON_ID=TITLE", help="Rename a lesson of the group")
@click.confirmation_option(prompt="Archive every duplicate and remove them from the live library?")
def resolve(
    canonical_id: str,
    duplicate_ids: tuple[str, ...],
    merge: bool,
    notes: str | None,
    titles: tuple[str, ...],
):
    """Keep CANONICAL_ID and archive every DUPLICATE_ID."""
    title_updates = {}
    for entry in titles:
        lesson_id, sep, title = entry.partition("=")
        if not sep:
            raise click.BadParameter(f"expected LESSON_ID=TITLE, got {entry!r}", param_hint="--title")
        title_updates[lesson_id.strip()] = title

    session = SessionLocal()
    try:
        result = resolve_duplicate_group(
            session, CLI_CALLER, canonical_id, list(duplicate_ids),
            merge_metadata=merge, notes=notes, title_updates=title_updates or None,
        )
    finally:
        session.close()
    _report(result)


@cli.command()
@click.argument("lesson_ids", nargs=-1, required=True)
@click.option("--method", type=click.Choice(DETECTION_METHODS), default=SAME_TITLE, help="How the group was detected")
@click.option("--notes", default=None, help="Reason for keeping all lessons")
def dismiss(lesson_ids: tuple[str, ...], method: str, notes: str | None):
    """Mark a group as intentionally distinct lessons."""
    session = SessionLocal()
    try:
        result = dismiss_group(session, CLI_CALLER, list(lesson_ids), method, notes)
    finally:
        session.close()
    _report(result)


@cli.command()
@click.argument("lesson_id")
@click.confirmation_option(prompt="Restore this lesson to the live library?")
def restore(lesson_id: str):
    """Move an archived lesson back into the live library."""
    session = SessionLocal()
    try:
        result = restore_archived_lesson(session, CLI_CALLER, lesson_id)
    finally:
        session.close()
    _report(result)


@cli.command()
@click.argument("lesson_ids", nargs=-1, required=True)
def undismiss(lesson_ids: tuple[str, ...]):
    """Withdraw a dismissal so the group is reviewed again."""
    session = SessionLocal()
    try:
        result = undismiss_group(session, CLI_CALLER, list(lesson_ids))
    finally:
        session.close()
    _report(result)


@cli.command()
@click.option("--host", default=None, help="Bind address (default: API_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: API_PORT)")
def serve(host: str | None, port: int | None):
    """Run the duplicate review API."""
    import uvicorn

    api = get_settings().api
    console.print(f"[bold blue]Serving on {host or api.host}:{port or api.port}[/bold blue]")
    uvicorn.run(
        "api.main:app",
        host=host or api.host,
        port=port or api.port,
        reload=api.reload,
        log_level="debug" if api.debug else "info",
    )


if __name__ == "__main__":
    cli()

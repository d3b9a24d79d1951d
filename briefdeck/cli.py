"""CLI for Briefdeck using Typer: operational commands for the pipeline."""

import asyncio
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from briefdeck.utils import setup_logging

# CLI styles
STYLE_HEADER = "bold blue"
STYLE_SUCCESS = "bold green"
STYLE_WARNING = "bold yellow"
STYLE_ERROR = "bold red"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="briefdeck",
    help="Briefdeck - ingestion, scoring and report pipeline.",
    add_completion=False,
)
console = Console()

VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")]


async def _init_db() -> None:
    from briefdeck.db.session import engine
    from briefdeck.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


async def _with_queue(action):
    """Run *action(db, queue)* with a session and a Redis-backed job queue."""
    from briefdeck.db.session import async_session_factory, engine
    from briefdeck.queue import create_job_queue

    queue = await create_job_queue()
    try:
        async with async_session_factory() as db:
            return await action(db, queue)
    finally:
        await queue.redis.aclose()
        await engine.dispose()


@app.command("init-db")
def init_db(verbose: VerboseOption = False):
    """Create all tables (development; production uses Alembic)."""
    setup_logging(verbose)
    asyncio.run(_init_db())
    console.print(f"[{STYLE_SUCCESS}]Database initialized.[/{STYLE_SUCCESS}]")


@app.command()
def tick(verbose: VerboseOption = False):
    """Run one scheduling pass: due sources, NEW items and due briefs."""
    from briefdeck.services.brief_schedule import schedule_due_briefs
    from briefdeck.services.fetch_service import schedule_due_sources
    from briefdeck.services.processing_service import sweep_new_items

    setup_logging(verbose)

    async def action(db, queue):
        return {
            "sources": await schedule_due_sources(db, queue),
            "items": await sweep_new_items(db, queue),
            "briefs": await schedule_due_briefs(db, queue),
        }

    counts = asyncio.run(_with_queue(action))

    table = Table(title="Enqueued jobs", header_style=STYLE_HEADER)
    table.add_column("Kind")
    table.add_column("Count", justify="right")
    for kind, count in counts.items():
        table.add_row(kind, str(count))
    console.print(table)


@app.command()
def recover(verbose: VerboseOption = False):
    """Release sources, items and briefs stuck in an in-flight status."""
    from briefdeck.services.recovery_service import recover_stuck_work

    setup_logging(verbose)
    counts = asyncio.run(_with_queue(recover_stuck_work))

    total = sum(counts.values())
    style = STYLE_WARNING if total else STYLE_SUCCESS
    console.print(
        f"[{style}]Recovered {counts['sources']} sources, {counts['items']} items, "
        f"{counts['briefs']} briefs.[/{style}]"
    )


@app.command("execute-brief")
def execute_brief(
    brief_id: Annotated[int, typer.Argument(help="Brief id")],
    verbose: VerboseOption = False,
):
    """Queue an immediate execution of a brief."""
    from briefdeck.services.brief_schedule import BriefNotQueuedError, execute_brief_now

    setup_logging(verbose)

    async def action(db, queue):
        await execute_brief_now(db, queue, brief_id)

    try:
        asyncio.run(_with_queue(action))
    except BriefNotQueuedError as e:
        console.print(f"[{STYLE_ERROR}]{e}[/{STYLE_ERROR}]")
        raise typer.Exit(code=1)
    console.print(f"[{STYLE_SUCCESS}]Brief {brief_id} queued.[/{STYLE_SUCCESS}]")


if __name__ == "__main__":
    app()

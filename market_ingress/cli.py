"""
Administration commands for the market ingress service.
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from market_ingress.core.config import DatabaseConfig, settings
from market_ingress.core.database import Database
from market_ingress.core.logging import setup_logging
from market_ingress.core.redis import RedisClient
from market_ingress.indexer.ingress import CURSOR_KEY
from market_ingress.queue.job_queue import JobQueue
from market_ingress.repositories.cursor import CursorStore

console = Console()
app = typer.Typer(help="Market ingress administration commands")


def _database() -> Database:
    return Database(DatabaseConfig.get_database_url(settings.database_url))


@app.command("init-db")
def init_db():
    """Create database tables."""
    async def _init():
        database = _database()
        await database.init()
        try:
            await database.create_tables()
        finally:
            await database.close()

    setup_logging()
    asyncio.run(_init())
    console.print("✅ Database initialized")


@app.command("drop-db")
def drop_db(yes: bool = typer.Option(False, "--yes", help="Skip confirmation")):
    """Drop all database tables."""
    if not yes and not typer.confirm("Drop all tables?"):
        raise typer.Abort()

    async def _drop():
        database = _database()
        await database.init()
        try:
            await database.drop_tables()
        finally:
            await database.close()

    setup_logging()
    asyncio.run(_drop())
    console.print("🗑️ Database tables dropped")


@app.command()
def cursors():
    """Show the saved ingress cursor of every network."""
    async def _show():
        database = _database()
        await database.init()
        try:
            store = CursorStore(database)
            return [(n.name, await store.get(f"{CURSOR_KEY}:{n.name}")) for n in settings.networks]
        finally:
            await database.close()

    table = Table(title="Ingress cursors")
    table.add_column("Network")
    table.add_column("Last block")
    for network, value in asyncio.run(_show()):
        table.add_row(network, value or "-")
    console.print(table)


@app.command("set-cursor")
def set_cursor(network: str, value: str):
    """Overwrite the saved cursor of a network (used when no job is queued)."""
    async def _set():
        database = _database()
        await database.init()
        try:
            await CursorStore(database).set(f"{CURSOR_KEY}:{network}", value)
        finally:
            await database.close()

    asyncio.run(_set())
    console.print(f"✅ Cursor of {network} set to {value}")


@app.command("dead-letters")
def dead_letters(network: str, limit: int = typer.Option(20, help="Maximum jobs to show")):
    """List ingress jobs that ran out of attempts."""
    async def _list():
        redis = RedisClient(settings.redis_url)
        await redis.connect()
        try:
            queue = JobQueue(redis.client, f"ingress:{network}", prefix=settings.redis_prefix)
            return await queue.dead_letters(limit)
        finally:
            await redis.disconnect()

    table = Table(title=f"Dead ingress jobs: {network}")
    table.add_column("Job")
    table.add_column("Cursor")
    table.add_column("Attempts")
    table.add_column("Error")
    for job in asyncio.run(_list()):
        table.add_row(job.id, str(job.data.get("last_block_gt")), str(job.attempts_made), job.failed_reason or "")
    console.print(table)


@app.command()
def serve(port: Optional[int] = typer.Option(None, help="Override the configured port")):
    """Run the API server (and the pollers, when enabled)."""
    from market_ingress.main import run

    if port is not None:
        settings.port = port
    run()


if __name__ == "__main__":
    app()

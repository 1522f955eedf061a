"""Database management CLI commands."""

import asyncio

import typer
from rich.console import Console

from otpflow.database import close_db, create_tables

console = Console()
app = typer.Typer(help="Database management commands")


@app.command("init")
def init():
    """Create the users and verification_codes tables if missing."""

    async def _init():
        try:
            await create_tables()
        finally:
            await close_db()

    console.print("[dim]Creating tables...[/dim]")
    asyncio.run(_init())
    console.print("[green]Tables ready![/green]")

"""User management CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from otpflow.config import settings
from otpflow.database import get_session_context
from otpflow.errors import AuthError
from otpflow.services.codes import KeyedLock, VerificationCodeManager
from otpflow.services.identifiers import IdentifierType, resolve
from otpflow.stores import DuplicateIdentityError, SQLAuthStore

console = Console()
app = typer.Typer(help="User management commands")


def _resolve_or_exit(identifier: str) -> tuple[str, IdentifierType]:
    try:
        return resolve(identifier)
    except AuthError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e


@app.command("list")
def list_users():
    """List all users."""

    async def _list():
        async with get_session_context() as session:
            users = await SQLAuthStore(session).list_users()

            table = Table(title="Users")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Phone", style="green")
            table.add_column("Verified", style="magenta")
            table.add_column("Created", style="dim")

            for user in users:
                verified_str = "[green]Yes[/green]" if user.is_verified else "No"
                created = user.created_at.strftime("%Y-%m-%d") if user.created_at else "-"
                table.add_row(user.id, user.email or "-", user.phone or "-", verified_str, created)

            console.print(table)

    asyncio.run(_list())


@app.command("create")
def create_user(identifier: str = typer.Argument(..., help="Email or phone")):
    """Create a new unverified user."""
    normalized, identifier_type = _resolve_or_exit(identifier)

    async def _create():
        async with get_session_context() as session:
            store = SQLAuthStore(session)
            try:
                async with store.unit_of_work():
                    match identifier_type:
                        case IdentifierType.EMAIL:
                            user = await store.create_user(email=normalized)
                        case IdentifierType.PHONE:
                            user = await store.create_user(phone=normalized)
            except DuplicateIdentityError:
                console.print(f"[red]Error:[/red] User {normalized} already exists")
                raise typer.Exit(1) from None
            console.print(f"[green]Created user:[/green] {normalized} ({user.id})")

    asyncio.run(_create())


@app.command("issue-code")
def issue_code(identifier: str = typer.Argument(..., help="Email or phone")):
    """Issue a verification code for a user and print it."""
    normalized, identifier_type = _resolve_or_exit(identifier)

    async def _issue():
        async with get_session_context() as session:
            store = SQLAuthStore(session)
            match identifier_type:
                case IdentifierType.EMAIL:
                    user = await store.find_user_by_email(normalized)
                case IdentifierType.PHONE:
                    user = await store.find_user_by_phone(normalized)

            if not user:
                console.print(f"[red]Error:[/red] User {normalized} not found")
                raise typer.Exit(1)

            codes = VerificationCodeManager(
                store,
                KeyedLock(),
                code_length=settings.verification_code_length,
                ttl_minutes=settings.verification_code_expiry_minutes,
            )
            record = await codes.issue(user.id, identifier_type.verification_type)

            console.print(f"[green]Code:[/green] {record.code}")
            console.print(f"[dim]Expires: {record.expires_at}[/dim]")

    asyncio.run(_issue())

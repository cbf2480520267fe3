import asyncio
import functools
import json
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..__version__ import __version__
from ..config.settings import get_settings
from ..core.clone_orchestrator import CloneService
from ..core.credential_store import CredentialStore
from ..core.crypto import generate_master_key
from ..core.exceptions.vapi_exceptions import CloneError, VAPIException
from ..core.logging import configure_logging
from ..core.template_loader import TemplateLoader
from ..core.version import Version, get_base_name, parse_version_from_name

app = typer.Typer(help="Clone versioned VAPI templates into user accounts")
console = Console()


def handle_error(func):
    """Decorator to run async commands and report failures."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
            if asyncio.iscoroutine(result):
                return asyncio.run(result)
            return result
        except CloneError as e:
            console.print(f"[red]Error ({e.code.value}): {e.message}[/red]")
            if e.details:
                console.print(f"[dim]{e.details}[/dim]")
            if e.actions:
                console.print("[yellow]Actions taken before failure:[/yellow]")
                for action in e.actions:
                    console.print(f"  - {action}")
            raise typer.Exit(1)
        except VAPIException as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
    return wrapper


def _parse_variables(values: Optional[List[str]]) -> dict:
    variables = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got {item!r}")
        variables[key] = value
    return variables


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL")
):
    configure_logging(log_level or get_settings().log_level)


@app.command("link")
@handle_error
async def link(
    user_id: str,
    api_key: str = typer.Option(..., "--api-key", prompt=True, hide_input=True, help="VAPI private API key")
):
    """Validate a VAPI API key and store it encrypted for USER_ID."""
    with CredentialStore() as store:
        await CloneService(store).link(user_id, api_key)
    console.print(f"[green]API key validated and stored for {user_id}[/green]")


@app.command("clone")
@handle_error
async def clone(
    user_id: str,
    templates_dir: Optional[str] = typer.Option(None, "--templates-dir", help="Directory holding the templates"),
    var: Optional[List[str]] = typer.Option(None, "--var", help="Template variable as KEY=VALUE"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON")
):
    """Clone the template tool and assistant into USER_ID's account."""
    loader = TemplateLoader(templates_dir=templates_dir, variables=_parse_variables(var))
    with CredentialStore() as store:
        result = await CloneService(store, templates=loader).clone(user_id)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    console.print(f"[cyan]Tool ID:[/cyan] {result.tool_id}")
    console.print(f"[cyan]Assistant ID:[/cyan] {result.assistant_id}")
    console.print("[cyan]Actions:[/cyan]")
    for action in result.actions:
        console.print(f"  - {action}")


@app.command("status")
@handle_error
def status(user_id: str):
    """Show the stored link and cloned ids for USER_ID."""
    with CredentialStore() as store:
        record = CloneService(store).status(user_id)

    if record is None:
        console.print(f"[yellow]No VAPI account linked for {user_id}[/yellow]")
        return

    table = Table(title=f"VAPI link for {user_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("API key", "stored (encrypted)")
    table.add_row("Web token", "stored (encrypted)" if record.web_token else "N/A")
    table.add_row("Tool ID", record.tool_id or "N/A")
    table.add_row("Assistant ID", record.assistant_id or "N/A")
    table.add_row("Updated", record.updated_at.strftime("%Y-%m-%d %H:%M") if record.updated_at else "N/A")
    console.print(table)


@app.command("unlink")
@handle_error
def unlink(
    user_id: str,
    force: bool = typer.Option(False, "--force", help="Skip confirmation")
):
    """Delete the stored credentials for USER_ID."""
    if not force and not typer.confirm(f"Remove stored VAPI credentials for {user_id}?"):
        console.print("[yellow]Aborted[/yellow]")
        return

    with CredentialStore() as store:
        removed = CloneService(store).unlink(user_id)

    if removed:
        console.print(f"[green]Removed credentials for {user_id}[/green]")
    else:
        console.print(f"[yellow]No credentials stored for {user_id}[/yellow]")


@app.command("generate-key")
def generate_key():
    """Print a new MASTER_KEY value."""
    console.print(f"MASTER_KEY={generate_master_key()}")


@app.command("version")
def version(
    name: Optional[str] = typer.Argument(None, help="Resource name to inspect"),
    against: Optional[str] = typer.Option(None, "--against", help="Compare NAME with another resource name")
):
    """Show the package version, or the version embedded in NAME."""
    if name is None:
        console.print(f"vapi-cloner {__version__}")
        return

    current = Version.from_name(name)
    console.print(f"[cyan]Base name:[/cyan] {get_base_name(name)!r}")
    console.print(f"[cyan]Version:[/cyan] {current if parse_version_from_name(name) else '0 (none)'}")

    if against is not None:
        other = Version.from_name(against)
        if get_base_name(against) != get_base_name(name):
            console.print("[yellow]Different base names; these would not be reconciled together[/yellow]")
        relation = "newer than" if current > other else "older than" if current < other else "the same as"
        console.print(f"{name!r} is {relation} {against!r}")


def main():
    app()


if __name__ == "__main__":
    main()

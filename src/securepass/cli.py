"""securepass — personal credential manager for the command line.

Commands
--------
  list      List all credentials in a rich table
  add       Add a credential (optionally with a generated password)
  get       Show one credential (optionally copy its password)
  update    Edit fields on an existing credential
  delete    Remove a credential
  search    Filter credentials by website or username
  generate  Generate strong random passwords
  strength  Score a password you already have
  clear     Erase every stored credential
  info      Show configuration and storage details
  remote    list / search / get / add / delete against SECUREPASS_API_URL
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from . import __version__
from .backends import EncryptedFileBackend, backend_from_settings
from .config import BackendKind, Settings
from .errors import BadVaultError, DecryptionError, TransportError
from .generator import PasswordPolicy, SecureGenerator, StrengthLevel
from .models import CredentialRecord
from .remote import RemoteCredentialStore
from .store import CredentialStore

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & consoles
# ---------------------------------------------------------------------------

_THEME = Theme(
    {
        "success": "bold green",
        "warning": "bold yellow",
        "danger": "bold red",
        "muted": "dim",
        "label": "cyan",
        "highlight": "bold white",
    }
)

console = Console(theme=_THEME)
err = Console(stderr=True, theme=_THEME)

app = typer.Typer(
    name="securepass",
    help="[bold cyan]securepass[/bold cyan] — store, search and generate passwords.",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
)
remote_app = typer.Typer(
    help="Work with a remote credential service (SECUREPASS_API_URL).",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(remote_app, name="remote")

_LEVEL_STYLES = {
    StrengthLevel.WEAK: "danger",
    StrengthLevel.FAIR: "warning",
    StrengthLevel.GOOD: "blue",
    StrengthLevel.STRONG: "success",
}


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class Services:
    """Objects shared by every command; the store is opened on first use."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.generator = SecureGenerator()
        self._store: Optional[CredentialStore] = None

    @property
    def store(self) -> CredentialStore:
        if self._store is None:
            self._store = _open_store(self.settings)
        return self._store


def _open_store(settings: Settings) -> CredentialStore:
    master = None
    if settings.backend is BackendKind.ENCRYPTED:
        master = Prompt.ask("Master password", password=True, console=console)
        if not master:
            err.print("[danger]Master password cannot be empty.[/danger]")
            raise typer.Exit(1)

    backend = backend_from_settings(settings, master_password=master)

    # An unreadable vault would load as empty and be overwritten on the next save.
    # The store's own load reuses the key derived here.
    if isinstance(backend, EncryptedFileBackend) and backend.exists():
        try:
            backend.read()
        except (DecryptionError, BadVaultError) as exc:
            err.print(f"[danger]{escape(str(exc))}[/danger]")
            raise typer.Exit(1) from exc
    return CredentialStore(backend)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err, show_path=False)],
        force=True,
    )


def _services(ctx: typer.Context) -> Services:
    return ctx.obj


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _policy(
    length: int, no_upper: bool, no_lower: bool, no_numbers: bool, no_symbols: bool
) -> PasswordPolicy:
    try:
        return PasswordPolicy(
            length=length,
            include_uppercase=not no_upper,
            include_lowercase=not no_lower,
            include_numbers=not no_numbers,
            include_symbols=not no_symbols,
        )
    except ValidationError as exc:
        err.print(f"[danger]Invalid password policy:[/danger] {escape(exc.errors()[0]['msg'])}")
        raise typer.Exit(1) from exc


def _report_persistence(store: CredentialStore) -> None:
    if store.dirty:
        err.print(
            f"[warning]Saved in memory only; writing to storage failed:[/warning] {escape(str(store.last_error))}"
        )


def _find_one(store: CredentialStore, query: str) -> CredentialRecord:
    """Return the credential with id *query*, or the single search match."""
    record = store.get_by_id(query)
    if record is not None:
        return record

    matches = store.search(query) if query.strip() else []
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        err.print(f"[warning]Multiple matches for '{escape(query)}' — use the id instead:[/warning]")
        for c in matches:
            err.print(f"  • {escape(c.website)} / {escape(c.username)} ({c.id})")
        raise typer.Exit(1)

    err.print(f"[danger]No credential found matching '[bold]{escape(query)}[/bold]'.[/danger]")
    raise typer.Exit(1)


def _strength_text(generator: SecureGenerator, password: str) -> Text:
    score, level = generator.assess(password)
    return Text(f"{level.value} ({score}/100)", style=_LEVEL_STYLES[level])


def _render_credential(
    cred: CredentialRecord, generator: SecureGenerator, *, show_password: bool = False
) -> None:
    body = Text()

    def row(label: str, value: str, style: str = "highlight") -> None:
        body.append(f"  {label:<12}", style="label")
        body.append(value + "\n", style=style)

    row("Username", cred.username)
    row("Password", cred.password if show_password else "••••••••••••", style="bold green" if show_password else "muted")
    body.append(f"  {'Strength':<12}", style="label")
    body.append_text(_strength_text(generator, cred.password))
    body.append("\n")
    if cred.notes:
        row("Notes", cred.notes, style="italic")
    row("Created", cred.created_at.strftime("%Y-%m-%d %H:%M UTC"), style="muted")
    row("Updated", cred.updated_at.strftime("%Y-%m-%d %H:%M UTC"), style="muted")
    row("ID", cred.id, style="muted")

    console.print(
        Panel(body, title=f"[bold cyan]{escape(cred.website)}[/bold cyan]", expand=False, border_style="cyan")
    )


def _render_table(creds: list[CredentialRecord], title: str = "Credentials") -> None:
    table = Table(
        title=title,
        box=box.ROUNDED,
        header_style="bold cyan",
        highlight=True,
        title_style="bold",
    )
    table.add_column("#", style="muted", justify="right", no_wrap=True)
    table.add_column("Website", style="bold white", min_width=16)
    table.add_column("Username", style="dim", min_width=14)
    table.add_column("Updated", style="muted", no_wrap=True)
    table.add_column("ID", style="muted", no_wrap=True)

    for i, c in enumerate(creds, 1):
        table.add_row(str(i), escape(c.website), escape(c.username), c.updated_at.strftime("%Y-%m-%d"), c.id[:8])
    console.print(table)


def _remote_call(ctx: typer.Context, operation: Callable[[RemoteCredentialStore], Awaitable[T]]) -> T:
    """Run one *operation* against the configured remote credential service."""
    settings = _services(ctx).settings
    if not settings.api_url:
        err.print("[danger]No remote service configured.[/danger] Set SECUREPASS_API_URL.")
        raise typer.Exit(1)

    remote = RemoteCredentialStore(settings.api_url, session_token=settings.session_token)

    async def call() -> T:
        async with remote:
            return await operation(remote)

    try:
        return asyncio.run(call())
    except TransportError as exc:
        err.print(f"[danger]Remote request failed:[/danger] {escape(str(exc))}")
        raise typer.Exit(1) from exc


def _copy(value: str, what: str) -> None:
    try:
        import pyperclip  # noqa: PLC0415

        pyperclip.copy(value)
        console.print(f"[success]{what} copied to clipboard.[/success]")
    except Exception:
        console.print("[warning]Could not access clipboard. Is pyperclip installed and configured?[/warning]")


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


@app.callback()
def main_options(
    ctx: typer.Context,
    backend: Annotated[
        Optional[BackendKind],
        typer.Option("--backend", "-b", help="Storage backend (overrides SECUREPASS_BACKEND).", show_default=False),
    ] = None,
    path: Annotated[
        Optional[Path],
        typer.Option("--path", help="Data file path (overrides SECUREPASS_PATH).", show_default=False),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", help="Log debug output to stderr.")] = False,
) -> None:
    try:
        settings = Settings.from_env(backend=backend, path=path)
    except ValidationError as exc:
        err.print(f"[danger]Invalid SECUREPASS_* configuration:[/danger] {escape(exc.errors()[0]['msg'])}")
        raise typer.Exit(1) from exc

    _configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = Services(settings)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("list")
def list_creds(ctx: typer.Context) -> None:
    """List all credentials in a formatted table."""
    creds = _services(ctx).store.get_all()
    if not creds:
        console.print("[muted]No credentials stored yet.[/muted]")
        return
    _render_table(creds, title=f"Credentials ({len(creds)} total)")


@app.command()
def add(
    ctx: typer.Context,
    website: Annotated[str, typer.Argument(help="Website or service name.")],
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="Username or email.")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", "-n", help="Free-form notes.")] = None,
    generate: Annotated[bool, typer.Option("--generate", "-g", help="Auto-generate a password.")] = False,
    length: Annotated[int, typer.Option("--length", "-l", help="Generated password length.")] = 16,
    no_upper: Annotated[bool, typer.Option("--no-upper", help="Exclude uppercase letters.")] = False,
    no_lower: Annotated[bool, typer.Option("--no-lower", help="Exclude lowercase letters.")] = False,
    no_numbers: Annotated[bool, typer.Option("--no-numbers", help="Exclude digits.")] = False,
    no_symbols: Annotated[bool, typer.Option("--no-symbols", help="Exclude symbols.")] = False,
) -> None:
    """Add a new credential."""
    services = _services(ctx)
    store = services.store

    console.print(f"\n[bold cyan]Adding[/bold cyan] [bold]{escape(website)}[/bold]\n")

    if username is None:
        username = Prompt.ask("  Username", console=console)

    if generate:
        password = services.generator.generate(_policy(length, no_upper, no_lower, no_numbers, no_symbols))
        console.print(f"  [muted]Generated:[/muted] [bold green]{escape(password)}[/bold green]")
    else:
        password = Prompt.ask("  Password", password=True, console=console)

    record = store.add({"website": website, "username": username, "password": password, "notes": notes})
    _report_persistence(store)
    console.print(f"\n[success]Credential for '[bold]{escape(website)}[/bold]' saved[/success] [muted]({record.id})[/muted]")


@app.command()
def get(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Credential id, or a term matching one credential.")],
    show: Annotated[bool, typer.Option("--show", "-s", help="Display password in plain text.")] = False,
    copy: Annotated[bool, typer.Option("--copy", "-c", help="Copy password to clipboard.")] = False,
) -> None:
    """Retrieve a credential and display its details."""
    services = _services(ctx)
    cred = _find_one(services.store, query)
    _render_credential(cred, services.generator, show_password=show)
    if copy:
        _copy(cred.password, "Password")


@app.command()
def update(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Credential id, or a term matching one credential.")],
    website: Annotated[Optional[str], typer.Option("--website", "-w", help="New website.")] = None,
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="New username.")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", "-n", help="New notes (empty string clears).")] = None,
    generate: Annotated[bool, typer.Option("--generate", "-g", help="Auto-generate a new password.")] = False,
    keep_password: Annotated[bool, typer.Option("--keep-password", "-k", help="Do not prompt for a new password.")] = False,
    length: Annotated[int, typer.Option("--length", "-l", help="Generated password length.")] = 16,
    no_upper: Annotated[bool, typer.Option("--no-upper", help="Exclude uppercase letters.")] = False,
    no_lower: Annotated[bool, typer.Option("--no-lower", help="Exclude lowercase letters.")] = False,
    no_numbers: Annotated[bool, typer.Option("--no-numbers", help="Exclude digits.")] = False,
    no_symbols: Annotated[bool, typer.Option("--no-symbols", help="Exclude symbols.")] = False,
) -> None:
    """Update an existing credential."""
    services = _services(ctx)
    store = services.store
    cred = _find_one(store, query)

    changes: dict[str, str] = {}
    if website is not None:
        changes["website"] = website
    if username is not None:
        changes["username"] = username
    if notes is not None:
        changes["notes"] = notes

    if generate:
        changes["password"] = services.generator.generate(
            _policy(length, no_upper, no_lower, no_numbers, no_symbols)
        )
        console.print(f"  [muted]New password:[/muted] [bold green]{escape(changes['password'])}[/bold green]")
    elif not keep_password:
        new_pw = Prompt.ask(
            "  New password [muted](blank to keep current)[/muted]",
            password=True,
            default="",
            show_default=False,
            console=console,
        )
        if new_pw:
            changes["password"] = new_pw

    if not changes:
        console.print("[muted]No changes made.[/muted]")
        return

    updated = store.update(cred.id, changes)
    if updated is None:
        err.print(f"[danger]Credential {cred.id} no longer exists.[/danger]")
        raise typer.Exit(1)
    _report_persistence(store)
    console.print(f"[success]Credential for '[bold]{escape(updated.website)}[/bold]' updated.[/success]")


@app.command()
def delete(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Credential id, or a term matching one credential.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Permanently delete a credential."""
    store = _services(ctx).store
    cred = _find_one(store, query)

    if not yes:
        confirmed = Confirm.ask(
            f"  Delete '[bold]{escape(cred.website)}[/bold]' ({escape(cred.username)})? [muted]This cannot be undone.[/muted]",
            default=False,
            console=console,
        )
        if not confirmed:
            raise typer.Exit(0)

    if not store.delete(cred.id):
        err.print(f"[danger]Credential {cred.id} no longer exists.[/danger]")
        raise typer.Exit(1)
    _report_persistence(store)
    console.print(f"[danger]Credential for '[bold]{escape(cred.website)}[/bold]' deleted.[/danger]")


@app.command()
def search(
    ctx: typer.Context,
    term: Annotated[str, typer.Argument(help="Substring of a website or username (case-insensitive).")],
) -> None:
    """Search credentials by website or username."""
    results = _services(ctx).store.search(term)
    if not results:
        console.print(f"[muted]No results for '[bold]{escape(term)}[/bold]'.[/muted]")
        return
    _render_table(results, title=f"Search: {escape(term)}  ({len(results)} match{'es' if len(results) != 1 else ''})")


@app.command()
def generate(
    ctx: typer.Context,
    length: Annotated[int, typer.Option("--length", "-l", help="Password length.")] = 16,
    count: Annotated[int, typer.Option("--count", "-c", min=1, help="Number of passwords to generate.")] = 1,
    no_upper: Annotated[bool, typer.Option("--no-upper", help="Exclude uppercase letters.")] = False,
    no_lower: Annotated[bool, typer.Option("--no-lower", help="Exclude lowercase letters.")] = False,
    no_numbers: Annotated[bool, typer.Option("--no-numbers", help="Exclude digits.")] = False,
    no_symbols: Annotated[bool, typer.Option("--no-symbols", help="Exclude symbols.")] = False,
    copy: Annotated[bool, typer.Option("--copy", help="Copy first password to clipboard.")] = False,
) -> None:
    """Generate one or more strong random passwords."""
    generator = _services(ctx).generator
    policy = _policy(length, no_upper, no_lower, no_numbers, no_symbols)
    passwords = [generator.generate(policy) for _ in range(count)]

    if count == 1:
        console.print(
            Panel(
                Text.assemble((passwords[0], "bold green"), "\n", _strength_text(generator, passwords[0])),
                title=f"[bold]Generated password ({length} chars)[/bold]",
                border_style="green",
                expand=False,
            )
        )
    else:
        console.print(f"\n[bold]Generated {count} passwords ({length} chars each)[/bold]\n")
        for i, pw in enumerate(passwords, 1):
            console.print(
                Text.assemble((f"  {i:>3}.  ", "muted"), (pw, "bold green"), "  ", _strength_text(generator, pw))
            )
        console.print()

    if copy:
        _copy(passwords[0], "First password")


@app.command()
def strength(
    ctx: typer.Context,
    password: Annotated[
        Optional[str],
        typer.Argument(help="Password to score; prompted (hidden) when omitted.", show_default=False),
    ] = None,
) -> None:
    """Score the strength of an existing password."""
    generator = _services(ctx).generator
    if password is None:
        password = Prompt.ask("Password", password=True, console=console)
    console.print(Text.assemble(("Strength: ", "label"), _strength_text(generator, password)))


@app.command()
def clear(
    ctx: typer.Context,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Erase every stored credential. Irreversible."""
    store = _services(ctx).store
    if not yes:
        confirmed = Confirm.ask(
            f"  Erase all {len(store)} credential(s)? [muted]This cannot be undone.[/muted]",
            default=False,
            console=console,
        )
        if not confirmed:
            raise typer.Exit(0)

    store.clear_all()
    _report_persistence(store)
    console.print("[danger]All credentials erased.[/danger]")


@app.command()
def info(ctx: typer.Context) -> None:
    """Show configuration and storage details."""
    services = _services(ctx)
    settings = services.settings

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Version", __version__)
    table.add_row("Backend", settings.backend.value)

    if settings.backend is not BackendKind.MEMORY and settings.path is not None:
        path = settings.path
        table.add_row("Data path", str(path))
        table.add_row("Data exists", "[green]yes[/green]" if path.exists() else "[red]no[/red]")
        if path.exists():
            table.add_row("Data size", f"{path.stat().st_size / 1024:.1f} KB")
            table.add_row("Credentials", str(len(services.store)))
    if settings.api_url:
        table.add_row("API URL", settings.api_url)

    console.print(Panel(table, title="[bold cyan]securepass info[/bold cyan]", border_style="cyan", expand=False))


# ---------------------------------------------------------------------------
# Remote commands
# ---------------------------------------------------------------------------


@remote_app.command("list")
def remote_list(ctx: typer.Context) -> None:
    """List credentials held by the remote service."""
    creds = _remote_call(ctx, lambda remote: remote.get_all())
    if not creds:
        console.print("[muted]No credentials stored remotely.[/muted]")
        return
    _render_table(creds, title=f"Remote credentials ({len(creds)} total)")


@remote_app.command("search")
def remote_search(
    ctx: typer.Context,
    term: Annotated[str, typer.Argument(help="Substring of a website or username (case-insensitive).")],
) -> None:
    """Search remote credentials by website or username."""
    results = _remote_call(ctx, lambda remote: remote.search(term))
    if not results:
        console.print(f"[muted]No results for '[bold]{escape(term)}[/bold]'.[/muted]")
        return
    _render_table(results, title=f"Remote search: {escape(term)}  ({len(results)})")


@remote_app.command("get")
def remote_get(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Argument(help="Credential id.")],
    show: Annotated[bool, typer.Option("--show", "-s", help="Display password in plain text.")] = False,
) -> None:
    """Show one remote credential."""
    cred = _remote_call(ctx, lambda remote: remote.get_by_id(record_id))
    if cred is None:
        err.print(f"[danger]No remote credential with id '{escape(record_id)}'.[/danger]")
        raise typer.Exit(1)
    _render_credential(cred, _services(ctx).generator, show_password=show)


@remote_app.command("add")
def remote_add(
    ctx: typer.Context,
    website: Annotated[str, typer.Argument(help="Website or service name.")],
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="Username or email.")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", "-n", help="Free-form notes.")] = None,
    generate: Annotated[bool, typer.Option("--generate", "-g", help="Auto-generate a password.")] = False,
    length: Annotated[int, typer.Option("--length", "-l", help="Generated password length.")] = 16,
) -> None:
    """Add a credential to the remote service."""
    services = _services(ctx)
    if username is None:
        username = Prompt.ask("  Username", console=console)
    if generate:
        password = services.generator.generate(_policy(length, False, False, False, False))
        console.print(f"  [muted]Generated:[/muted] [bold green]{escape(password)}[/bold green]")
    else:
        password = Prompt.ask("  Password", password=True, console=console)

    draft = {"website": website, "username": username, "password": password, "notes": notes}
    record = _remote_call(ctx, lambda remote: remote.add(draft))
    console.print(f"[success]Credential for '[bold]{escape(website)}[/bold]' saved remotely[/success] [muted]({record.id})[/muted]")


@remote_app.command("delete")
def remote_delete(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Argument(help="Credential id.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Delete a credential on the remote service."""
    if not yes and not Confirm.ask(f"  Delete remote credential {escape(record_id)}?", default=False, console=console):
        raise typer.Exit(0)
    if not _remote_call(ctx, lambda remote: remote.delete(record_id)):
        err.print(f"[danger]No remote credential with id '{escape(record_id)}'.[/danger]")
        raise typer.Exit(1)
    console.print("[danger]Remote credential deleted.[/danger]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()


if __name__ == "__main__":
    main()

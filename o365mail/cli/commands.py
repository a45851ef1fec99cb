"""CLI commands for o365-mail."""

import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, NoReturn

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from o365mail import __logo__, __version__
from o365mail.auth.errors import AccountNotFoundError, AuthError, NotLoggedInError
from o365mail.auth.session import AuthSession
from o365mail.config.accounts import AccountRegistry, resolve_active_account
from o365mail.config.loader import get_config_path, get_value, load_config, save_config, set_value
from o365mail.config.schema import Config
from o365mail.mail import GraphBackend, MailBackend, MailError, SearchCriteria, SendOptions, create_backend
from o365mail.utils.helpers import parse_duration, truncate

app = typer.Typer(
    name="o365-mail",
    help=f"{__logo__} o365-mail - Office 365 mail from the terminal",
    no_args_is_help=True,
)

console = Console()


@dataclass
class CLIState:
    """Per-invocation settings shared by every sub-command."""

    config: Config
    config_path: Path
    account_flag: str | None = None
    json_output: bool = False


def get_session(config: Config) -> AuthSession:
    return AuthSession(config)


def get_backend(config: Config, account: str, access_token: str) -> MailBackend:
    return create_backend(config, account, access_token)


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {escape(message)}[/red]")
    raise typer.Exit(1)


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        state = CLIState(config=load_config(), config_path=get_config_path())
        ctx.obj = state
    return state


def _registry(state: CLIState) -> AccountRegistry:
    return AccountRegistry.for_config(state.config)


def _active_account(state: CLIState) -> str:
    return resolve_active_account(state.config, _registry(state), state.account_flag)


def _record_accounts(change: Callable[..., str | None], *args: str) -> str:
    """Apply a registry change; a broken accounts file only costs bookkeeping."""
    try:
        return change(*args) or ""
    except ValueError as e:
        logger.warning(f"{e} (account list not updated)")
        return ""


def _update_saved_config(state: CLIState, **changes: Any) -> None:
    """Persist changes on top of the file contents, not the env-merged view."""
    saved = load_config(state.config_path, env={})
    for key, value in changes.items():
        setattr(saved, key, value)
        setattr(state.config, key, value)
    save_config(saved, state.config_path)


def _format_time(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _configure_logging(debug: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "WARNING")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} o365-mail v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    debug: bool = typer.Option(False, "--debug", help="Log debug output to stderr"),
    account: str = typer.Option(None, "--account", "-a", help="Account to use (email)"),
    backend: str = typer.Option(None, "--backend", "-b", help="Mail backend: graph or imap"),
    json_output: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    config_file: Path = typer.Option(None, "--config", help="Path to config.json"),
):
    """o365-mail - Office 365 mail from the terminal."""
    config_path = config_file or get_config_path()
    config = load_config(config_path)
    if backend:
        try:
            config = set_value(config, "backend", backend)
        except ValueError:
            _fail(f"Unknown backend '{backend}' (expected graph or imap)")
    _configure_logging(debug or config.debug)
    ctx.obj = CLIState(
        config=config,
        config_path=config_path,
        account_flag=account,
        json_output=json_output,
    )


# ============================================================================
# Auth Commands
# ============================================================================

auth_app = typer.Typer(help="Sign in and manage accounts")
app.add_typer(auth_app, name="auth")


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    timeout: float = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the browser step (default: until the code expires)"
    ),
):
    """Sign in with the device code flow."""
    state = _state(ctx)
    try:
        session = get_session(state.config)
        info, pending = session.authenticator.start_device_code_flow()
    except AuthError as e:
        _fail(str(e))

    console.print(
        Panel(
            f"Open [cyan]{info.verification_url}[/cyan] and enter the code:\n\n"
            f"    [bold]{info.user_code}[/bold]\n\n"
            f"[dim]The code expires in {info.expires_in // 60} minutes.[/dim]",
            title=f"{__logo__} Sign in to Office 365",
        )
    )

    try:
        with console.status("Waiting for sign-in..."):
            result = pending.wait(timeout)
    except KeyboardInterrupt:
        pending.abandon()
        _fail("Login cancelled")
    except AuthError as e:
        _fail(str(e))

    _record_accounts(_registry(state).add, result.account)
    _update_saved_config(state, current_account=result.account)
    console.print(f"[green]✓[/green] Signed in as {result.account}")


@auth_app.command("logout")
def auth_logout(
    ctx: typer.Context,
    email: str = typer.Argument(None, help="Account to sign out (default: active account)"),
    all: bool = typer.Option(False, "--all", help="Sign out every account"),
):
    """Remove cached tokens."""
    state = _state(ctx)
    registry = _registry(state)
    try:
        manager = get_session(state.config).manager
        if all:
            manager.logout_all()
            _record_accounts(registry.remove_all)
            _update_saved_config(state, current_account="")
            console.print("[green]✓[/green] Signed out of all accounts")
            return

        target = email or _active_account(state)
        if not target:
            _fail("No account to sign out")
        manager.logout(target)
        signed_out = True
    except AccountNotFoundError:
        signed_out = False
    except AuthError as e:
        _fail(str(e))

    _record_accounts(registry.remove, target)
    if state.config.current_account == target:
        _update_saved_config(state, current_account=_record_accounts(registry.first))
    if signed_out:
        console.print(f"[green]✓[/green] Signed out {target}")
    else:
        console.print(f"[yellow]Account {escape(target)} is not logged in.[/yellow]")


@auth_app.command("status")
def auth_status(ctx: typer.Context):
    """Show login state of the active account."""
    state = _state(ctx)
    account = _active_account(state)
    try:
        status = get_session(state.config).manager.get_status(account)
    except AuthError as e:
        _fail(str(e))

    if state.json_output:
        console.print_json(
            data={
                "account": status.account,
                "state": status.state.value,
                "expires_at": status.expires_at.isoformat() if status.expires_at else None,
                "error": status.error,
            }
        )
        return

    if not status.logged_in:
        console.print(f"[yellow]Not logged in{' as ' + escape(account) if account else ''}[/yellow]")
        console.print("Run [cyan]o365-mail auth login[/cyan] to sign in.")
        return

    console.print(f"{__logo__} Account: {status.account}")
    if status.state.value == "valid":
        console.print(f"Token: [green]✓ valid[/green] until {_format_time(status.expires_at)}")
    else:
        console.print(f"Token: [red]✗ expired[/red] ({escape(status.error)})")
        console.print("Run [cyan]o365-mail auth login[/cyan] to sign in again.")


@auth_app.command("list")
def auth_list(ctx: typer.Context):
    """List signed-in accounts."""
    state = _state(ctx)
    try:
        statuses = get_session(state.config).manager.get_all_statuses()
    except AuthError as e:
        _fail(str(e))
    # Without an explicit choice the first cached account is the one commands use.
    active = _active_account(state) or (statuses[0].account if statuses else "")

    if state.json_output:
        console.print_json(
            data=[
                {
                    "account": s.account,
                    "state": s.state.value,
                    "active": s.account == active,
                    "expires_at": s.expires_at.isoformat() if s.expires_at else None,
                }
                for s in statuses
            ]
        )
        return

    if not statuses:
        console.print("No accounts signed in.")
        return

    table = Table(title="Accounts")
    table.add_column("", width=1)
    table.add_column("Account", style="cyan")
    table.add_column("Token")
    table.add_column("Expires")
    for s in statuses:
        token = "[green]valid[/green]" if s.state.value == "valid" else "[red]expired[/red]"
        table.add_row("*" if s.account == active else "", s.account, token, _format_time(s.expires_at))
    console.print(table)


@auth_app.command("switch")
def auth_switch(
    ctx: typer.Context,
    email: str = typer.Argument(..., help="Account to make active"),
):
    """Change the default account."""
    state = _state(ctx)
    try:
        accounts = get_session(state.config).manager.list_accounts()
    except AuthError as e:
        _fail(str(e))
    if email not in accounts:
        _fail(f"Account {email} not found. Use 'o365-mail auth list' to see signed-in accounts.")
    _update_saved_config(state, current_account=email)
    console.print(f"[green]✓[/green] Switched to {email}")


@auth_app.command("diagnose")
def auth_diagnose(
    ctx: typer.Context,
    email: str = typer.Argument(None, help="Account to inspect (default: active account)"),
):
    """Inspect the token cache and try a silent refresh."""
    state = _state(ctx)
    account = email or _active_account(state)
    try:
        detail = get_session(state.config).manager.get_detailed_status(account)
    except AuthError as e:
        _fail(str(e))

    if state.json_output:
        console.print_json(
            data={
                "account": detail.account,
                "cache_file": detail.cache_file,
                "has_cached_token": detail.has_cached_token,
                "cache_size": detail.cache_size,
                "cached_accounts": detail.cached_accounts,
                "found": detail.found,
                "silent_refresh_ok": detail.silent_refresh_ok,
                "access_expiry": detail.access_expiry.isoformat() if detail.access_expiry else None,
                "last_error": detail.last_error,
            }
        )
        return

    ok, no = "[green]✓[/green]", "[red]✗[/red]"
    console.print(f"{__logo__} Auth diagnostics\n")
    console.print(f"Account: {detail.account or '[dim]none[/dim]'}")
    console.print(f"Cache file: {detail.cache_file} {ok if detail.has_cached_token else no}")
    console.print(f"Cache size: {detail.cache_size} bytes")
    console.print(f"Cached accounts: {detail.cached_accounts}")
    console.print(f"Account in cache: {ok if detail.found else no}")
    console.print(f"Silent refresh: {ok if detail.silent_refresh_ok else no}")
    if detail.access_expiry:
        console.print(f"Access token expires: {_format_time(detail.access_expiry)}")
    if detail.last_error:
        console.print(f"Last error: [red]{escape(detail.last_error)}[/red]")


# ============================================================================
# Mail Commands
# ============================================================================

mail_app = typer.Typer(help="Read, search and send mail")
app.add_typer(mail_app, name="mail")


def _open_backend(state: CLIState) -> MailBackend:
    account = _active_account(state)
    try:
        token = get_session(state.config).manager.get_token(account)
    except NotLoggedInError as e:
        _fail(f"{e.message}\nRun 'o365-mail auth login' to sign in.")
    except AuthError as e:
        _fail(str(e))
    return get_backend(state.config, token.account, token.access_token)


def _read_body(body: str | None, body_file: Path | None, required: bool = True) -> str:
    if body_file:
        try:
            return body_file.read_text(encoding="utf-8")
        except OSError as e:
            _fail(f"Cannot read {body_file}: {e}")
    if body is None and required:
        _fail("Must specify --body or --body-file")
    return body or ""


def _open_graph(state: CLIState, feature: str) -> GraphBackend:
    backend = _open_backend(state)
    if not isinstance(backend, GraphBackend):
        backend.close()
        _fail(f"{feature} need the graph backend (use --backend graph)")
    return backend


def _print_emails(state: CLIState, emails: list, title: str) -> None:
    if state.json_output:
        console.print_json(data=[e.to_dict() for e in emails])
        return
    if not emails:
        console.print("No messages.")
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan", overflow="fold")
    table.add_column("Date")
    table.add_column("From")
    table.add_column("Subject")
    for e in emails:
        subject = truncate(e.subject, 60)
        if e.unread:
            subject = f"[bold]{escape(subject)}[/bold]"
        else:
            subject = escape(subject)
        table.add_row(e.id, _format_time(e.date), escape(truncate(e.sender, 40)), subject)
    console.print(table)


@mail_app.command("list")
def mail_list(
    ctx: typer.Context,
    folder: str = typer.Option("inbox", "--folder", "-f", help="Folder to list"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of messages"),
    unread: bool = typer.Option(False, "--unread", "-u", help="Only unread messages"),
):
    """List recent messages."""
    state = _state(ctx)
    try:
        with _open_backend(state) as backend:
            emails = backend.list_emails(folder, limit=limit, unread_only=unread)
    except MailError as e:
        _fail(str(e))
    _print_emails(state, emails, title=folder)


@mail_app.command("read")
def mail_read(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message ID"),
    folder: str = typer.Option("inbox", "--folder", "-f", help="Folder containing the message"),
):
    """Show one message."""
    state = _state(ctx)
    try:
        with _open_backend(state) as backend:
            email = backend.get_email(folder, message_id)
    except MailError as e:
        _fail(str(e))

    if state.json_output:
        console.print_json(data=email.to_dict())
        return

    console.print(f"[bold]From:[/bold] {escape(email.sender)}")
    console.print(f"[bold]To:[/bold] {escape(', '.join(email.to))}")
    if email.cc:
        console.print(f"[bold]Cc:[/bold] {escape(', '.join(email.cc))}")
    console.print(f"[bold]Date:[/bold] {_format_time(email.date)}")
    console.print(f"[bold]Subject:[/bold] {escape(email.subject)}\n")
    console.print(email.body, markup=False, highlight=False)


@mail_app.command("send")
def mail_send(
    ctx: typer.Context,
    to: list[str] = typer.Option(..., "--to", help="Recipient (repeatable)"),
    subject: str = typer.Option(..., "--subject", "-s", help="Subject line"),
    body: str = typer.Option(None, "--body", help="Message body"),
    body_file: Path = typer.Option(None, "--body-file", help="Read the body from a file"),
    cc: list[str] = typer.Option(None, "--cc", help="Cc recipient (repeatable)"),
    bcc: list[str] = typer.Option(None, "--bcc", help="Bcc recipient (repeatable)"),
    html: bool = typer.Option(False, "--html", help="Send the body as HTML"),
):
    """Send a message."""
    state = _state(ctx)
    body = _read_body(body, body_file)
    options = SendOptions(to=to, subject=subject, body=body, cc=cc or [], bcc=bcc or [], html=html)
    try:
        with _open_backend(state) as backend:
            backend.send(options)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Sent to {len(options.recipients())} recipient(s)")


@mail_app.command("move")
def mail_move(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message ID"),
    destination: str = typer.Argument(..., help="Destination folder"),
    folder: str = typer.Option("inbox", "--folder", "-f", help="Folder containing the message"),
):
    """Move a message to another folder."""
    state = _state(ctx)
    try:
        with _open_backend(state) as backend:
            backend.move_email(folder, message_id, destination)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Moved {message_id} to {destination}")


@mail_app.command("trash")
def mail_trash(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message ID"),
    folder: str = typer.Option("inbox", "--folder", "-f", help="Folder containing the message"),
):
    """Move a message to Deleted Items."""
    state = _state(ctx)
    try:
        with _open_backend(state) as backend:
            backend.trash_email(folder, message_id)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Moved {message_id} to trash")


@mail_app.command("search")
def mail_search(
    ctx: typer.Context,
    sender: str = typer.Option("", "--from", help="Sender address contains"),
    subject: str = typer.Option("", "--subject", "-s", help="Subject contains"),
    since: str = typer.Option(None, "--since", help="Received within, e.g. 12h, 7d, 2w"),
    unread: bool = typer.Option(False, "--unread", "-u", help="Only unread messages"),
    folder: str = typer.Option("inbox", "--folder", "-f", help="Folder to search"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of messages"),
):
    """Search messages."""
    state = _state(ctx)
    criteria = SearchCriteria(sender=sender, subject=subject, unread_only=unread)
    if since:
        try:
            criteria.since = datetime.now(timezone.utc) - parse_duration(since)
        except ValueError as e:
            _fail(str(e))

    try:
        with _open_backend(state) as backend:
            emails = backend.search_emails(folder, criteria, limit=limit)
    except MailError as e:
        _fail(str(e))
    _print_emails(state, emails, title=f"Search results in {folder}")


def _set_read(ctx: typer.Context, message_id: str, folder: str, read: bool) -> None:
    state = _state(ctx)
    try:
        with _open_backend(state) as backend:
            backend.mark_read(folder, message_id, read=read)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Marked {message_id} as {'read' if read else 'unread'}")


@mail_app.command("mark-read")
def mail_mark_read(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message ID"),
    folder: str = typer.Option("inbox", "--folder", "-f", help="Folder containing the message"),
):
    """Mark a message as read."""
    _set_read(ctx, message_id, folder, True)


@mail_app.command("mark-unread")
def mail_mark_unread(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message ID"),
    folder: str = typer.Option("inbox", "--folder", "-f", help="Folder containing the message"),
):
    """Mark a message as unread."""
    _set_read(ctx, message_id, folder, False)


@mail_app.command("reply")
def mail_reply(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message ID"),
    body: str = typer.Option(None, "--body", help="Reply text"),
    body_file: Path = typer.Option(None, "--body-file", help="Read the reply text from a file"),
    reply_all: bool = typer.Option(False, "--reply-all", help="Reply to all recipients"),
):
    """Reply to a message."""
    state = _state(ctx)
    comment = _read_body(body, body_file)
    try:
        with _open_graph(state, "Replies") as backend:
            backend.reply_email(message_id, comment, reply_all=reply_all)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Reply{' to all' if reply_all else ''} sent")


@mail_app.command("forward")
def mail_forward(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message ID"),
    to: list[str] = typer.Option(..., "--to", help="Recipient (repeatable)"),
    body: str = typer.Option(None, "--body", help="Text to add above the forwarded message"),
    body_file: Path = typer.Option(None, "--body-file", help="Read the added text from a file"),
):
    """Forward a message."""
    state = _state(ctx)
    comment = _read_body(body, body_file, required=False)
    try:
        with _open_graph(state, "Forwards") as backend:
            backend.forward_email(message_id, to, comment)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Forwarded to {len(to)} recipient(s)")


@mail_app.command("archive-from")
def mail_archive_from(
    ctx: typer.Context,
    senders: list[str] = typer.Argument(..., help="Exact sender address (one or more)"),
    folder: str = typer.Option("inbox", "--folder", "-f", help="Folder to search"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be archived"),
):
    """Move every message from the given senders to Archive."""
    state = _state(ctx)
    failed = []
    archived = 0
    try:
        with _open_graph(state, "Archive moves by sender") as backend:
            emails = backend.list_emails_from_senders(folder, senders)
            if not emails:
                console.print("No messages from the given sender(s).")
                return
            console.print(f"Found {len(emails)} message(s) from {', '.join(senders)}")
            if dry_run:
                for e in emails:
                    day = e.date.astimezone().strftime("%Y-%m-%d") if e.date else ""
                    line = f"  • [{day}] {truncate(e.sender, 30)} - {truncate(e.subject, 40)}"
                    console.print(line, markup=False, highlight=False)
                return
            for e in emails:
                try:
                    backend.move_email(folder, e.id, "archive")
                    archived += 1
                except MailError as exc:
                    logger.debug(f"Archiving {e.id} failed: {exc}")
                    failed.append(e)
    except MailError as e:
        _fail(str(e))

    for e in failed:
        console.print(f"[red]✗[/red] Failed to archive: {escape(truncate(e.subject, 50))}")
    console.print(f"[green]✓[/green] Archived {archived} message(s)")
    if failed:
        raise typer.Exit(1)


drafts_app = typer.Typer(help="Create, list and send drafts (graph backend)")
mail_app.add_typer(drafts_app, name="drafts")


@drafts_app.command("create")
def drafts_create(
    ctx: typer.Context,
    to: list[str] = typer.Option(..., "--to", help="Recipient (repeatable)"),
    subject: str = typer.Option(..., "--subject", "-s", help="Subject line"),
    body: str = typer.Option(None, "--body", help="Message body"),
    body_file: Path = typer.Option(None, "--body-file", help="Read the body from a file"),
    cc: list[str] = typer.Option(None, "--cc", help="Cc recipient (repeatable)"),
    html: bool = typer.Option(False, "--html", help="Body is HTML"),
):
    """Save a draft."""
    state = _state(ctx)
    options = SendOptions(to=to, subject=subject, body=_read_body(body, body_file), cc=cc or [], html=html)
    try:
        with _open_graph(state, "Drafts") as backend:
            draft_id = backend.create_draft(options)
    except MailError as e:
        _fail(str(e))
    if state.json_output:
        console.print_json(data={"id": draft_id})
        return
    console.print(f"[green]✓[/green] Draft saved (ID: {draft_id})")


@drafts_app.command("list")
def drafts_list(
    ctx: typer.Context,
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum number of drafts"),
):
    """List drafts."""
    state = _state(ctx)
    try:
        with _open_graph(state, "Drafts") as backend:
            drafts = backend.list_drafts(limit=limit)
    except MailError as e:
        _fail(str(e))

    if state.json_output:
        console.print_json(data=[d.to_dict() for d in drafts])
        return
    if not drafts:
        console.print("No drafts.")
        return

    table = Table(title="Drafts")
    table.add_column("ID", style="cyan", overflow="fold")
    table.add_column("Date")
    table.add_column("To")
    table.add_column("Subject")
    for d in drafts:
        table.add_row(
            d.id,
            _format_time(d.date),
            escape(truncate(d.to[0], 25)) if d.to else "",
            escape(truncate(d.subject, 40)),
        )
    console.print(table)


@drafts_app.command("send")
def drafts_send(ctx: typer.Context, message_id: str = typer.Argument(..., help="Draft ID")):
    """Send a draft."""
    state = _state(ctx)
    try:
        with _open_graph(state, "Drafts") as backend:
            backend.send_draft(message_id)
    except MailError as e:
        _fail(str(e))
    console.print("[green]✓[/green] Draft sent")


@drafts_app.command("delete")
def drafts_delete(ctx: typer.Context, message_id: str = typer.Argument(..., help="Draft ID")):
    """Delete a draft."""
    state = _state(ctx)
    try:
        with _open_graph(state, "Drafts") as backend:
            backend.delete_draft(message_id)
    except MailError as e:
        _fail(str(e))
    console.print("[green]✓[/green] Draft deleted")


# ============================================================================
# Folder Commands
# ============================================================================

folders_app = typer.Typer(help="Manage mail folders")
app.add_typer(folders_app, name="folders")


@folders_app.command("list")
def folders_list(ctx: typer.Context):
    """List folders."""
    state = _state(ctx)
    try:
        with _open_backend(state) as backend:
            folders = backend.list_folders()
    except MailError as e:
        _fail(str(e))

    if state.json_output:
        console.print_json(data=[f.to_dict() for f in folders])
        return

    table = Table(title="Folders")
    table.add_column("Name", style="cyan")
    table.add_column("Unread", justify="right")
    table.add_column("Total", justify="right")
    for f in folders:
        table.add_row(
            escape(f.name),
            "" if f.unread_count is None else str(f.unread_count),
            "" if f.total_count is None else str(f.total_count),
        )
    console.print(table)


@folders_app.command("create")
def folders_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Folder name"),
):
    """Create a folder."""
    state = _state(ctx)
    try:
        with _open_backend(state) as backend:
            backend.create_folder(name)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Created folder '{escape(name)}'")


@folders_app.command("delete")
def folders_delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Folder name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a folder and everything in it."""
    state = _state(ctx)
    if not yes and not typer.confirm(f"Delete folder '{name}' and all its messages?"):
        raise typer.Exit()
    try:
        with _open_backend(state) as backend:
            backend.delete_folder(name)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Deleted folder '{escape(name)}'")


# ============================================================================
# Rule Commands
# ============================================================================

rules_app = typer.Typer(help="Manage inbox rules (graph backend)")
app.add_typer(rules_app, name="rules")


@rules_app.command("list")
def rules_list(ctx: typer.Context):
    """List inbox rules."""
    state = _state(ctx)
    try:
        with _open_graph(state, "Inbox rules") as backend:
            rules = backend.list_rules()
    except MailError as e:
        _fail(str(e))

    if state.json_output:
        console.print_json(data=rules)
        return
    if not rules:
        console.print("No inbox rules.")
        return

    table = Table(title="Inbox Rules")
    table.add_column("ID", style="cyan", overflow="fold")
    table.add_column("Name")
    table.add_column("Order", justify="right")
    table.add_column("Status")
    for rule in rules:
        status = "[green]enabled[/green]" if rule.get("isEnabled") else "[dim]disabled[/dim]"
        table.add_row(
            rule.get("id", ""),
            escape(rule.get("displayName", "")),
            str(rule.get("sequence", "")),
            status,
        )
    console.print(table)


@rules_app.command("get")
def rules_get(ctx: typer.Context, rule_id: str = typer.Argument(..., help="Rule ID")):
    """Show one inbox rule with its conditions and actions."""
    state = _state(ctx)
    try:
        with _open_graph(state, "Inbox rules") as backend:
            rule = backend.get_rule(rule_id)
    except MailError as e:
        _fail(str(e))

    if state.json_output:
        console.print_json(data=rule)
        return

    console.print(f"[bold]{escape(rule.get('displayName', rule_id))}[/bold] ({rule.get('id', rule_id)})")
    console.print(f"Enabled: {'yes' if rule.get('isEnabled') else 'no'}")
    console.print(f"Order: {rule.get('sequence', '')}")
    for section in ("conditions", "exceptions", "actions"):
        values = rule.get(section) or {}
        if not values:
            continue
        console.print(f"{section.capitalize()}:")
        for key, value in values.items():
            console.print(f"  {key}: {value}", markup=False, highlight=False)


def _set_rule(ctx: typer.Context, rule_id: str, enabled: bool) -> None:
    state = _state(ctx)
    try:
        with _open_graph(state, "Inbox rules") as backend:
            rule = backend.set_rule_enabled(rule_id, enabled)
    except MailError as e:
        _fail(str(e))
    name = rule.get("displayName") or rule_id
    console.print(f"[green]✓[/green] Rule '{escape(name)}' {'enabled' if enabled else 'disabled'}")


@rules_app.command("enable")
def rules_enable(ctx: typer.Context, rule_id: str = typer.Argument(..., help="Rule ID")):
    """Enable an inbox rule."""
    _set_rule(ctx, rule_id, True)


@rules_app.command("disable")
def rules_disable(ctx: typer.Context, rule_id: str = typer.Argument(..., help="Rule ID")):
    """Disable an inbox rule."""
    _set_rule(ctx, rule_id, False)


@rules_app.command("delete")
def rules_delete(ctx: typer.Context, rule_id: str = typer.Argument(..., help="Rule ID")):
    """Delete an inbox rule."""
    state = _state(ctx)
    try:
        with _open_graph(state, "Inbox rules") as backend:
            backend.delete_rule(rule_id)
    except MailError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Deleted rule {rule_id}")


# ============================================================================
# Config Commands
# ============================================================================

config_app = typer.Typer(help="Show and change settings")
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Show the effective configuration."""
    state = _state(ctx)
    data = state.config.model_dump()
    if state.json_output:
        console.print_json(data=data)
        return

    table = Table(title=f"Config ({state.config_path})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


@config_app.command("get")
def config_get(ctx: typer.Context, key: str = typer.Argument(..., help="Setting name")):
    """Print one setting."""
    state = _state(ctx)
    try:
        value = get_value(state.config, key)
    except ValueError as e:
        _fail(str(e))
    console.print(str(value), markup=False, highlight=False)


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Setting name"),
    value: str = typer.Argument(..., help="New value"),
):
    """Change one setting in the config file."""
    state = _state(ctx)
    try:
        saved = set_value(load_config(state.config_path, env={}), key, value)
    except ValueError as e:
        _fail(str(e))
    save_config(saved, state.config_path)
    console.print(f"[green]✓[/green] Set {key} in {state.config_path}")


@config_app.command("path")
def config_path(ctx: typer.Context):
    """Print the config file location."""
    console.print(str(_state(ctx).config_path), markup=False, highlight=False)


if __name__ == "__main__":
    app()

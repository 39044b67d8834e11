"""Taurus CLI — terminal client for the Taurus chat backend.

Unified entry point for chats, message submission, integrations,
and file attachments.

Usage:
    taurus chat list              List chats
    taurus send "hello"           Send a message and wait for the reply
    taurus provider connect github
    taurus files upload ID a.pdf  Attach files to a chat
    taurus interact               Start conversational REPL
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from src.cli.config import TaurusConfig, load_config, load_config_or_default
from src.cli.factory import get_engine
from src.cli.output import (
    format_agents,
    format_conversation,
    format_files_table,
    format_models,
    format_notices,
    format_provider_table,
    format_session_table,
)
from src.cli.protocol import TaurusClientError
from src.engine.engine import ChatEngine
from src.engine.providers import ConnectionStatus, ProviderKey
from src.engine.submission import SUGGESTIONS, SubmissionOutcome
from src.utils.redaction import mask_secret

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="taurus",
    help="Taurus AI chat client",
    no_args_is_help=True,
)
chat_app = typer.Typer(help="Manage chats")
provider_app = typer.Typer(help="Manage third-party integrations")
files_app = typer.Typer(help="Manage attached files")
config_app = typer.Typer(help="Configuration management")

app.add_typer(chat_app, name="chat")
app.add_typer(provider_app, name="provider")
app.add_typer(files_app, name="files")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None
_logging_configured = False

_LOG_FORMATS = {
    "text": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
    "json": '{"time": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}',
}


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to taurus.yaml config file"
    ),
):
    """Taurus CLI — chat with Taurus AI from the terminal."""
    global _config_path
    _config_path = config


def configure_logging(cfg: TaurusConfig) -> None:
    """Apply the logging section once per process.

    Logs go to stderr (or the configured file) so they never mix with
    command output on stdout.
    """
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True
    handler: logging.Handler
    if cfg.logging.file:
        path = Path(cfg.logging.file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path)
    else:
        handler = logging.StreamHandler(sys.stderr)
    logging.basicConfig(
        level=cfg.logging.level.upper(),
        format=_LOG_FORMATS[cfg.logging.format],
        handlers=[handler],
    )
    logging.getLogger("src").setLevel(cfg.logging.level.upper())
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load() -> TaurusConfig:
    """Load config (or defaults) and configure logging."""
    try:
        cfg = load_config_or_default(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except (ValueError, TypeError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)
    configure_logging(cfg)
    return cfg


def _flush(engine: ChatEngine) -> bool:
    """Print pending notices. Returns True if any was an error."""
    had_errors = engine.notices.has_errors()
    notices = engine.notices.drain()
    if notices:
        console.print(format_notices(notices))
    return had_errors


def _run(cfg: TaurusConfig, body, navigate=None) -> None:
    """Run ``body(engine)`` inside an opened engine and settle the exit code.

    Args:
        cfg: Loaded configuration.
        body: Async callable receiving the ChatEngine.
        navigate: Opener for external authorization URLs.
    """
    engine = get_engine(cfg, navigate=navigate)

    async def _main() -> bool:
        async with engine:
            try:
                await body(engine)
            except TaurusClientError as e:
                _log.warning("Command failed: %s", e.message)
                console.print(f"[red]Error:[/red] {e.message}")
                _flush(engine)
                return True
            return _flush(engine)

    if asyncio.run(_main()):
        raise typer.Exit(1)


# --- Version ---


@app.command()
def version():
    """Show Taurus client version."""
    from importlib.metadata import PackageNotFoundError, version as pkg_version
    try:
        v = pkg_version("taurus-client")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]Taurus[/bold] v{v}")
    console.print("  CLI: chat client")


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration (token masked)."""
    cfg = load_config_or_default(config_path=_config_path)
    console.print("[bold]Backend:[/bold]")
    console.print(f"  base_url: {cfg.backend.base_url}")
    console.print(f"  timeout: {cfg.backend.timeout_seconds}s")

    console.print("\n[bold]Auth:[/bold]")
    console.print(f"  token: {mask_secret(cfg.auth.token)}")
    console.print(f"  user_id: {cfg.auth.user_id or '(not set)'}")

    console.print("\n[bold]Polling:[/bold]")
    console.print(f"  max_attempts: {cfg.polling.max_attempts}")
    console.print(f"  interval: {cfg.polling.interval_ms}ms")

    console.print("\n[bold]Storage:[/bold]")
    console.print(f"  hints_file: {cfg.storage.resolved_hints_path()}")

    console.print("\n[bold]Logging:[/bold]")
    console.print(f"  level: {cfg.logging.level}")


@config_app.command("validate")
def config_validate(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate a config file."""
    path = config or _config_path
    try:
        cfg = load_config(config_path=path)
        if cfg is None:
            console.print("[red]No config file found.[/red]")
            console.print("Searched: ./taurus.yaml, ~/.taurus/config.yaml")
            raise typer.Exit(1)
        console.print("[green]Config is valid.[/green]")
        console.print(f"  Backend: {cfg.backend.base_url}")
        console.print(f"  Token: {'set' if cfg.auth.token else 'missing'}")
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except (ValueError, TypeError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)


# --- Chat commands ---


@chat_app.command("list")
def chat_list(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List chats, most recent first."""
    cfg = _load()

    async def body(engine: ChatEngine):
        await engine.startup(probe_providers=False, load_catalog=False)
        sessions = engine.sessions.list_sessions()
        console.print(format_session_table(sessions, as_json=json_output))

    _run(cfg, body)


@chat_app.command("show")
def chat_show(
    session_id: str = typer.Argument(help="Chat ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show a chat's messages."""
    cfg = _load()

    async def body(engine: ChatEngine):
        session = await engine.sessions.select_session(session_id)
        if session is not None:
            console.print(format_conversation(session, as_json=json_output))

    _run(cfg, body)


@chat_app.command("new")
def chat_new(
    title: str = typer.Option("New Chat", "--title", "-t", help="Chat title"),
):
    """Create an empty chat."""
    cfg = _load()

    async def body(engine: ChatEngine):
        try:
            session = await engine.sessions.create_session(title)
        except TaurusClientError as e:
            engine.notices.error(f"Failed to create new chat: {e.message}")
            return
        console.print(f"[green]Created chat[/green] {session.id}")

    _run(cfg, body)


@chat_app.command("delete")
def chat_delete(
    session_id: str = typer.Argument(help="Chat ID to delete"),
):
    """Delete a chat."""
    cfg = _load()

    async def body(engine: ChatEngine):
        await engine.sessions.delete_session(session_id)

    _run(cfg, body)


# --- Messaging ---


async def _print_submission(engine: ChatEngine, result, json_output: bool) -> None:
    if json_output:
        console.print(json.dumps({
            "outcome": result.outcome.value,
            "sessionId": result.session_id,
            "response": result.response.to_dict() if result.response else None,
            "error": result.error,
        }, indent=2))
        return
    if result.session_id:
        console.print(f"[dim]Chat: {result.session_id}[/dim]")
    if result.outcome is SubmissionOutcome.SUCCESS:
        session = engine.sessions.get(result.session_id)
        if session is not None:
            console.print(format_conversation(session))
    elif result.outcome is SubmissionOutcome.REJECTED:
        engine.notices.error("Nothing sent: message is empty or no model is available")


@app.command()
def send(
    message: str = typer.Argument(help="Message to send"),
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help="Chat to continue (default: start a new chat)"
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model ID"),
    agent: Optional[str] = typer.Option(None, "--agent", "-a", help="Agent ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Send a message and wait for the AI response."""
    cfg = _load()

    async def body(engine: ChatEngine):
        await engine.startup(load_sessions=False, probe_providers=False)
        if session_id and await engine.sessions.select_session(session_id) is None:
            return
        model_id = model
        if model_id is None:
            default = engine.catalog.default_model
            model_id = default.id if default else ""
        with console.status("[dim]Waiting for response…[/dim]"):
            result = await engine.submissions.submit(message, model_id, agent_id=agent)
        await _print_submission(engine, result, json_output)

    _run(cfg, body)


@app.command()
def suggest(
    index: Optional[int] = typer.Argument(None, help="Suggestion number to send"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List the suggestion cards, or send one in a new chat."""
    if index is None:
        for i, (title, subtitle) in enumerate(SUGGESTIONS, start=1):
            console.print(f"  [cyan]{i}[/cyan]. [bold]{title}[/bold] {subtitle}")
        return
    if not 1 <= index <= len(SUGGESTIONS):
        console.print(f"[red]Choose a suggestion between 1 and {len(SUGGESTIONS)}.[/red]")
        raise typer.Exit(1)
    cfg = _load()

    async def body(engine: ChatEngine):
        await engine.startup(load_sessions=False, probe_providers=False)
        default = engine.catalog.default_model
        with console.status("[dim]Waiting for response…[/dim]"):
            result = await engine.submissions.submit_suggestion(
                index - 1, default.id if default else None
            )
        await _print_submission(engine, result, json_output)

    _run(cfg, body)


@app.command()
def models(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List available generation models."""
    cfg = _load()

    async def body(engine: ChatEngine):
        console.print(format_models(await engine.catalog.load_models(), as_json=json_output))

    _run(cfg, body)


@app.command()
def agents(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List available specialized agents."""
    cfg = _load()

    async def body(engine: ChatEngine):
        console.print(format_agents(await engine.catalog.load_agents(), as_json=json_output))

    _run(cfg, body)


# --- Provider commands ---


def _provider_key(value: str) -> ProviderKey:
    try:
        return ProviderKey(value.lower())
    except ValueError:
        valid = ", ".join(k.value for k in ProviderKey)
        raise typer.BadParameter(f"Unknown provider '{value}'. Choose from: {valid}")


@provider_app.command("status")
def provider_status(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show the connection status of every integration."""
    cfg = _load()

    async def body(engine: ChatEngine):
        hints = {key: engine.providers.hinted(key) for key in ProviderKey}
        await engine.startup(load_sessions=False, load_catalog=False)
        console.print(format_provider_table(
            engine.providers.snapshot(), hints=hints, as_json=json_output,
        ))

    _run(cfg, body)


@provider_app.command("connect")
def provider_connect(
    provider: str = typer.Argument(help="gdrive, github, gdocs or gsheets"),
    open_browser: bool = typer.Option(
        True, "--browser/--no-browser", help="Open the authorization page"
    ),
):
    """Connect an integration, opening its authorization page if needed."""
    key = _provider_key(provider)
    cfg = _load()

    def navigate(url: str) -> None:
        console.print(f"Authorize {key.label} at:\n  [link={url}]{url}[/link]")
        if open_browser:
            typer.launch(url)

    async def body(engine: ChatEngine):
        status = await engine.providers.connect(key)
        if status is ConnectionStatus.AWAITING_REDIRECT:
            console.print(
                "[dim]After authorizing, pass the address you were redirected to "
                "to 'taurus provider callback'.[/dim]"
            )

    _run(cfg, body, navigate=navigate)


@provider_app.command("disconnect")
def provider_disconnect(
    provider: str = typer.Argument(help="gdrive, github, gdocs or gsheets"),
):
    """Disconnect an integration."""
    key = _provider_key(provider)
    cfg = _load()

    async def body(engine: ChatEngine):
        await engine.providers.disconnect(key)

    _run(cfg, body)


@provider_app.command("callback")
def provider_callback(
    url: str = typer.Argument(help="Address the authorization flow redirected to"),
):
    """Complete an integration from its redirect address."""
    cfg = _load()

    async def body(engine: ChatEngine):
        cleaned = await engine.startup(
            redirect_url=url, load_sessions=False, load_catalog=False
        )
        if cleaned is not None and cleaned != url:
            console.print(f"[dim]{cleaned}[/dim]")
        console.print(format_provider_table(engine.providers.snapshot()))

    _run(cfg, body)


# --- File commands ---


@files_app.command("list")
def files_list(
    session_id: str = typer.Argument(help="Chat ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List files attached to a chat."""
    cfg = _load()

    async def body(engine: ChatEngine):
        files = await engine.attachments.refresh(session_id)
        console.print(format_files_table(files, as_json=json_output))

    _run(cfg, body)


@files_app.command("upload")
def files_upload(
    session_id: str = typer.Argument(help="Chat ID"),
    paths: list[Path] = typer.Argument(help="Files to attach"),
):
    """Attach files to a chat."""
    cfg = _load()

    async def body(engine: ChatEngine):
        result = await engine.attachments.upload(session_id, paths)
        if result.success:
            console.print(format_files_table(engine.attachments.files(session_id)))

    _run(cfg, body)


@files_app.command("remove")
def files_remove(
    session_id: str = typer.Argument(help="Chat ID"),
    file_id: str = typer.Argument(help="File ID"),
):
    """Remove an attached file."""
    cfg = _load()

    async def body(engine: ChatEngine):
        await engine.attachments.remove(session_id, file_id)

    _run(cfg, body)


# --- Interactive ---


@app.command()
def interact(
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help="Chat to resume"
    ),
):
    """Start a conversational REPL."""
    from src.cli.repl import run_repl

    cfg = _load()

    async def body(engine: ChatEngine):
        await run_repl(engine, session_id=session_id)

    _run(cfg, body)


if __name__ == "__main__":
    app()

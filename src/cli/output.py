"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import dataclasses
import json

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from src.cli.protocol import AIAgent, AIModel, AttachedFile, MessageRole, Session
from src.engine.notices import Notice, NoticeLevel
from src.engine.providers import ConnectionStatus, ProviderKey

console = Console()

NOTICE_STYLES = {
    NoticeLevel.SUCCESS: ("green", "✓"),
    NoticeLevel.INFO: ("blue", "i"),
    NoticeLevel.WARNING: ("yellow", "!"),
    NoticeLevel.ERROR: ("red", "✗"),
}

STATUS_COLORS = {
    ConnectionStatus.UNKNOWN: "dim",
    ConnectionStatus.DISCONNECTED: "red",
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.AWAITING_REDIRECT: "yellow",
    ConnectionStatus.CONNECTED: "green",
}


def _render(renderable) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def format_size(size_bytes: int) -> str:
    """Format a byte count like "512 B", "1.5 KB", "2.0 MB"."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def format_notices(notices: list[Notice]) -> str:
    """Format drained notices, one per line."""
    lines = []
    for notice in notices:
        color, mark = NOTICE_STYLES[notice.level]
        lines.append(f"[{color}]{mark} {escape(notice.message)}[/{color}]")
    return "\n".join(lines)


def format_session_table(
    sessions: list[Session], active_id: str | None = None, as_json: bool = False
) -> str:
    """Format the session list as a Rich table or JSON.

    Args:
        sessions: Sessions, most recent first.
        active_id: Marks the active session.
        as_json: If True, return JSON instead of a table.
    """
    if as_json:
        return json.dumps(
            [
                {k: v for k, v in s.to_dict().items() if k != "messages"}
                | {"messageCount": len(s.messages)}
                for s in sessions
            ],
            indent=2,
        )

    if not sessions:
        return "No chats found."

    table = Table(title="Chats")
    table.add_column("", width=1)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Messages", justify="right")
    table.add_column("Created")

    for session in sessions:
        table.add_row(
            "*" if session.id == active_id else "",
            session.id,
            escape(session.title) or "—",
            str(len(session.messages)),
            session.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    return _render(table)


def format_conversation(session: Session, as_json: bool = False) -> str:
    """Format one session's messages as a transcript or JSON."""
    if as_json:
        return json.dumps(session.to_dict(), indent=2)

    if not session.messages:
        return _render(Panel("[dim]No messages yet[/dim]", title=escape(session.title)))

    lines = []
    for message in session.messages:
        if message.is_sentinel:
            lines.append("[dim]assistant is typing…[/dim]")
        elif message.role is MessageRole.USER:
            lines.append(f"[bold green]you:[/bold green] {escape(message.content)}")
        else:
            lines.append(f"[bold cyan]ai:[/bold cyan] {escape(message.content)}")
    return _render(
        Panel("\n\n".join(lines), title=escape(session.title) or session.id, border_style="cyan")
    )


def format_models(models: list[AIModel], as_json: bool = False) -> str:
    if as_json:
        return json.dumps([dataclasses.asdict(m) for m in models], indent=2)
    if not models:
        return "No models available."
    table = Table(title="Models")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Provider")
    table.add_column("Model ID", style="dim")
    for model in models:
        table.add_row(model.id, model.name, model.provider, model.model_id)
    return _render(table)


def format_agents(agents: list[AIAgent], as_json: bool = False) -> str:
    if as_json:
        return json.dumps([dataclasses.asdict(a) for a in agents], indent=2)
    if not agents:
        return "No agents available."
    table = Table(title="Agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Description")
    for agent in agents:
        table.add_row(agent.id, agent.name, agent.type, agent.description or "—")
    return _render(table)


def format_provider_table(
    states: dict[ProviderKey, ConnectionStatus],
    hints: dict[ProviderKey, bool] | None = None,
    as_json: bool = False,
) -> str:
    """Format provider connection states.

    Args:
        states: Current state per provider.
        hints: Persisted connected hint per provider, shown alongside.
        as_json: If True, return JSON instead of a table.
    """
    hints = hints or {}
    if as_json:
        return json.dumps(
            {
                key.value: {"status": status.value, "hint": hints.get(key, False)}
                for key, status in states.items()
            },
            indent=2,
        )

    table = Table(title="Integrations")
    table.add_column("Key", style="cyan")
    table.add_column("Provider", style="bold")
    table.add_column("Status")
    table.add_column("Last known", style="dim")
    for key, status in states.items():
        color = STATUS_COLORS[status]
        table.add_row(
            key.value,
            key.label,
            f"[{color}]{status.value.replace('_', ' ')}[/{color}]",
            "connected" if hints.get(key) else "—",
        )
    return _render(table)


def format_files_table(files: list[AttachedFile], as_json: bool = False) -> str:
    """Format attached file descriptors."""
    if as_json:
        return json.dumps(
            [dataclasses.asdict(f) | {"kind": f.kind.value} for f in files], indent=2
        )
    if not files:
        return "No files attached."
    table = Table(title="Attached Files")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    for f in files:
        status = (
            f"[red]{escape(f.processing_error)}[/red]" if f.processing_error
            else "[green]ready[/green]" if f.has_full_content
            else "[yellow]metadata only[/yellow]"
        )
        table.add_row(f.id, escape(f.original_name), f.kind.value, format_size(f.size_bytes), status)
    return _render(table)

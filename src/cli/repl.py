"""Interactive conversational REPL.

Keeps one ChatEngine alive across prompts so the active session, the
attached files, and any background replies persist between turns.
"""

import asyncio
import shlex

from rich.console import Console
from rich.markup import escape

from src.cli.output import (
    format_conversation,
    format_files_table,
    format_notices,
    format_session_table,
)
from src.engine.engine import ChatEngine
from src.engine.submission import SubmissionOutcome

console = Console()

HELP_TEXT = """[bold]Commands[/bold]
  /new                 start a new chat
  /switch ID           make another chat active
  /delete ID           delete a chat
  /sessions            list chats
  /attach PATH...      attach files to the active chat
  /detach FILE_ID      remove an attached file
  /files               list attached files
  /model ID            choose the generation model
  /quit                leave"""


def _flush(engine: ChatEngine) -> None:
    notices = engine.notices.drain()
    if notices:
        console.print(format_notices(notices))


async def _handle_command(engine: ChatEngine, line: str, state: dict) -> bool:
    """Run one slash command. Returns False when the REPL should exit."""
    try:
        parts = shlex.split(line)
    except ValueError as exc:
        engine.notices.error(f"Could not parse command: {exc}")
        return True
    command, args = parts[0], parts[1:]
    active = engine.sessions.active_id

    if command in ("/quit", "/exit"):
        return False
    if command == "/help":
        console.print(HELP_TEXT)
    elif command == "/new":
        engine.sessions.deselect()
        console.print("[dim]New chat; it is created with your next message.[/dim]")
    elif command == "/switch" and args:
        session = await engine.sessions.select_session(args[0])
        if session is not None:
            console.print(format_conversation(session))
    elif command == "/delete" and args:
        result = await engine.sessions.delete_session(args[0])
        if result.was_active:
            console.print("[dim]Active chat deleted.[/dim]")
    elif command == "/sessions":
        console.print(format_session_table(engine.sessions.list_sessions(), active))
    elif command == "/attach" and args:
        if active is None:
            engine.notices.error("Session ID is required for file upload")
        else:
            await engine.attachments.upload(active, args)
    elif command == "/detach" and args and active:
        await engine.attachments.remove(active, args[0])
    elif command == "/files":
        console.print(format_files_table(engine.attachments.files(active) if active else []))
    elif command == "/model" and args:
        model = engine.catalog.find_model(args[0])
        if model is None:
            engine.notices.error(f"Unknown model: {args[0]}")
        else:
            state["model_id"] = model.id
    else:
        console.print(HELP_TEXT)
    return True


async def run_repl(engine: ChatEngine, session_id: str | None = None) -> None:
    """Run the interactive REPL until /quit or Ctrl+D.

    Args:
        engine: An opened ChatEngine; startup() is run here.
        session_id: Optional chat to resume.
    """
    await engine.startup()
    if session_id:
        await engine.sessions.select_session(session_id)
    model = engine.catalog.default_model
    state = {"model_id": model.id if model else ""}

    console.print()
    console.print("[bold]Taurus[/bold] — Interactive Mode")
    console.print("Type a message, /help for commands. Ctrl+D to exit.")
    console.print()
    _flush(engine)

    while True:
        try:
            line = await asyncio.to_thread(console.input, "[bold green]> [/bold green]")
        except EOFError:
            break
        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            keep_going = await _handle_command(engine, line, state)
            _flush(engine)
            if not keep_going:
                break
            continue

        with console.status("[dim]Waiting for response…[/dim]"):
            result = await engine.submissions.submit(line, state["model_id"])
        if result.outcome is SubmissionOutcome.SUCCESS and result.response:
            console.print(f"[bold cyan]ai:[/bold cyan] {escape(result.response.content)}")
        elif result.outcome is SubmissionOutcome.REJECTED:
            console.print("[yellow]Nothing sent (empty message or no model).[/yellow]")
        _flush(engine)

    console.print("\n[dim]Session ended.[/dim]")

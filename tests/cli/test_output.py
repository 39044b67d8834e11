"""Tests for CLI output formatting."""

import json
from datetime import UTC, datetime

from src.cli.output import (
    format_conversation,
    format_files_table,
    format_notices,
    format_provider_table,
    format_session_table,
    format_size,
)
from src.cli.protocol import AttachedFile, FileKind, Message, MessageRole, Session
from src.engine.notices import Notice, NoticeLevel
from src.engine.providers import ConnectionStatus, ProviderKey

CREATED = datetime(2026, 2, 16, 10, 0, tzinfo=UTC)


def _session(messages=None, title="Trip planning") -> Session:
    return Session(
        id="s1", owner_id="u1", title=title, created_at=CREATED, messages=messages or []
    )


class TestFormatSize:
    """Tests for byte size formatting."""

    def test_units(self):
        assert format_size(512) == "512 B"
        assert format_size(1536) == "1.5 KB"
        assert format_size(2 * 1024 * 1024) == "2.0 MB"


class TestFormatSessionTable:
    """Tests for session list rendering."""

    def test_renders_sessions_as_text(self):
        output = format_session_table([_session()], active_id="s1")
        assert "s1" in output
        assert "Trip planning" in output
        assert "2026-02-16" in output

    def test_empty(self):
        assert format_session_table([]) == "No chats found."

    def test_json_omits_messages(self):
        """JSON listing carries a message count instead of messages."""
        message = Message(
            id="m1", role=MessageRole.USER, content="hi", model_id="x", created_at=CREATED
        )
        [entry] = json.loads(format_session_table([_session([message])], as_json=True))
        assert entry["id"] == "s1"
        assert entry["messageCount"] == 1
        assert "messages" not in entry


class TestFormatConversation:
    """Tests for transcript rendering."""

    def test_roles_and_sentinel(self):
        messages = [
            Message(id="m1", role=MessageRole.USER, content="Where to?",
                    model_id="x", created_at=CREATED),
            Message.sentinel("x"),
        ]
        output = format_conversation(_session(messages))
        assert "you:" in output
        assert "Where to?" in output
        assert "typing" in output

    def test_markup_in_content_is_literal(self):
        """Bracketed text in messages is shown, not interpreted."""
        messages = [Message(id="m1", role=MessageRole.ASSISTANT, content="[bold]x[/bold]",
                            model_id="x", created_at=CREATED)]
        assert "[bold]x[/bold]" in format_conversation(_session(messages))

    def test_json(self):
        data = json.loads(format_conversation(_session(), as_json=True))
        assert data["title"] == "Trip planning"
        assert data["messages"] == []


class TestFormatNotices:
    def test_one_line_per_notice(self):
        output = format_notices([
            Notice(NoticeLevel.SUCCESS, "Chat deleted successfully"),
            Notice(NoticeLevel.ERROR, "Failed to remove file"),
        ])
        lines = output.splitlines()
        assert len(lines) == 2
        assert "Chat deleted successfully" in lines[0]
        assert lines[1].startswith("[red]")


class TestFormatProviderTable:
    def test_text(self):
        output = format_provider_table(
            {ProviderKey.GITHUB: ConnectionStatus.AWAITING_REDIRECT},
            hints={ProviderKey.GITHUB: True},
        )
        assert "GitHub" in output
        assert "awaiting redirect" in output

    def test_json(self):
        data = json.loads(format_provider_table(
            {ProviderKey.GDRIVE: ConnectionStatus.CONNECTED}, as_json=True
        ))
        assert data == {"gdrive": {"status": "connected", "hint": False}}


class TestFormatFilesTable:
    def test_status_column(self):
        files = [
            AttachedFile(id="f1", original_name="a.pdf", mime_type="application/pdf",
                         size_bytes=2048, kind=FileKind.PDF, has_full_content=True),
            AttachedFile(id="f2", original_name="b.xlsx", mime_type="x", size_bytes=10,
                         kind=FileKind.SPREADSHEET, processing_error="Corrupt workbook"),
        ]
        output = format_files_table(files)
        assert "a.pdf" in output
        assert "ready" in output
        assert "Corrupt workbook" in output

    def test_empty(self):
        assert format_files_table([]) == "No files attached."

    def test_json_kind_is_string(self):
        files = [AttachedFile(id="f1", original_name="a.txt", mime_type="text/plain",
                              size_bytes=1, kind=FileKind.TEXT)]
        [entry] = json.loads(format_files_table(files, as_json=True))
        assert entry["kind"] == "text"

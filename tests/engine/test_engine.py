"""Tests for ChatEngine start-up and teardown."""

import asyncio

import pytest

from src.engine.notices import NoticeBoard, NoticeLevel
from src.engine.providers import ConnectionStatus, ProviderKey
from src.engine.submission import SubmissionOutcome


class TestStartup:
    """Tests for ChatEngine.startup."""

    @pytest.mark.asyncio
    async def test_loads_everything(self, engine, backend):
        backend.add_session("s1")
        backend.authorized["github"] = True

        async with engine:
            await engine.startup()
            assert [s.id for s in engine.sessions.list_sessions()] == ["s1"]
            assert engine.catalog.models
            assert engine.catalog.agents
            assert engine.providers.status(ProviderKey.GITHUB) is ConnectionStatus.CONNECTED
        assert backend.opened and backend.closed

    @pytest.mark.asyncio
    async def test_runs_once(self, engine, backend):
        async with engine:
            await engine.startup()
            await engine.startup()
        assert backend.count("list_sessions") == 1

    @pytest.mark.asyncio
    async def test_redirect_consumed_before_probes(self, engine, backend):
        """The callback shows up even though the probe still says unauthorized."""
        async with engine:
            cleaned = await engine.startup(
                redirect_url="http://app/?connection=gdrive&status=success",
                probe_providers=False,
            )
        assert cleaned == "http://app/"
        assert engine.providers.status(ProviderKey.GDRIVE) is ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_missing_token(self, engine, backend):
        """Without a token nothing is requested and the user is told."""
        backend.token = ""
        async with engine:
            await engine.startup()
        assert backend.calls == []
        [notice] = engine.notices.drain()
        assert notice.level is NoticeLevel.ERROR
        assert notice.message == "User not authenticated."

    @pytest.mark.asyncio
    async def test_selective_loads(self, engine, backend):
        async with engine:
            await engine.startup(load_sessions=False, probe_providers=False)
        assert backend.count("list_sessions") == 0
        assert backend.count("get_auth_status") == 0
        assert backend.count("list_models") == 1


class TestTeardown:
    """Tests for ChatEngine.aclose."""

    @pytest.mark.asyncio
    async def test_close_cancels_outstanding_polls(self, engine, backend):
        """No fetch is issued after the engine closes."""
        backend.replies_after = None
        engine.poller.interval_ms = 10_000

        async with engine:
            task = asyncio.create_task(engine.submissions.submit("Hello", model_id="m1"))
            while not engine.submissions.processing:
                await asyncio.sleep(0.001)
        result = await task

        assert result.outcome is SubmissionOutcome.CANCELLED
        assert backend.count("get_session") == 0
        assert backend.closed

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, engine, backend):
        async with engine:
            pass
        await engine.aclose()
        assert backend.closed


class TestDeletionCascade:
    @pytest.mark.asyncio
    async def test_delete_forgets_attachments(self, engine, backend, tmp_path):
        """Deleting a session drops its attachment list."""
        path = tmp_path / "notes.txt"
        path.write_text("hi")
        async with engine:
            session = await engine.sessions.create_session("With files")
            await engine.attachments.upload(session.id, [path])
            assert engine.attachments.files(session.id)
            await engine.sessions.delete_session(session.id)
        assert engine.attachments.files(session.id) == []


def test_components_share_one_notice_board(engine):
    assert isinstance(engine.notices, NoticeBoard)
    assert engine.sessions._notices is engine.notices
    assert engine.providers._notices is engine.notices

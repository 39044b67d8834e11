"""Session synchronization and response-retrieval engine.

Keeps an in-memory view of the user's chat sessions in step with a
backend that computes assistant responses out-of-band, and tracks
per-provider authorization state across redirect round-trips.

Main Entry Points:
    ChatEngine: Composition root wiring every component to one client.
    SessionStore: Session list and active-session cache.
    MessageSubmissionPipeline: ensure-session, submit, poll, settle.
    ResponsePoller: Bounded, cancellable response polling.
    ProviderConnectionStore: Per-provider authorization state machines.
    FileAttachmentPipeline: Per-session file uploads and removal.
"""

from src.engine.attachments import FileAttachmentPipeline
from src.engine.catalog import ModelCatalog
from src.engine.engine import ChatEngine
from src.engine.hints import HintStore
from src.engine.notices import Notice, NoticeBoard, NoticeLevel
from src.engine.poller import PollHandle, PollOutcome, PollResult, ResponsePoller
from src.engine.providers import (
    ConnectionStatus,
    InvalidStateTransition,
    ProviderConnectionStore,
    ProviderKey,
)
from src.engine.session_store import DeleteResult, SessionStore
from src.engine.submission import (
    SUGGESTIONS,
    MessageSubmissionPipeline,
    SubmissionOutcome,
    SubmissionResult,
    SubmissionState,
)

__all__ = [
    "ChatEngine",
    "SessionStore",
    "DeleteResult",
    "MessageSubmissionPipeline",
    "SubmissionOutcome",
    "SubmissionResult",
    "SubmissionState",
    "SUGGESTIONS",
    "ResponsePoller",
    "PollHandle",
    "PollOutcome",
    "PollResult",
    "ProviderConnectionStore",
    "ProviderKey",
    "ConnectionStatus",
    "InvalidStateTransition",
    "FileAttachmentPipeline",
    "ModelCatalog",
    "HintStore",
    "Notice",
    "NoticeBoard",
    "NoticeLevel",
]

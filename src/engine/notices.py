"""User-facing notices raised by engine operations.

Engine operations never let a network or parse failure escape; they
post a Notice instead and return to a consistent prior state. The
front end drains the board and renders whatever accumulated.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.cli.protocol import utc_now

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    """Severity of a notice."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    NoticeLevel.SUCCESS: logging.INFO,
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.WARNING,
}


@dataclass
class Notice:
    """A non-blocking message for the user."""

    level: NoticeLevel
    message: str
    created_at: datetime = field(default_factory=utc_now)


class NoticeBoard:
    """Ordered collection of pending notices."""

    def __init__(self) -> None:
        self._pending: list[Notice] = []

    def post(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._pending.append(notice)
        logger.log(_LOG_LEVELS[level], "notice[%s]: %s", level.value, message)
        return notice

    def success(self, message: str) -> Notice:
        return self.post(NoticeLevel.SUCCESS, message)

    def info(self, message: str) -> Notice:
        return self.post(NoticeLevel.INFO, message)

    def warning(self, message: str) -> Notice:
        return self.post(NoticeLevel.WARNING, message)

    def error(self, message: str) -> Notice:
        return self.post(NoticeLevel.ERROR, message)

    @property
    def pending(self) -> list[Notice]:
        """Snapshot of undrained notices, oldest first."""
        return list(self._pending)

    def has_errors(self) -> bool:
        return any(n.level is NoticeLevel.ERROR for n in self._pending)

    def drain(self) -> list[Notice]:
        """Return and clear every pending notice."""
        drained, self._pending = self._pending, []
        return drained

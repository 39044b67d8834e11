"""Durable boolean hints backed by a small JSON file.

A hint is a fast guess used before the backend answers, never an
authority: every hint is reconciled against the backend on load. Each
key has a single owner that writes it.
"""

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class HintStore:
    """Persisted string-to-bool map with write-through saves."""

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the store.

        Args:
            path: JSON file backing the store. None keeps hints in memory
                only (nothing survives the process).
        """
        self._path = path
        self._values: dict[str, bool] | None = None

    def _load(self) -> dict[str, bool]:
        if self._values is not None:
            return self._values
        self._values = {}
        if self._path is None or not self._path.exists():
            return self._values
        try:
            raw = json.loads(self._path.read_text())
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable hints file %s: %s", self._path, exc)
            return self._values
        if isinstance(raw, dict):
            self._values = {str(k): v is True for k, v in raw.items()}
        return self._values

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._load(), indent=2, sort_keys=True))
        except OSError as exc:
            # Advisory only; the next probe rewrites it.
            logger.warning("Could not persist hints to %s: %s", self._path, exc)

    def get(self, key: str) -> bool:
        """Return the hint for key, False when absent."""
        return self._load().get(key, False)

    def set(self, key: str, value: bool) -> None:
        """Record a hint. False removes the key."""
        values = self._load()
        if value:
            if values.get(key) is True:
                return
            values[key] = True
        elif key in values:
            del values[key]
        else:
            return
        self._save()

    def remove(self, key: str) -> None:
        self.set(key, False)

    def keys(self) -> list[str]:
        return sorted(self._load())

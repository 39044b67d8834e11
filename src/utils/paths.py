"""Per-user file locations resolved with platformdirs.

  Linux: ~/.local/share/taurus/
  macOS: ~/Library/Application Support/taurus/
  Windows: %LOCALAPPDATA%/taurus/
"""

from pathlib import Path

import platformdirs

APP_NAME = "taurus"


def get_data_dir() -> Path:
    """Return the directory for persistent client state."""
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_hints_path() -> Path:
    """Return the default location of the provider connection hints file."""
    return get_data_dir() / "hints.json"

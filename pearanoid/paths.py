"""Cross-platform directory resolution."""

from __future__ import annotations

from pathlib import Path

import platformdirs

_APP_NAME = "Pearanoid"
_APP_AUTHOR = "Pearanoid"


def get_data_dir() -> Path:
    """Return the platform-appropriate data directory (XDG on Linux)."""
    return Path(platformdirs.user_data_dir(_APP_NAME, _APP_AUTHOR))


def get_log_dir(data_dir: Path) -> Path:
    return data_dir / "logs"


# -- path helpers -----------------------------------------------------------
def get_vault_path(data_dir: Path) -> Path:
    return data_dir / "vault.db"

"""Filesystem helpers."""

import os
import re
from pathlib import Path

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def ensure_dir(path: Path) -> Path:
    """Create ``path`` (and parents) if needed and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(name: str) -> str:
    """Replace characters that are not allowed in file names."""
    return _UNSAFE_CHARS.sub("_", name).strip() or "_"


def expand_tilde(path: str) -> str:
    """Expand a leading ``~/`` to the user's home directory."""
    if path.startswith("~/"):
        return str(Path.home()) + path[1:]
    return path


def get_state_dir(name: str, override: str | None = None) -> Path:
    """
    Get the state directory for a bot.

    Args:
        name: Bot name, used as the directory name under the XDG state home.
        override: Explicit directory from the config, ``~`` is expanded.

    Returns:
        ``override`` if given, else ``$XDG_STATE_HOME/<name>``
        (``~/.local/state/<name>`` when the variable is unset).
    """
    if override:
        return Path(expand_tilde(override))
    base = os.environ.get("XDG_STATE_HOME") or str(Path.home() / ".local" / "state")
    return Path(base) / safe_filename(name)

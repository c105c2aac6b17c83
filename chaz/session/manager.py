"""Login session persistence for the Matrix client."""

import json
import os
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path

from loguru import logger

from chaz.utils.helpers import ensure_dir


@dataclass
class Session:
    """
    A saved login.

    Restoring it avoids a password login (and a new device) on every start.
    """

    homeserver: str
    user_id: str
    device_id: str
    access_token: str
    sync_token: str | None = None
    updated_at: str = ""


class SessionStore:
    """
    Stores the login session as JSON in the state directory.

    The file holds credentials, so it is written with owner-only permissions.
    """

    FILENAME = "session.json"

    def __init__(self, state_dir: Path):
        self.state_dir = ensure_dir(state_dir)
        self.path = self.state_dir / self.FILENAME
        self._cache: Session | None = None

    def load(self) -> Session | None:
        """Load the saved session, or None when there is none or it is unreadable."""
        if self._cache is not None:
            return self._cache
        if not self.path.exists():
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            self._cache = Session(
                homeserver=data["homeserver"],
                user_id=data["user_id"],
                device_id=data["device_id"],
                access_token=data["access_token"],
                sync_token=data.get("sync_token"),
                updated_at=data.get("updated_at", ""),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Failed to load session from {self.path}: {e}")
            return None
        return self._cache

    def save(self, session: Session) -> None:
        """Write ``session`` to disk."""
        session.updated_at = datetime.now().isoformat()
        tmp = self.path.with_suffix(".tmp")
        # O_CREAT only applies the mode to a new file
        tmp.unlink(missing_ok=True)
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(asdict(session), f, indent=2)
        tmp.replace(self.path)
        self._cache = session

    def update_sync_token(self, sync_token: str) -> None:
        """Persist a new sync position so restarts skip already seen events."""
        session = self.load()
        if session is None or session.sync_token == sync_token:
            return
        session.sync_token = sync_token
        self.save(session)

    def delete(self) -> bool:
        """
        Forget the saved session.

        Returns:
            True if a file was removed.
        """
        self._cache = None
        if self.path.exists():
            self.path.unlink()
            return True
        return False

"""Session management module."""

from chaz.session.manager import Session, SessionStore

__all__ = ["Session", "SessionStore"]

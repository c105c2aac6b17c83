"""Utility helpers for chaz."""

from chaz.utils.helpers import ensure_dir, expand_tilde, get_state_dir, safe_filename

__all__ = ["ensure_dir", "expand_tilde", "get_state_dir", "safe_filename"]

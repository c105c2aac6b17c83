"""Persistent per-room tags."""

from chaz.tags.store import (
    BACKEND_NAMESPACE,
    MODEL_NAMESPACE,
    MemoryTagBackend,
    TagBackend,
    TagSet,
    TagStore,
)

__all__ = [
    "BACKEND_NAMESPACE",
    "MODEL_NAMESPACE",
    "MemoryTagBackend",
    "TagBackend",
    "TagSet",
    "TagStore",
]

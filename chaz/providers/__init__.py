"""LLM backends."""

from chaz.providers.base import ChatContext, LLMBackend, Message, MessageRole
from chaz.providers.manager import BackendManager, backends_from_tags, create_backend, merge_backends

__all__ = [
    "BackendManager",
    "ChatContext",
    "LLMBackend",
    "Message",
    "MessageRole",
    "backends_from_tags",
    "create_backend",
    "merge_backends",
]

"""Base types shared by every LLM backend."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from enum import Enum

from chaz.agent.roles import prepend_role
from chaz.channels.base import MediaHandle
from chaz.config.schema import BackendConfig, RoleDetails

MODEL_SEPARATOR = ":"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Message:
    """A single conversation turn."""

    role: MessageRole
    content: str

    def __str__(self) -> str:
        return f"{self.role.value.upper()}: {self.content}"


@dataclass
class ChatContext:
    """
    Internal representation of a chat completion request.

    The context builder produces it from room history; each backend converts
    it into its own request format. ``media`` is kept oldest first but is not
    tied to particular messages.
    """

    messages: list[Message] = field(default_factory=list)
    model: str | None = None
    role: RoleDetails | None = None
    media: list[MediaHandle] = field(default_factory=list)

    def string_prompt(self) -> str:
        """Render the messages as a transcript ending with the assistant's turn."""
        prompt = "".join(f"{message}\n" for message in self.messages)
        return prompt + "ASSISTANT: "

    def string_prompt_with_role(self) -> str:
        """Render the transcript with the role prompt prepended."""
        return prepend_role(self.string_prompt(), self.role)

    def close(self) -> None:
        """Release the media files held by this context."""
        for handle in self.media:
            handle.close()


def strip_model_prefix(model: str, backend_name: str) -> str:
    """Remove a leading ``<backend_name>:`` from ``model``."""
    prefix = f"{backend_name}{MODEL_SEPARATOR}"
    return model[len(prefix):] if model.startswith(prefix) else model


class LLMBackend(abc.ABC):
    """
    Capability surface of a backend adapter.

    Adapters never let library errors escape: failures surface as
    :class:`chaz.errors.ChazError` subclasses.
    """

    def __init__(self, backend: BackendConfig) -> None:
        self.backend = backend

    @property
    def name(self) -> str:
        return self.backend.display_name

    @abc.abstractmethod
    async def list_models(self) -> list[str]:
        """Models known to this backend. Other names may still work."""

    @abc.abstractmethod
    async def default_model(self) -> str | None:
        """The model used when none is requested."""

    @abc.abstractmethod
    async def execute(self, context: ChatContext) -> str:
        """Run ``context`` and return the reply text."""

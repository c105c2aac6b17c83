"""Configuration schema using Pydantic."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BackendKind(str, Enum):
    """Kinds of LLM backend chaz can drive."""

    AICHAT = "aichat"
    OPENAI_COMPATIBLE = "openaicompatible"

    @property
    def default_name(self) -> str:
        if self is BackendKind.AICHAT:
            return "aichat"
        return "openai"


class ModelConfig(BaseModel):
    """A model declared for a backend that cannot list its own models."""

    model_config = ConfigDict(frozen=True)

    name: str


class BackendConfig(BaseModel):
    """
    Configuration for a single backend.

    ``api_base``/``api_key``/``models`` apply to OpenAI compatible backends,
    ``config_dir`` to the aichat subprocess backend.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: BackendKind = Field(alias="type")
    name: str | None = None
    api_base: str | None = None
    api_key: str | None = None
    models: list[ModelConfig] | None = None
    config_dir: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _lowercase_kind(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value

    @property
    def display_name(self) -> str:
        """Name used to prefix models, defaults by kind."""
        return self.name or self.kind.default_name


class ExampleSpeaker(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


class RoleExample(BaseModel):
    """One line of a role's example dialogue."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    speaker: ExampleSpeaker = Field(alias="user")
    text: str = Field(alias="message")

    @field_validator("speaker", mode="before")
    @classmethod
    def _any_case(cls, value: object) -> object:
        # "user", "User" and "USER" are all accepted
        return value.upper() if isinstance(value, str) else value


class RoleDetails(BaseModel):
    """A named persona: system prompt plus optional example dialogue."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str | None = None
    prompt: str | None = None
    example: list[RoleExample] | None = None


class Config(BaseModel):
    """Root configuration for chaz."""

    homeserver_url: str = ""
    username: str = ""
    password: str | None = None
    name: str = "chaz"
    allow_list: str | None = None
    state_dir: str | None = None
    message_limit: int | None = None
    room_size_limit: int | None = None
    chat_summary_model: str | None = None
    role: str | None = None
    roles: list[RoleDetails] | None = None
    disable_media_context: bool = False
    backends: list[BackendConfig] | None = None

    @field_validator("message_limit", "room_size_limit")
    @classmethod
    def _zero_is_unlimited(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            return None
        return value

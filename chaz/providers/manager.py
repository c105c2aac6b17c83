"""Backend manager: model naming, validation and dispatch across backends.

The first backend in the list is the default, both for picking a model
and as the fallback when a model name matches no backend. When more than
one backend is configured, models are named ``<backend>:<model>``.
"""

from loguru import logger

from chaz.config.schema import BackendConfig, BackendKind
from chaz.errors import ConfigurationError, ModelValidationError
from chaz.providers.aichat import AiChatBackend
from chaz.providers.base import MODEL_SEPARATOR, ChatContext, LLMBackend
from chaz.providers.openai import OpenAIBackend
from chaz.tags.store import TagSet

DEFAULT_BACKEND_KEY = "chazdefault"


def create_backend(backend: BackendConfig) -> LLMBackend:
    """Build the adapter for a backend config."""
    if backend.kind is BackendKind.AICHAT:
        return AiChatBackend(backend)
    if backend.kind is BackendKind.OPENAI_COMPATIBLE:
        return OpenAIBackend(backend)
    raise ValueError(f"Unsupported backend type: {backend.kind}")


class BackendManager:
    """Owns the ordered list of backends for one request."""

    def __init__(self, backends: list[BackendConfig] | None = None) -> None:
        """
        Args:
            backends: Ordered backends. ``None`` falls back to a single aichat
                backend; an empty list means nothing is configured.
        """
        if backends is None:
            backends = [BackendConfig(kind=BackendKind.AICHAT)]
        self.backends = list(backends)
        self._adapters = [create_backend(b) for b in self.backends]

    @property
    def is_multi(self) -> bool:
        return len(self.backends) > 1

    def list_known_backends(self) -> list[str]:
        return [b.display_name for b in self.backends]

    async def list_known_models(self) -> list[str]:
        """
        List every model the backends know about.

        Models may be valid even if they aren't listed.
        """
        if not self.is_multi:
            return await self._adapters[0].list_models() if self._adapters else []
        models: list[str] = []
        for adapter in self._adapters:
            models.extend(f"{adapter.name}{MODEL_SEPARATOR}{m}" for m in await adapter.list_models())
        return models

    async def is_known_model(self, model: str) -> bool:
        """
        True if a backend lists ``model``.

        False does not make the model invalid, there is just no local
        information about it.
        """
        return model in await self.list_known_models()

    async def validate_model(self, model: str) -> None:
        """
        Check that ``model`` can be routed.

        Raises:
            ModelValidationError: With several backends, if the name is not
                prefixed by one of them.
        """
        if not self.is_multi:
            # Nothing to route and no reliable way to check the name
            return
        for name in self.list_known_backends():
            if model.startswith(f"{name}{MODEL_SEPARATOR}"):
                return
        raise ModelValidationError(
            "Multiple backends exist, please specify the model name with the backend prepended, "
            "e.g. openai:gpt-4o or aichat:ollama:llama3"
        )

    async def default_model(self) -> str | None:
        """The first backend's default model, prefixed when there are several backends."""
        if not self._adapters:
            return None
        adapter = self._adapters[0]
        model = await adapter.default_model()
        if model is None or not self.is_multi:
            return model
        return f"{adapter.name}{MODEL_SEPARATOR}{model}"

    def select_backend(self, model: str | None) -> LLMBackend:
        """Pick the adapter named by the model prefix, else the first one."""
        if model:
            prefix = model.split(MODEL_SEPARATOR, 1)[0]
            for adapter in self._adapters:
                if adapter.name == prefix:
                    return adapter
        return self._adapters[0]

    async def execute(self, context: ChatContext) -> str:
        """
        Run ``context`` on the backend selected by its model.

        Raises:
            ConfigurationError: If no backends are configured.
            ChazError: Whatever the selected adapter raises.
        """
        if not self._adapters:
            raise ConfigurationError("No backends configured")
        adapter = self.select_backend(context.model)
        logger.debug(f"Dispatching to backend {adapter.name} (model={context.model})")
        return await adapter.execute(context)


def backends_from_tags(tags: TagSet) -> list[BackendConfig]:
    """
    Read the OpenAI compatible backends registered in a room.

    Keys are ``<name>.url`` and ``<name>.token``; ``chazdefault`` names the
    backend to put first. Entries missing either value are ignored.
    """
    backends: list[BackendConfig] = []
    for key in tags.all_keys():
        parts = key.split(".")
        if len(parts) < 2 or not parts[1].startswith("url"):
            continue
        name = parts[0]
        if any(b.name == name for b in backends):
            continue
        api_base = tags.get(f"{name}.url")
        api_key = tags.get(f"{name}.token")
        if api_base and api_key:
            backends.append(BackendConfig(
                kind=BackendKind.OPENAI_COMPATIBLE,
                name=name,
                api_base=api_base,
                api_key=api_key,
            ))

    default = tags.get(DEFAULT_BACKEND_KEY)
    if default is not None:
        for index, backend in enumerate(backends):
            if backend.name == default:
                backends.insert(0, backends.pop(index))
                break
    return backends


def merge_backends(
    tag_backends: list[BackendConfig],
    config_backends: list[BackendConfig] | None,
) -> list[BackendConfig]:
    """Room backends first, then configured ones whose names are not taken."""
    merged = list(tag_backends)
    taken = {b.display_name for b in merged}
    for backend in config_backends or []:
        if backend.display_name in taken:
            logger.debug(f"Backend {backend.display_name} is overridden by a room backend")
            continue
        taken.add(backend.display_name)
        merged.append(backend)
    return merged

"""OpenAI compatible backend.

Talks to any server implementing the ``/chat/completions`` endpoint.
"""

from collections.abc import Callable
from typing import Any

import httpx
from loguru import logger

from chaz.agent.roles import role_preamble
from chaz.config.schema import BackendConfig
from chaz.errors import ConfigurationError, DecodeError, EmptyResponseError, TransportError
from chaz.providers.base import ChatContext, LLMBackend, MessageRole, strip_model_prefix

NO_CONTENT_PLACEHOLDER = "Error retrieving response"
DEFAULT_TIMEOUT = 120.0


class OpenAIBackend(LLMBackend):
    """Backend for OpenAI compatible HTTP APIs."""

    def __init__(
        self,
        backend: BackendConfig,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        super().__init__(backend)
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=DEFAULT_TIMEOUT))

    async def list_models(self) -> list[str]:
        """The models declared in the config; the API is not queried."""
        return [model.name for model in self.backend.models or []]

    async def default_model(self) -> str | None:
        """The first declared model."""
        models = self.backend.models or []
        return models[0].name if models else None

    async def build_request(self, context: ChatContext) -> dict[str, Any]:
        """Convert a ChatContext into a chat completion request body."""
        messages: list[dict[str, str]] = []
        if context.role is not None:
            messages.append({"role": MessageRole.SYSTEM.value, "content": role_preamble(context.role)})
        for message in context.messages:
            messages.append({"role": message.role.value, "content": message.content})

        model = strip_model_prefix(context.model or "", self.name)
        if not model:
            model = await self.default_model() or ""
        return {"model": model, "messages": messages}

    async def execute(self, context: ChatContext) -> str:
        if not self.backend.api_key:
            raise ConfigurationError("API key doesn't exist")
        if not self.backend.api_base:
            raise ConfigurationError("API base doesn't exist")

        url = self.backend.api_base.rstrip("/") + "/chat/completions"
        body = await self.build_request(context)
        logger.debug(f"Chat completion request to {url} with model {body['model']!r}")

        try:
            async with self._client_factory() as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={"Authorization": f"Bearer {self.backend.api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"{self.name} returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {self.name} failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {self.name}") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise EmptyResponseError(f"{self.name} returned no choices")
        try:
            content = choices[0]["message"].get("content")
        except (KeyError, TypeError, AttributeError) as e:
            raise DecodeError(f"Malformed response from {self.name}") from e
        return content if content is not None else NO_CONTENT_PLACEHOLDER

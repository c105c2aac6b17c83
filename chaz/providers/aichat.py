"""AIChat backend.

Drives the ``aichat`` command line tool as a general backend for LLMs.
"""

import asyncio
import os

from loguru import logger

from chaz.config.schema import BackendConfig
from chaz.errors import DecodeError, EmptyResponseError, TransportError
from chaz.providers.base import ChatContext, LLMBackend, strip_model_prefix

AICHAT_BINARY = "aichat"
CONFIG_DIR_ENV = "AICHAT_CONFIG_DIR"


class AiChatBackend(LLMBackend):
    """Backend that shells out to the aichat binary."""

    def __init__(self, backend: BackendConfig, binary: str = AICHAT_BINARY) -> None:
        super().__init__(backend)
        self.binary = binary

    def _env(self) -> dict[str, str] | None:
        if not self.backend.config_dir:
            return None
        env = dict(os.environ)
        env[CONFIG_DIR_ENV] = self.backend.config_dir
        return env

    async def _run(self, *args: str) -> tuple[bytes, bytes]:
        """Run aichat with ``args`` and return (stdout, stderr)."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env(),
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            raise TransportError(f"Failed to run {self.binary}: {e}") from e
        return stdout, stderr

    async def _query_lines(self, flag: str) -> list[str]:
        try:
            stdout, _ = await self._run(flag)
        except TransportError as e:
            logger.warning(str(e))
            return []
        return stdout.decode("utf-8", errors="replace").split("\n")

    async def list_models(self) -> list[str]:
        """
        List the models known to the aichat binary.

        This may not be a comprehensive list of available models.
        """
        return [line for line in await self._query_lines("--list-models") if line.strip()]

    async def default_model(self) -> str | None:
        """Read the model from the ``model <name>`` line of ``aichat --info``."""
        for line in await self._query_lines("--info"):
            if line.startswith("model"):
                parts = line.split()
                if len(parts) > 1:
                    return parts[1]
                return None
        return None

    async def execute(self, context: ChatContext) -> str:
        args = ["--no-stream"]
        if context.model:
            args += ["--model", strip_model_prefix(context.model, self.name)]
        # The media files must stay on disk until the process exits
        if context.media:
            args.append("--file")
            args.extend(handle.path for handle in context.media)
        args += ["--", context.string_prompt_with_role()]
        logger.info(f"Running command: {self.binary} {' '.join(args[:-1])} <prompt>")

        stdout, stderr = await self._run(*args)

        if not stdout:
            # Nothing on stdout means the call failed; stderr says why
            try:
                message = stderr.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError("Error decoding stderr") from e
            raise EmptyResponseError(message.strip() or f"{self.binary} produced no output")
        try:
            return stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("Error decoding stdout") from e

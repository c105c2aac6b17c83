"""Command line entry point: load the config and run the Matrix bot."""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from chaz.agent.loop import AgentLoop
from chaz.agent.state import BotState
from chaz.channels.matrix import MatrixChannel, MatrixTagBackend
from chaz.config import get_config_state_dir, load_config
from chaz.config.schema import Config
from chaz.session import SessionStore
from chaz.tags import TagStore

DEFAULT_CONFIG_PATH = "config.yaml"


def setup_logging(verbose: bool = False) -> None:
    """Replace the default loguru sink with one stderr sink."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def build_bot(config: Config) -> tuple[MatrixChannel, AgentLoop]:
    """Wire the Matrix channel, room tags and dispatcher together."""
    sessions = SessionStore(get_config_state_dir(config))
    channel = MatrixChannel(config, sessions)
    state = BotState(config=config, tag_store=TagStore(MatrixTagBackend(channel.api)))
    agent = AgentLoop(state)
    channel.on_message = agent.handle_message
    return channel, agent


async def run(config: Config) -> None:
    channel, _ = build_bot(config)
    try:
        await channel.start()
    finally:
        await channel.stop()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="chaz",
        description="Matrix chat bot that answers with a large language model",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path(DEFAULT_CONFIG_PATH),
        help=f"Path to the YAML or JSON config file (default: {DEFAULT_CONFIG_PATH})",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log routing decisions and other debug output",
    )

    args = parser.parse_args()
    setup_logging(args.verbose)

    config = load_config(args.config)
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()

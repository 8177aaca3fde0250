"""Entrypoint for the runtime metrics reporter agent."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Sequence

import httpx

from agents.common.base_agent import MetricsAgent
from agents.common.config import AgentConfig
from shared.collector_client import build_collector_client

logger = logging.getLogger(__name__)


def build_agent(config: AgentConfig) -> MetricsAgent:
    client = build_collector_client(config.address, key=config.key)
    return MetricsAgent(config=config, client=client, http_client=httpx.AsyncClient())


async def serve(config: AgentConfig) -> None:
    """Run the agent until SIGINT or SIGTERM."""
    agent = build_agent(config)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    await agent.startup()
    await stop.wait()
    logger.info("Shutdown signal received")
    await agent.shutdown()


def run(argv: Sequence[str] | None = None) -> None:
    config = AgentConfig.from_args(argv)
    logging.basicConfig(level=config.log_level)
    asyncio.run(serve(config))


if __name__ == "__main__":
    run()

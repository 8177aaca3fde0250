"""Configuration dataclasses for metric agents."""

from __future__ import annotations

import argparse
import os
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(slots=True)
class AgentConfig:
    """Runtime configuration for a metrics agent instance."""

    address: str = "localhost:8080"
    poll_interval: int = 2
    report_interval: int = 10
    key: str = ""
    rate_limit: int = 1
    log_level: str = "INFO"

    @classmethod
    def from_args(cls, argv: Sequence[str] | None = None) -> AgentConfig:
        """Parse command-line flags; environment variables take precedence."""
        parser = argparse.ArgumentParser(description="Report runtime metrics to a collector.")
        parser.add_argument("-a", dest="address", default="localhost:8080", help="collector address host:port")
        parser.add_argument("-p", dest="poll_interval", type=int, default=2, help="poll interval in seconds")
        parser.add_argument("-r", dest="report_interval", type=int, default=10, help="report interval in seconds")
        parser.add_argument("-k", dest="key", default="", help="shared secret for HashSHA256 signatures")
        parser.add_argument("-l", dest="rate_limit", type=int, default=1, help="max concurrent reports")
        args = parser.parse_args(argv)

        config = cls(
            address=os.getenv("ADDRESS", args.address),
            poll_interval=int(os.getenv("POLL_INTERVAL", args.poll_interval)),
            report_interval=int(os.getenv("REPORT_INTERVAL", args.report_interval)),
            key=os.getenv("KEY", args.key),
            rate_limit=int(os.getenv("RATE_LIMIT", args.rate_limit)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
        if config.poll_interval <= 0 or config.report_interval <= 0:
            parser.error("poll and report intervals must be positive")
        if config.rate_limit <= 0:
            parser.error("rate limit must be positive")
        return config

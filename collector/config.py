"""Configuration dataclass for the collector service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class CollectorConfig:
    """Runtime configuration for a collector instance."""

    address: str = "localhost:8080"
    store_interval: int = 300
    file_storage_path: Path = Path("/tmp/metrics-db.json")
    restore: bool = True
    database_dsn: str = ""
    key: str = ""
    log_level: str = "INFO"

    @property
    def host(self) -> str:
        host, _, _ = self.address.rpartition(":")
        return host or "0.0.0.0"

    @property
    def port(self) -> int:
        _, _, port = self.address.rpartition(":")
        return int(port)

    @classmethod
    def from_env(cls) -> CollectorConfig:
        store_interval = int(os.getenv("STORE_INTERVAL", "300"))
        if store_interval < 0:
            raise ValueError("STORE_INTERVAL must be zero or positive")
        return cls(
            address=os.getenv("ADDRESS", "localhost:8080"),
            store_interval=store_interval,
            file_storage_path=Path(os.getenv("FILE_STORAGE_PATH", "/tmp/metrics-db.json")),
            restore=os.getenv("RESTORE", "true").strip().lower() in _TRUE_VALUES,
            database_dsn=os.getenv("DATABASE_DSN", ""),
            key=os.getenv("KEY", ""),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

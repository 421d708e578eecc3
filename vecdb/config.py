from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    app_host: str = os.getenv("APP_HOST", "127.0.0.1")
    app_port: int = int(os.getenv("APP_PORT", os.getenv("PORT", "5202")))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # <= 0 disables the bound on collection lock waits.
    lock_timeout_seconds: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "30"))

    default_max_neighbors: int = int(os.getenv("DEFAULT_MAX_NEIGHBORS", "16"))
    default_search_breadth: int = int(os.getenv("DEFAULT_SEARCH_BREADTH", "16"))
    default_max_elements: int = int(os.getenv("DEFAULT_MAX_ELEMENTS", "10000"))

    @property
    def lock_timeout(self) -> float | None:
        if self.lock_timeout_seconds <= 0:
            return None
        return self.lock_timeout_seconds


settings = Settings()

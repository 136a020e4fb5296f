"""TaniBudaya order service process settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

from common.config import AppConfig, load_env


@dataclass
class TaniBudayaConfig:
    """Server process settings; domain settings live in ``AppConfig``."""

    app: AppConfig
    host: str
    port: int
    jobs_enabled: bool
    jobs_initial_delay: float
    expire_interval: float
    unpaid_interval: float
    pending_interval: float

    @property
    def secret_key(self) -> str:
        return self.app.secret_key

    @classmethod
    def load(cls) -> "TaniBudayaConfig":
        """Build the settings from environment variables (``.env`` included)."""

        app = load_env()
        return cls(
            app=app,
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "5000")),
            jobs_enabled=os.environ.get("JOBS_ENABLED", "true").strip().lower() in {"1", "true", "yes", "on"},
            jobs_initial_delay=float(os.environ.get("JOBS_INITIAL_DELAY", "10")),
            # 5 minutes / 1 hour / 10 minutes
            expire_interval=float(os.environ.get("JOB_EXPIRE_INTERVAL", "300")),
            unpaid_interval=float(os.environ.get("JOB_UNPAID_INTERVAL", "3600")),
            pending_interval=float(os.environ.get("JOB_PENDING_INTERVAL", "600")),
        )

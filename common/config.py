import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    midtrans_server_key: str
    midtrans_client_key: str
    midtrans_is_production: bool

    @property
    def snap_base_url(self) -> str:
        if self.midtrans_is_production:
            return "https://app.midtrans.com/snap/v1"
        return "https://app.sandbox.midtrans.com/snap/v1"

    @property
    def core_base_url(self) -> str:
        if self.midtrans_is_production:
            return "https://api.midtrans.com/v2"
        return "https://api.sandbox.midtrans.com/v2"


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in {"1", "true", "yes", "on"}


def load_env() -> AppConfig:
    # .env is a fallback; real environment variables win
    load_dotenv(override=False)
    return AppConfig(
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/tanibudaya.db"),
        secret_key=os.getenv("JWT_SECRET", "dev_secret"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        midtrans_server_key=os.getenv("MIDTRANS_SERVER_KEY", ""),
        midtrans_client_key=os.getenv("MIDTRANS_CLIENT_KEY", ""),
        midtrans_is_production=_env_flag("MIDTRANS_IS_PRODUCTION"),
    )

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Force-load .env from the project root (reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

SANDBOX_BASE_URL = "https://sandbox.cashfree.com/pg"
PRODUCTION_BASE_URL = "https://api.cashfree.com/pg"


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    cashfree_env: str = "sandbox"
    cashfree_client_id: str = ""
    cashfree_client_secret: str = ""
    cashfree_api_version: str = "2025-01-01"
    cashfree_timeout: float = 5.0
    verify_webhook: bool = True
    public_base_url: str = "http://localhost:8080"
    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))
    port: int = 8080
    database_url: str = "sqlite:///./canteen.db"
    jwt_secret: str = ""
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.cashfree_env == "production"

    @property
    def gateway_base_url(self) -> str:
        return PRODUCTION_BASE_URL if self.is_production else SANDBOX_BASE_URL

    @property
    def return_url_template(self) -> str:
        # Cashfree substitutes {order_id} itself
        return f"{self.public_base_url}/pg/return?order_id={{order_id}}"

    @property
    def notify_url(self) -> str:
        return f"{self.public_base_url}/api/cashfree/webhook"

    @classmethod
    def from_env(cls, env_path: Path = ENV_PATH) -> "Settings":
        load_dotenv(dotenv_path=env_path)

        port = int(os.getenv("PORT") or 8080)
        public_base_url = os.getenv("PUBLIC_BASE_URL") or f"http://localhost:{port}"
        origins = tuple(
            o.strip() for o in (os.getenv("CORS_ORIGIN") or "*").split(",") if o.strip()
        )

        return cls(
            cashfree_env="production" if os.getenv("CASHFREE_ENV") == "production" else "sandbox",
            cashfree_client_id=os.getenv("CASHFREE_CLIENT_ID", ""),
            cashfree_client_secret=os.getenv("CASHFREE_CLIENT_SECRET", ""),
            cashfree_api_version=os.getenv("CASHFREE_API_VERSION") or "2025-01-01",
            cashfree_timeout=float(os.getenv("CASHFREE_TIMEOUT") or 5),
            verify_webhook=_flag(os.getenv("CASHFREE_VERIFY_WEBHOOK"), True),
            public_base_url=public_base_url.rstrip("/"),
            cors_origins=origins or ("*",),
            port=port,
            database_url=os.getenv("DATABASE_URL") or "sqlite:///./canteen.db",
            jwt_secret=os.getenv("JWT_SECRET", ""),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )

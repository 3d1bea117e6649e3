import logging
from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from utils.validation import validate_eth_address

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()


def _detect_project_root(backend_dir: Path) -> Path:
    """Resolve project root from the backend directory in the repo layout."""
    return backend_dir.parent.resolve()


_PROJECT_ROOT = _detect_project_root(_BACKEND_DIR)
_DEFAULT_DB_PATH = (_PROJECT_ROOT / "data" / "copytrader.db").resolve()
_DEFAULT_LOG_PATH = (_PROJECT_ROOT / "logs" / "copytrader.log").resolve()
_SQLITE_ASYNC_PREFIX = "sqlite+aiosqlite:///"
_SQLITE_SYNC_PREFIX = "sqlite:///"
_LOGGER = logging.getLogger(__name__)


class Settings(BaseSettings):
    # API Base URLs
    CLOB_API_URL: str = "https://clob.polymarket.com"
    DATA_API_URL: str = "https://data-api.polymarket.com"

    # Copy targets
    USER_ADDRESS: str = ""  # Tracked trader wallet
    PROXY_WALLET: str = ""  # Follower wallet that places the mirrored orders

    # Copy loop behaviour
    RETRY_LIMIT: int = 3  # Max execution attempts per activity
    TOO_OLD_TIMESTAMP: float = 24.0  # Freshness window in hours
    FETCH_INTERVAL: float = 1.0  # Seconds between activity sync cycles
    EXECUTOR_IDLE_INTERVAL: float = 1.0  # Seconds the executor waits when nothing is pending

    # Order sizing
    PRICE_SLIPPAGE_TOLERANCE: float = 0.05  # Max best-ask premium over the source price
    ORDER_RETRY_LIMIT: Optional[int] = None  # Per-submission retry budget (defaults to RETRY_LIMIT)

    # Polygon Network (balance lookups)
    POLYGON_RPC_URL: str = "https://polygon-rpc.com"
    USDC_CONTRACT_ADDRESS: str = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"  # USDC.e
    BALANCE_FALLBACK: float = 0.0  # Reported when the on-chain lookup fails
    CHAIN_ID: int = 137  # Polygon mainnet

    # Trading Configuration (Polymarket CLOB)
    PRIVATE_KEY: Optional[str] = None  # Wallet private key for signing
    CLOB_API_KEY: Optional[str] = None
    CLOB_API_SECRET: Optional[str] = None
    CLOB_API_PASSPHRASE: Optional[str] = None
    SIGNATURE_TYPE: int = 2  # 0 EOA, 1 email/magic proxy, 2 browser wallet proxy

    # Database - canonical path under project-root data directory
    DATABASE_URL: str = f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH}"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE_PATH: Optional[str] = str(_DEFAULT_LOG_PATH)
    LOG_JSON: bool = True

    # API Settings
    API_TIMEOUT_SECONDS: int = 30
    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0

    @property
    def order_retry_limit(self) -> int:
        return self.ORDER_RETRY_LIMIT or self.RETRY_LIMIT

    def require_copy_targets(self) -> None:
        """Raise unless both the tracked and the follower wallet are configured."""
        missing = [
            name
            for name in ("USER_ADDRESS", "PROXY_WALLET")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"{', '.join(missing)} is not defined")

    @field_validator("USER_ADDRESS", "PROXY_WALLET", "USDC_CONTRACT_ADDRESS", mode="before")
    @classmethod
    def _normalize_wallet_field(cls, value: object) -> object:
        """Strip quotes/whitespace and reject malformed addresses."""
        if value is None:
            return ""
        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text
        return validate_eth_address(text)

    @field_validator("RETRY_LIMIT")
    @classmethod
    def _validate_retry_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("RETRY_LIMIT must be at least 1")
        return value

    @field_validator("ORDER_RETRY_LIMIT")
    @classmethod
    def _validate_order_retry_limit(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError("ORDER_RETRY_LIMIT must be at least 1")
        return value

    @field_validator("TOO_OLD_TIMESTAMP", "FETCH_INTERVAL", "EXECUTOR_IDLE_INTERVAL")
    @classmethod
    def _validate_positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("intervals and the freshness window must be positive")
        return value

    @field_validator("CLOB_API_URL", "DATA_API_URL", "POLYGON_RPC_URL", mode="before")
    @classmethod
    def _normalize_url_field(cls, value: object) -> object:
        """Trim accidental quotes/whitespace from URL env vars."""
        if value is None:
            return value
        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text
        return text.rstrip("/")

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _normalize_database_url(cls, value: object) -> object:
        """Normalize DB URL so worker cwd changes never split databases."""
        if value is None:
            return value

        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text

        # Convert relative SQLite paths to absolute project-root paths.
        for prefix in (_SQLITE_ASYNC_PREFIX, _SQLITE_SYNC_PREFIX):
            if not text.startswith(prefix):
                continue
            path_part = text[len(prefix) :]
            if not path_part:
                return text
            if path_part in {":memory:", "/:memory:"}:
                return f"{prefix}:memory:"
            absolute = Path(path_part).resolve() if path_part.startswith("/") else (_PROJECT_ROOT / path_part).resolve()
            return f"{prefix}{absolute}"

        return text

    @model_validator(mode="after")
    def _warn_on_self_copy(self) -> "Settings":
        if self.USER_ADDRESS and self.USER_ADDRESS.lower() == self.PROXY_WALLET.lower():
            _LOGGER.warning(
                "USER_ADDRESS and PROXY_WALLET are the same wallet; the bot will mirror its own trades"
            )
        return self

    class Config:
        # Load project-root .env first (common workflow), then backend/.env
        # as an override if present.
        env_file = (
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        )
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()

"""
Perp Executor — Configuration
All tunable parameters in one place.
"""

import os
import re
from decimal import Decimal
from dataclasses import dataclass, field
from typing import Dict, List

_PRIVATE_KEY_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


def normalize_private_key(secret: str) -> str:
    """Return the key with a 0x prefix. Raises ValueError on a malformed key."""
    key = secret if secret.startswith("0x") else f"0x{secret}"
    if not _PRIVATE_KEY_RE.match(key):
        raise ValueError(
            "Invalid HYPERLIQUID_API_SECRET format. It must be a 64-character "
            "hexadecimal string, optionally prefixed with '0x'."
        )
    return key


def _parse_decimal_list(raw: str) -> List[Decimal]:
    return [Decimal(part.strip()) for part in raw.split(",") if part.strip()]


@dataclass
class ExecutionConfig:
    deadline_sec: float = 30.0          # Wraps pricing, leverage and negotiation
    call_timeout_sec: float = 10.0      # Per network call
    default_slippage_bps: int = 200     # 2%
    tick_size_candidates: List[Decimal] = field(default_factory=lambda: [
        Decimal("0.5"), Decimal("0.1"), Decimal("1.0"), Decimal("5.0"), Decimal("10.0"),
    ])
    max_sig_figs: int = 5               # Venue price precision
    margin_mode: str = "cross"
    max_leverage: Decimal = Decimal("40")
    trading_enabled: bool = False       # Master trade switch, off for safety


@dataclass
class CatalogConfig:
    # Symbol -> minimum mark price characteristic of that asset.
    # Used to cross-check symbol lookups on venues that mislabel assets.
    price_magnitude_thresholds: Dict[str, Decimal] = field(default_factory=lambda: {
        "BTC": Decimal("10000"),
    })


@dataclass
class ExchangeConfig:
    api_secret: str = ""
    account_address: str = ""
    testnet: bool = False
    base_url_mainnet: str = "https://api.hyperliquid.xyz"
    base_url_testnet: str = "https://api.hyperliquid-testnet.xyz"

    @property
    def base_url(self) -> str:
        return self.base_url_testnet if self.testnet else self.base_url_mainnet

    @property
    def can_sign(self) -> bool:
        return bool(self.api_secret)


@dataclass
class NotificationConfig:
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    enabled: bool = True


@dataclass
class StorageConfig:
    db_path: str = "./data/trades.db"


@dataclass
class DashboardConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class AppConfig:
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load config with environment variable overrides."""
        config = cls()
        secret = os.getenv("HYPERLIQUID_API_SECRET", "")
        config.exchange.api_secret = normalize_private_key(secret) if secret else ""
        config.exchange.account_address = os.getenv("HYPERLIQUID_ACCOUNT_ADDRESS", "")
        config.exchange.testnet = os.getenv("HYPERLIQUID_USE_TESTNET", "false").lower() == "true"

        ex = config.execution
        ex.deadline_sec = float(os.getenv("EXECUTION_DEADLINE_SEC", ex.deadline_sec))
        ex.call_timeout_sec = float(os.getenv("CALL_TIMEOUT_SEC", ex.call_timeout_sec))
        ex.default_slippage_bps = int(os.getenv("DEFAULT_SLIPPAGE_BPS", ex.default_slippage_bps))
        ex.margin_mode = os.getenv("MARGIN_MODE", ex.margin_mode).lower()
        ex.trading_enabled = os.getenv("TRADING_ENABLED", "false").lower() == "true"
        candidates = os.getenv("TICK_SIZE_CANDIDATES", "")
        if candidates:
            ex.tick_size_candidates = _parse_decimal_list(candidates)

        config.notifications.telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "")
        config.notifications.telegram_chat_id = os.getenv("TELEGRAM_CHAT_ID", "")
        config.storage.db_path = os.getenv("DB_PATH", config.storage.db_path)
        config.dashboard.port = int(os.getenv("DASHBOARD_PORT", config.dashboard.port))
        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        return config

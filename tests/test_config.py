"""Tests for environment-driven configuration."""

from decimal import Decimal

import pytest

from config import AppConfig, normalize_private_key

KEY = "ab" * 32


def test_defaults(monkeypatch):
    for name in ("HYPERLIQUID_API_SECRET", "HYPERLIQUID_USE_TESTNET", "TRADING_ENABLED", "TICK_SIZE_CANDIDATES"):
        monkeypatch.delenv(name, raising=False)
    config = AppConfig.from_env()

    assert config.exchange.can_sign is False
    assert config.exchange.base_url == "https://api.hyperliquid.xyz"
    assert config.execution.trading_enabled is False
    assert config.execution.default_slippage_bps == 200
    assert config.execution.tick_size_candidates[:3] == [Decimal("0.5"), Decimal("0.1"), Decimal("1.0")]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("HYPERLIQUID_API_SECRET", KEY)
    monkeypatch.setenv("HYPERLIQUID_USE_TESTNET", "true")
    monkeypatch.setenv("EXECUTION_DEADLINE_SEC", "15")
    monkeypatch.setenv("TICK_SIZE_CANDIDATES", "1, 0.5")
    monkeypatch.setenv("MARGIN_MODE", "ISOLATED")
    config = AppConfig.from_env()

    assert config.exchange.api_secret == f"0x{KEY}"
    assert config.exchange.base_url == "https://api.hyperliquid-testnet.xyz"
    assert config.execution.deadline_sec == 15.0
    assert config.execution.tick_size_candidates == [Decimal("1"), Decimal("0.5")]
    assert config.execution.margin_mode == "isolated"


def test_malformed_secret_is_refused(monkeypatch):
    monkeypatch.setenv("HYPERLIQUID_API_SECRET", "not-a-key")
    with pytest.raises(ValueError):
        AppConfig.from_env()


@pytest.mark.parametrize("secret", [KEY, f"0x{KEY}", KEY.upper()])
def test_normalize_private_key_accepts_hex(secret):
    assert normalize_private_key(secret).lower() == f"0x{KEY}"


@pytest.mark.parametrize("secret", ["", "0x1234", "zz" * 32, KEY + "ab"])
def test_normalize_private_key_rejects_bad_keys(secret):
    with pytest.raises(ValueError):
        normalize_private_key(secret)

"""
Environment-driven configuration for the compiler, engine and adapters.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ADAPTER_CREDENTIALS: Dict[str, List[str]] = {
    "backpack": ["BACKPACK_API_KEY", "BACKPACK_API_SECRET"],
    "lighter": [
        "LIGHTER_BASE_URL",
        "LIGHTER_API_KEY_PUBLIC",
        "LIGHTER_API_KEY_PRIVATE",
        "LIGHTER_API_KEY_INDEX",
        "ETH_PRIVATE_KEY",
        "LIGHTER_WALLET_ADDRESS",
    ],
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class EngineSettings:
    default_provider: str = "backpack"
    provider_fallback: Optional[str] = None
    max_iterations: int = 100
    fallback_price: float = 3000.0
    default_quote_asset: str = "USDC"
    price_feed_url: Optional[str] = None
    notify_webhook_url: Optional[str] = None
    ai_provider: str = "anthropic"
    ai_model: Optional[str] = None
    ai_api_key: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "EngineSettings":
        if dotenv:
            load_dotenv()

        max_iterations = _env_int("TRADING_MAX_ITER", cls.max_iterations)
        if max_iterations <= 0:
            raise ValueError("TRADING_MAX_ITER must be a positive integer")

        fallback_price = _env_float("FALLBACK_PRICE", cls.fallback_price)
        if fallback_price <= 0:
            raise ValueError("FALLBACK_PRICE must be a positive number")

        ai_provider = (_env_str("AI_PROVIDER") or cls.ai_provider).lower()
        key_name = "OPENAI_API_KEY" if ai_provider == "openai" else "ANTHROPIC_API_KEY"

        return cls(
            default_provider=(_env_str("DEFAULT_PROVIDER") or cls.default_provider).lower(),
            provider_fallback=(_env_str("PROVIDER_FALLBACK") or "").lower() or None,
            max_iterations=max_iterations,
            fallback_price=fallback_price,
            default_quote_asset=(_env_str("DEFAULT_QUOTE_ASSET") or cls.default_quote_asset).upper(),
            price_feed_url=_env_str("PRICE_FEED_URL"),
            notify_webhook_url=_env_str("NOTIFY_WEBHOOK_URL"),
            ai_provider=ai_provider,
            ai_model=_env_str("AI_MODEL"),
            ai_api_key=_env_str(key_name),
        )


def missing_credentials(provider: str) -> List[str]:
    return [name for name in ADAPTER_CREDENTIALS.get(provider, []) if not _env_str(name)]


def credentials_report() -> Dict[str, object]:
    """Which adapter variables are set, without exposing their values."""
    present: Dict[str, bool] = {}
    missing: List[str] = []
    for names in ADAPTER_CREDENTIALS.values():
        for name in names:
            has = _env_str(name) is not None
            present[name] = has
            if not has:
                missing.append(name)
    return {"present": present, "missing": missing, "allPresent": not missing}

"""
Settlement provider adapters.

The engine only talks to ``ProviderAdapter``: ``place_order`` and ``notify``.
Adapters report missing credentials and downstream rejections as failed
``ExecutionResult`` values instead of raising. Exchange wire protocols are not
implemented here; credentialed adapters acknowledge the order with a simulated
submission id.
"""

from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional

from notifications import LogNotifier, Notifier
from settings import missing_credentials
from workflow_types import ExecutionResult

logger = logging.getLogger(__name__)


class UnknownProviderError(ValueError):
    pass


@dataclass(frozen=True)
class OrderRequest:
    side: str
    asset: str
    amount: float
    price: Optional[float] = None
    leverage: Optional[int] = None


class ProviderAdapter(ABC):
    name: str = "abstract"

    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier

    @abstractmethod
    async def place_order(self, order: OrderRequest) -> ExecutionResult:
        """Submit ``order`` to the settlement backend."""

    async def notify(self, channel: str, to: str, message: str) -> ExecutionResult:
        if self.notifier is None:
            return ExecutionResult.failure(f"{self.name} does not support notifications")
        return await self.notifier.notify(channel, to, message)

    def _missing(self) -> Optional[ExecutionResult]:
        missing = missing_credentials(self.name)
        if missing:
            return ExecutionResult.failure(f"missing credentials: {', '.join(missing)}")
        return None


def _simulated_tx(prefix: str) -> str:
    return f"{prefix}-{secrets.token_hex(6)}"


class BackpackAdapter(ProviderAdapter):
    name = "backpack"

    async def place_order(self, order: OrderRequest) -> ExecutionResult:
        missing = self._missing()
        if missing:
            return missing

        payload = {
            "symbol": order.asset,
            "side": order.side.upper(),
            "size": order.amount,
            "type": "market" if order.price is None else "limit",
        }
        if order.price is not None:
            payload["price"] = order.price
        if order.leverage:
            payload["leverage"] = order.leverage
        logger.info("Backpack order %s", payload)
        return ExecutionResult(
            ok=True,
            message="Backpack order simulated",
            tx_id=_simulated_tx("bp"),
            details=payload,
        )


class LighterAdapter(ProviderAdapter):
    name = "lighter"

    async def place_order(self, order: OrderRequest) -> ExecutionResult:
        missing = self._missing()
        if missing:
            return missing

        symbol = order.asset if "-" in order.asset else f"{order.asset}-USDC"
        side = "BUY" if order.side in ("buy", "long") else "SELL"
        payload = {
            "symbol": symbol,
            "side": side,
            "size": order.amount,
            "type": "MARKET" if order.price is None else "LIMIT",
            "price": order.price,
            "leverage": order.leverage,
        }
        logger.info("Lighter order %s", payload)
        return ExecutionResult(
            ok=True,
            message="Lighter order simulated",
            tx_id=_simulated_tx("lt"),
            details={k: v for k, v in payload.items() if v is not None},
        )


class MasumiAdapter(ProviderAdapter):
    """Records the order for on-chain settlement/logging; needs no credentials."""

    name = "masumi"

    async def place_order(self, order: OrderRequest) -> ExecutionResult:
        details = {k: v for k, v in asdict(order).items() if v is not None}
        return ExecutionResult(
            ok=True,
            message="Masumi payment recorded",
            tx_id=_simulated_tx("ms"),
            details=details,
        )


ADAPTERS: Dict[str, Callable[[Optional[Notifier]], ProviderAdapter]] = {
    "backpack": BackpackAdapter,
    "lighter": LighterAdapter,
    "masumi": MasumiAdapter,
    # On-chain settlement reuses the Masumi path.
    "cardano": MasumiAdapter,
}


def pick_adapter(
    provider: str,
    *,
    notifier: Optional[Notifier] = None,
    fallback: Optional[str] = None,
) -> ProviderAdapter:
    """Adapter for ``provider``.

    Unknown names raise ``UnknownProviderError`` unless ``fallback`` names a
    known provider, in which case that adapter is used instead.
    """
    name = (provider or "").strip().lower()
    factory = ADAPTERS.get(name)
    if factory is None:
        if fallback and fallback in ADAPTERS:
            logger.warning("Unknown provider %r, falling back to %s", provider, fallback)
            factory = ADAPTERS[fallback]
        else:
            raise UnknownProviderError(
                f"Unknown provider: {provider!r}. Must be one of: {', '.join(sorted(ADAPTERS))}"
            )
    return factory(notifier if notifier is not None else LogNotifier())

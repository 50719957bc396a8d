"""
Notification delivery used by provider adapters.

Transport lives outside this service: ``WebhookNotifier`` hands the message to
a relay (mail/SMS/chat gateway) over HTTP, ``LogNotifier`` only records it.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import requests

from workflow_types import ExecutionResult

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Trading Workflow Alert"
REQUEST_TIMEOUT = 10


class Notifier(ABC):
    @abstractmethod
    async def notify(self, channel: str, to: str, message: str) -> ExecutionResult:
        """Deliver ``message`` to ``to`` over ``channel``."""


class LogNotifier(Notifier):
    """Records notifications in the log. Used when no relay is configured."""

    async def notify(self, channel: str, to: str, message: str) -> ExecutionResult:
        logger.info("Notification (%s) to %s: %s", channel, to, message)
        return ExecutionResult(ok=True, message=f"Notification logged for {to}")


class WebhookNotifier(Notifier):
    def __init__(self, url: str, subject: str = DEFAULT_SUBJECT, timeout: float = REQUEST_TIMEOUT):
        self.url = url
        self.subject = subject
        self.timeout = timeout

    def _post(self, payload: dict) -> requests.Response:
        return requests.post(self.url, json=payload, timeout=self.timeout)

    async def notify(self, channel: str, to: str, message: str) -> ExecutionResult:
        payload = {
            "channel": channel,
            "to": to,
            "subject": self.subject,
            "message": message,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        }
        try:
            response = await asyncio.to_thread(self._post, payload)
        except requests.RequestException as exc:
            logger.warning("Notification relay unreachable: %s", exc)
            return ExecutionResult.failure(f"{channel} notification error: {exc}")

        if response.ok:
            return ExecutionResult(ok=True, message=f"{channel} notification sent to {to}")
        return ExecutionResult.failure(
            f"{channel} notification failed: HTTP {response.status_code}",
            status=response.status_code,
        )


def build_notifier(webhook_url: Optional[str]) -> Notifier:
    return WebhookNotifier(webhook_url) if webhook_url else LogNotifier()

import os
import unittest
from unittest.mock import MagicMock, patch

import requests

from notifications import LogNotifier, WebhookNotifier, build_notifier
from price_feed import HttpPriceFeed, PriceLookupError, StaticPriceFeed, resolve_order_amount
from provider_adapters import (
    BackpackAdapter,
    LighterAdapter,
    MasumiAdapter,
    OrderRequest,
    UnknownProviderError,
    pick_adapter,
)
from settings import EngineSettings, credentials_report, missing_credentials
from workflow_types import ExecutionResult, TradeAction

BACKPACK_ENV = {"BACKPACK_API_KEY": "key", "BACKPACK_API_SECRET": "secret"}


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, channel, to, message):
        self.sent.append((channel, to, message))
        return ExecutionResult(ok=True, message="recorded")


class PickAdapterTests(unittest.TestCase):
    def test_known_providers(self):
        self.assertIsInstance(pick_adapter("backpack"), BackpackAdapter)
        self.assertIsInstance(pick_adapter(" Lighter "), LighterAdapter)
        self.assertIsInstance(pick_adapter("masumi"), MasumiAdapter)

    def test_cardano_settles_through_masumi(self):
        self.assertIsInstance(pick_adapter("cardano"), MasumiAdapter)

    def test_unknown_provider_is_rejected(self):
        with self.assertRaises(UnknownProviderError) as ctx:
            pick_adapter("kraken")
        self.assertIn("kraken", str(ctx.exception))

    def test_unknown_provider_uses_configured_fallback(self):
        self.assertIsInstance(pick_adapter("kraken", fallback="backpack"), BackpackAdapter)

    def test_default_notifier_logs(self):
        self.assertIsInstance(pick_adapter("masumi").notifier, LogNotifier)


class AdapterTests(unittest.IsolatedAsyncioTestCase):
    async def test_backpack_reports_missing_credentials(self):
        with patch.dict(os.environ, {}, clear=True):
            result = await BackpackAdapter().place_order(OrderRequest(side="buy", asset="ETH", amount=1))
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "missing credentials: BACKPACK_API_KEY, BACKPACK_API_SECRET")

    async def test_backpack_places_with_credentials(self):
        with patch.dict(os.environ, BACKPACK_ENV, clear=True):
            result = await BackpackAdapter().place_order(
                OrderRequest(side="sell", asset="SOL", amount=2, price=150, leverage=3)
            )
        self.assertTrue(result.ok)
        self.assertTrue(result.tx_id.startswith("bp-"))
        self.assertEqual(
            result.details,
            {"symbol": "SOL", "side": "SELL", "size": 2, "type": "limit", "price": 150, "leverage": 3},
        )

    async def test_lighter_requires_all_credentials(self):
        with patch.dict(os.environ, {"LIGHTER_BASE_URL": "https://example.invalid"}, clear=True):
            result = await LighterAdapter().place_order(OrderRequest(side="long", asset="ETH", amount=1))
        self.assertFalse(result.ok)
        self.assertNotIn("LIGHTER_BASE_URL", result.message)
        self.assertIn("ETH_PRIVATE_KEY", result.message)

    async def test_masumi_needs_no_credentials(self):
        with patch.dict(os.environ, {}, clear=True):
            result = await MasumiAdapter().place_order(OrderRequest(side="buy", asset="ADA", amount=10))
        self.assertTrue(result.ok)
        self.assertEqual(result.details, {"side": "buy", "asset": "ADA", "amount": 10})

    async def test_notify_goes_through_notifier(self):
        notifier = RecordingNotifier()
        adapter = pick_adapter("masumi", notifier=notifier)
        result = await adapter.notify("sms", "+15551234567", "filled")
        self.assertTrue(result.ok)
        self.assertEqual(notifier.sent, [("sms", "+15551234567", "filled")])

    async def test_notify_without_notifier_fails(self):
        result = await MasumiAdapter(notifier=None).notify("email", "a@b.co", "hi")
        self.assertFalse(result.ok)


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = EngineSettings.from_env(dotenv=False)
        self.assertEqual(settings.default_provider, "backpack")
        self.assertEqual(settings.max_iterations, 100)
        self.assertEqual(settings.fallback_price, 3000.0)
        self.assertIsNone(settings.provider_fallback)
        self.assertIsNone(settings.ai_api_key)

    def test_overrides(self):
        env = {
            "DEFAULT_PROVIDER": "Lighter",
            "TRADING_MAX_ITER": "7",
            "FALLBACK_PRICE": "2500.5",
            "AI_PROVIDER": "openai",
            "OPENAI_API_KEY": "sk-test",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = EngineSettings.from_env(dotenv=False)
        self.assertEqual(settings.default_provider, "lighter")
        self.assertEqual(settings.max_iterations, 7)
        self.assertEqual(settings.fallback_price, 2500.5)
        self.assertEqual((settings.ai_provider, settings.ai_api_key), ("openai", "sk-test"))

    def test_iteration_cap_must_be_positive(self):
        with patch.dict(os.environ, {"TRADING_MAX_ITER": "0"}, clear=True):
            with self.assertRaises(ValueError):
                EngineSettings.from_env(dotenv=False)

    def test_credentials_report_hides_values(self):
        with patch.dict(os.environ, BACKPACK_ENV, clear=True):
            report = credentials_report()
            self.assertEqual(missing_credentials("backpack"), [])
        self.assertTrue(report["present"]["BACKPACK_API_KEY"])
        self.assertFalse(report["present"]["LIGHTER_BASE_URL"])
        self.assertIn("ETH_PRIVATE_KEY", report["missing"])
        self.assertFalse(report["allPresent"])
        self.assertNotIn("secret", str(report))


def trade(**overrides):
    fields = {"id": "a1", "side": "buy", "asset": "ETH", "amount": 1}
    fields.update(overrides)
    return TradeAction(**fields)


class PriceFeedTests(unittest.IsolatedAsyncioTestCase):
    async def test_plain_amount_is_used_as_is(self):
        amount = await resolve_order_amount(trade(amount=2), StaticPriceFeed(), fallback_price=3000)
        self.assertEqual(amount, 2)

    async def test_quote_amount_divided_by_price(self):
        feed = StaticPriceFeed({"ETH-USDC": 2500})
        amount = await resolve_order_amount(trade(quote_amount=5, quote_asset="USDC"), feed, fallback_price=3000)
        self.assertAlmostEqual(amount, 0.002)

    async def test_default_quote_asset(self):
        feed = StaticPriceFeed({"ETH-USDT": 2000})
        amount = await resolve_order_amount(
            trade(quote_amount=10), feed, fallback_price=3000, default_quote_asset="USDT"
        )
        self.assertAlmostEqual(amount, 0.005)

    async def test_lookup_failure_uses_fallback_price(self):
        amount = await resolve_order_amount(trade(quote_amount=6), StaticPriceFeed(), fallback_price=3000)
        self.assertAlmostEqual(amount, 0.002)

    async def test_non_positive_price_uses_fallback(self):
        feed = StaticPriceFeed({"ETH-USDC": 0})
        amount = await resolve_order_amount(trade(quote_amount=3), feed, fallback_price=3000)
        self.assertAlmostEqual(amount, 0.001)

    async def test_static_feed_unknown_symbol(self):
        with self.assertRaises(PriceLookupError):
            await StaticPriceFeed().get_price("BTC-USDC")

    async def test_http_feed_reads_nested_price(self):
        response = MagicMock()
        response.json.return_value = {"result": {"lastPrice": "64000.5"}}
        with patch("price_feed.requests.get", return_value=response) as get:
            price = await HttpPriceFeed("https://prices.example/{symbol}").get_price("BTC-USDC")
        self.assertEqual(price, 64000.5)
        get.assert_called_once_with("https://prices.example/BTC-USDC", timeout=10)

    async def test_http_feed_network_error(self):
        with patch("price_feed.requests.get", side_effect=requests.ConnectionError("down")):
            with self.assertRaises(PriceLookupError):
                await HttpPriceFeed("https://prices.example/{symbol}").get_price("BTC-USDC")


class NotifierTests(unittest.IsolatedAsyncioTestCase):
    def test_build_notifier(self):
        self.assertIsInstance(build_notifier(None), LogNotifier)
        self.assertIsInstance(build_notifier("https://relay.example/hook"), WebhookNotifier)

    async def test_webhook_success(self):
        response = MagicMock(ok=True, status_code=200)
        with patch("notifications.requests.post", return_value=response) as post:
            result = await WebhookNotifier("https://relay.example/hook").notify("email", "a@b.co", "filled")
        self.assertTrue(result.ok)
        payload = post.call_args.kwargs["json"]
        self.assertEqual((payload["channel"], payload["to"], payload["message"]), ("email", "a@b.co", "filled"))

    async def test_webhook_http_error(self):
        response = MagicMock(ok=False, status_code=502)
        with patch("notifications.requests.post", return_value=response):
            result = await WebhookNotifier("https://relay.example/hook").notify("sms", "+1555", "filled")
        self.assertFalse(result.ok)
        self.assertEqual(result.details, {"status": 502})

    async def test_webhook_unreachable(self):
        with patch("notifications.requests.post", side_effect=requests.Timeout("slow")):
            result = await WebhookNotifier("https://relay.example/hook").notify("discord", "user", "filled")
        self.assertFalse(result.ok)


if __name__ == "__main__":
    unittest.main()

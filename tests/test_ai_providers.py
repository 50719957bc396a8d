import unittest
from unittest.mock import AsyncMock, patch

from ai_providers import (
    AnthropicProvider,
    DEFAULT_MODELS,
    OpenAIProvider,
    _is_retryable,
    _retry_with_backoff,
    extract_json,
    get_provider,
)


class RateLimitError(Exception):
    status_code = 429


class ExtractJsonTests(unittest.TestCase):
    def test_plain_json(self):
        self.assertEqual(extract_json('{"workflow": {"id": "x"}}'), {"workflow": {"id": "x"}})

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"triggers": []}\n```\nDone.'
        self.assertEqual(extract_json(text), {"triggers": []})

    def test_rejects_non_object(self):
        with self.assertRaises(ValueError):
            extract_json("[1, 2, 3]")


class GetProviderTests(unittest.TestCase):
    def test_default_models(self):
        anthropic = get_provider(api_key="test-key")
        self.assertIsInstance(anthropic, AnthropicProvider)
        self.assertEqual(anthropic.model, DEFAULT_MODELS["anthropic"])

        openai = get_provider(api_key="test-key", model="gpt-4o", provider="OpenAI")
        self.assertIsInstance(openai, OpenAIProvider)
        self.assertEqual(openai.model, "gpt-4o")

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            get_provider(api_key="test-key", provider="gemini")


class RetryTests(unittest.IsolatedAsyncioTestCase):
    def test_retryable_errors(self):
        self.assertTrue(_is_retryable(RateLimitError()))
        self.assertTrue(_is_retryable(TimeoutError()))
        self.assertFalse(_is_retryable(ValueError("bad request")))

    async def test_retries_transient_failures(self):
        fn = AsyncMock(side_effect=[RateLimitError(), {"ok": True}])
        with patch("ai_providers.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await _retry_with_backoff(fn)
        self.assertEqual(result, {"ok": True})
        self.assertEqual(fn.await_count, 2)
        sleep.assert_awaited_once()

    async def test_does_not_retry_permanent_failures(self):
        fn = AsyncMock(side_effect=ValueError("bad request"))
        with self.assertRaises(ValueError):
            await _retry_with_backoff(fn)
        self.assertEqual(fn.await_count, 1)

    async def test_gives_up_after_max_retries(self):
        fn = AsyncMock(side_effect=RateLimitError())
        with patch("ai_providers.asyncio.sleep", new=AsyncMock()):
            with self.assertRaises(RateLimitError):
                await _retry_with_backoff(fn, max_retries=2)
        self.assertEqual(fn.await_count, 3)


if __name__ == "__main__":
    unittest.main()

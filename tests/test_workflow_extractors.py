import unittest

from workflow_extractors import (
    DEFAULT_ASSET,
    extract_asset,
    extract_exit_targets,
    extract_notification_target,
    extract_price_conditions,
    extract_quote_sizing,
    extract_recurrence,
    extract_trades,
    infer_operator,
    normalize_asset,
    resolve_asset,
)


class AssetExtractionTests(unittest.TestCase):
    def test_known_aliases_map_to_tickers(self):
        self.assertEqual(extract_asset("Buy some Bitcoin"), "BTC")
        self.assertEqual(extract_asset("sell solana now"), "SOL")
        self.assertEqual(extract_asset("short DOGE"), "DOGE")

    def test_unknown_token_after_verb_is_upper_cased(self):
        self.assertEqual(extract_asset("buy 3 pepe"), "PEPE")
        self.assertEqual(extract_asset("tesla stock looks cheap"), "TESLA")

    def test_stopwords_are_not_assets(self):
        self.assertIsNone(extract_asset("buy at 100"))
        self.assertEqual(resolve_asset("buy at 100"), DEFAULT_ASSET)

    def test_normalize_asset(self):
        self.assertEqual(normalize_asset(" Ethereum "), "ETH")
        self.assertEqual(normalize_asset("arb"), "ARB")


class TradeExtractionTests(unittest.TestCase):
    def test_side_amount_and_order(self):
        trades = extract_trades("Sell 0.5 ETH, then buy 2 eth")
        self.assertEqual([(t.side, t.amount) for t in trades], [("sell", 0.5), ("buy", 2.0)])
        self.assertLess(trades[0].index, trades[1].index)

    def test_amount_defaults_to_one(self):
        (trade,) = extract_trades("short doge")
        self.assertEqual(trade.amount, 1.0)
        self.assertIsNone(trade.leverage)

    def test_leverage_is_not_an_amount(self):
        (trade,) = extract_trades("long 10x eth")
        self.assertEqual(trade.amount, 1.0)
        self.assertEqual(trade.leverage, 10)

    def test_price_hint_and_duplicates(self):
        trades = extract_trades("buy at 100, buy at 100 again, sell at 1,200")
        self.assertEqual(
            [(t.side, t.price_hint) for t in trades],
            [("buy", 100.0), ("sell", 1200.0)],
        )

    def test_verb_must_be_a_whole_word(self):
        self.assertEqual(extract_trades("keep buying sol"), [])


class QuoteSizingTests(unittest.TestCase):
    def test_usdc_worth_of_token(self):
        quote = extract_quote_sizing("buy 25 USDC worth of sol")
        self.assertEqual((quote.quote_amount, quote.quote_asset, quote.asset), (25.0, "USDC", "SOL"))

    def test_dollar_amount(self):
        quote = extract_quote_sizing("buy $40 of ethereum")
        self.assertEqual((quote.quote_amount, quote.quote_asset, quote.asset), (40.0, "USD", "ETH"))

    def test_plain_amount_is_not_quote_sizing(self):
        self.assertIsNone(extract_quote_sizing("buy 5 eth"))


class PriceConditionTests(unittest.TestCase):
    def test_keyword_operators(self):
        conditions = extract_price_conditions("buy when btc drops below 40,000 or goes above 45000")
        self.assertEqual(
            [(c.threshold, c.operator) for c in conditions],
            [(40000.0, "<="), (45000.0, ">=")],
        )

    def test_explicit_symbol_wins(self):
        (condition,) = extract_price_conditions("sell eth if price > 3500")
        self.assertEqual((condition.threshold, condition.operator), (3500.0, ">"))

    def test_non_price_numbers_are_ignored(self):
        text = "when ready buy 5 usdc worth of eth with 3x leverage every 10 seconds, tp 5%"
        self.assertEqual(extract_price_conditions(text), [])

    def test_small_numbers_are_ignored(self):
        self.assertEqual(extract_price_conditions("buy at 0.5"), [])

    def test_excluded_spans_are_skipped(self):
        text = "stop loss at 2800"
        self.assertEqual(len(extract_price_conditions(text)), 1)
        self.assertEqual(extract_price_conditions(text, [(0, len(text))]), [])

    def test_infer_operator(self):
        self.assertEqual(infer_operator("if it falls to"), "<=")
        self.assertEqual(infer_operator("sell eth at"), ">=")
        self.assertEqual(infer_operator("buy eth at"), "<=")
        self.assertEqual(infer_operator("at", "and then it drops"), "<=")
        self.assertEqual(infer_operator("price"), ">=")


class RecurrenceTests(unittest.TestCase):
    def test_explicit_intervals(self):
        self.assertEqual(extract_recurrence("every 30 sec").interval_seconds, 30)
        self.assertEqual(extract_recurrence("each 2 hours").interval_seconds, 7200)
        self.assertEqual(extract_recurrence("every minute").interval_seconds, 60)
        self.assertTrue(extract_recurrence("every 5s").explicit)

    def test_repeat_keywords_use_default(self):
        recurrence = extract_recurrence("buy eth continuously")
        self.assertEqual(recurrence.interval_seconds, 15)
        self.assertFalse(recurrence.explicit)

    def test_no_recurrence(self):
        self.assertIsNone(extract_recurrence("buy eth once"))


class ExitTargetTests(unittest.TestCase):
    def test_absolute_and_percent(self):
        exits = extract_exit_targets("take profit at 4000, stop loss 3%")
        self.assertEqual(exits.take_profit, 4000.0)
        self.assertIsNone(exits.take_profit_percent)
        self.assertEqual(exits.stop_loss_percent, 3.0)
        self.assertIsNone(exits.stop_loss)
        self.assertEqual(len(exits.spans), 2)

    def test_abbreviations(self):
        exits = extract_exit_targets("tp 10% sl 2%")
        self.assertEqual((exits.take_profit_percent, exits.stop_loss_percent), (10.0, 2.0))

    def test_empty(self):
        self.assertTrue(extract_exit_targets("buy eth").is_empty())


class NotificationTargetTests(unittest.TestCase):
    def test_email_has_priority(self):
        target = extract_notification_target("email Bob@Example.com or text me on +44 20 7946 0958")
        self.assertEqual((target.channel, target.to), ("email", "bob@example.com"))

    def test_sms_number_is_normalized(self):
        target = extract_notification_target("sms me at 555-123-4567")
        self.assertEqual((target.channel, target.to), ("sms", "5551234567"))

    def test_discord_without_handle(self):
        target = extract_notification_target("post it to Discord")
        self.assertEqual((target.channel, target.to), ("discord", None))

    def test_no_target(self):
        self.assertIsNone(extract_notification_target("buy 1 btc"))


if __name__ == "__main__":
    unittest.main()

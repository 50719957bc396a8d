"""
Pattern-based extraction of trading intent from free text.

Every function here is pure: it reads the lower-cased strategy text and
returns plain dataclasses. A pattern that does not match, or that captures a
malformed number, simply yields nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

DEFAULT_ASSET = "BTC"
DEFAULT_RECURRING_INTERVAL_SECONDS = 15
DEFAULT_LOOP_MAX_ITERATIONS = 10

# Numbers below this are treated as amounts/leverage, never as price thresholds.
MIN_PRICE_THRESHOLD = 1.0

# Insertion order matters: the first alias found in the text wins.
KNOWN_ASSETS: Dict[str, str] = {
    "btc": "BTC",
    "bitcoin": "BTC",
    "eth": "ETH",
    "ethereum": "ETH",
    "sol": "SOL",
    "solana": "SOL",
    "ada": "ADA",
    "cardano": "ADA",
    "xrp": "XRP",
    "ripple": "XRP",
    "doge": "DOGE",
    "dogecoin": "DOGE",
    "bnb": "BNB",
    "binance": "BNB",
    "matic": "MATIC",
    "polygon": "MATIC",
    "reliance": "RELIANCE",
    "nifty": "NIFTY",
    "banknifty": "BANKNIFTY",
    "sensex": "SENSEX",
    "gold": "GOLD",
    "silver": "SILVER",
    "crude": "CRUDE",
}

ASSET_STOPWORDS = {"the", "it", "this", "dip", "now", "later", "if", "when", "at", "and", "or", "to"}
UNIT_WORDS = {
    "share", "shares", "unit", "units", "coin", "coins", "token", "tokens",
    "usd", "usdc", "worth", "of", "every", "each",
}

_NUMBER = r"(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"

_DYNAMIC_ASSET_PATTERNS = [
    re.compile(r"\b(?:buy|sell|long|short|accumulate)\s+(?:\d*\.?\d*\s*)?([a-z]{2,10})\b"),
    re.compile(r"\b([a-z]{2,10})\s+(?:stock|shares?|coin|token)\b"),
]

_ACTION_RE = re.compile(
    r"\b(buy|sell|long|short)\s+"
    r"(?:" + _NUMBER + r"(?![\d.])(?!\s*x\b)\s*(?:shares?|units?|coins?|tokens?)?\s*)?"
    r"(?:(?!at\b)[a-z]+\s+)?"
    r"(?:at\s+\$?" + _NUMBER + r"(?![\d.])(?!\s*x\b))?"
)
_LEVERAGE_RE = re.compile(r"(\d+)\s*x\b")

_QUOTE_PATTERNS = [
    re.compile(_NUMBER + r"\s*(usdc|usd)\s+(?:worth\s+of|of)\s+([a-z]{2,10})\b"),
    re.compile(r"\$" + _NUMBER + r"\s+(?:worth\s+of|of)\s+([a-z]{2,10})\b"),
]

_PRICE_PATTERNS = [
    re.compile(
        r"\b(?:reaches|reach|hits|hit|drops?(?:\s+to)?|falls?(?:\s+to)?|goes|gets?\s+to|exceeds?|crosses|is)"
        r"\s*(?:above|below|over|under)?\s*(>=|<=|>|<)?\s*\$?" + _NUMBER
    ),
    re.compile(r"(?:\bat|@)\s*\$?" + _NUMBER),
    re.compile(r"(?:\b(?:above|below|over|under)|>=|<=|>|<)\s*\$?" + _NUMBER),
    re.compile(r"\b(?:price|value|cost)\s+(?:of\s+[a-z]+\s+)?(?:is\s+)?\$?" + _NUMBER),
    re.compile(r"\b(?:if|when)\s+[^.,;!?\d]*?\$?" + _NUMBER),
]
_SYMBOL_OPERATOR_RE = re.compile(r"(>=|<=|>|<)\s*\$?\d")
_OPERATOR_KEYWORDS = [
    (re.compile(r"\b(?:below|under|drops?|falls?|dips?)\b"), "<="),
    (re.compile(r"\b(?:above|over|exceeds?|hits?|reach(?:es)?|rises?)\b"), ">="),
    (re.compile(r"\bsell\b[^.;]*?\bat\b"), ">="),
    (re.compile(r"\bbuy\b[^.;]*?\bat\b"), "<="),
]
# Suffixes that mark a number as something other than a price level.
_NON_PRICE_SUFFIX_RE = re.compile(r"\s*(?:x\b|%|usdc\b|usd\b|sec|second|min|minute|hour|hr|share|unit)")

_INTERVAL_RE = re.compile(
    r"\b(?:every|each)\s+(\d+)?\s*"
    r"(secs?|seconds?|s|mins?|minutes?|m|hours?|hrs?|h)\b"
)
_REPEAT_RE = re.compile(r"\b(?:again and again|repeatedly|repeat\w*|loop\w*|continuous\w*)\b")

_TAKE_PROFIT_RE = re.compile(
    r"\b(?:take\s*profit|tp|target)\b\s*(?:at|@|:|of|to)?\s*\$?" + _NUMBER + r"\s*(%)?"
)
_STOP_LOSS_RE = re.compile(
    r"\b(?:stop\s*loss|sl|stop)\b\s*(?:at|@|:|of|to)?\s*\$?" + _NUMBER + r"\s*(%)?"
)

_EMAIL_RE = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}")
_PHONE_RE = re.compile(r"\b(?:sms|text|phone|call|whatsapp)\D{0,20}?(\+?\d[\d\s-]{8,}\d)")
_DISCORD_RE = re.compile(r"\bdiscord\b")

Span = Tuple[int, int]


@dataclass(frozen=True)
class ParsedTrade:
    side: str
    amount: float
    index: int
    end: int
    leverage: Optional[int] = None
    price_hint: Optional[float] = None


@dataclass(frozen=True)
class QuoteSizing:
    quote_amount: float
    quote_asset: str
    asset: str
    index: int


@dataclass(frozen=True)
class ParsedPriceCondition:
    threshold: float
    operator: str
    index: int


@dataclass(frozen=True)
class Recurrence:
    interval_seconds: int
    explicit: bool


@dataclass(frozen=True)
class ExitTargets:
    take_profit: Optional[float] = None
    take_profit_percent: Optional[float] = None
    stop_loss: Optional[float] = None
    stop_loss_percent: Optional[float] = None
    spans: Tuple[Span, ...] = ()

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.take_profit, self.take_profit_percent, self.stop_loss, self.stop_loss_percent)
        )


@dataclass(frozen=True)
class NotificationTarget:
    channel: str
    to: Optional[str]
    span: Optional[Span] = None


def _to_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value.replace(",", ""))
    except ValueError:
        return None


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _inside(position: int, spans: Sequence[Span]) -> bool:
    return any(start <= position < end for start, end in spans)


def normalize_asset(token: str) -> str:
    cleaned = token.strip().lower()
    return KNOWN_ASSETS.get(cleaned, cleaned.upper())


# ─── Assets ─────────────────────────────────────────────────────────


def extract_asset(text: str) -> Optional[str]:
    """Resolve the traded asset, or None when nothing recognizable is named."""
    lowered = text.lower()
    for alias, ticker in KNOWN_ASSETS.items():
        if alias in lowered:
            return ticker

    for pattern in _DYNAMIC_ASSET_PATTERNS:
        for match in pattern.finditer(lowered):
            candidate = match.group(1)
            if candidate in ASSET_STOPWORDS or candidate in UNIT_WORDS:
                continue
            return candidate.upper()
    return None


def resolve_asset(text: str) -> str:
    return extract_asset(text) or DEFAULT_ASSET


# ─── Trade actions ──────────────────────────────────────────────────


def extract_trades(text: str) -> List[ParsedTrade]:
    lowered = text.lower()
    trades: List[ParsedTrade] = []
    seen = set()

    for match in _ACTION_RE.finditer(lowered):
        side = match.group(1)
        amount = _to_float(match.group(2)) if match.group(2) else 1.0
        if amount is None:
            continue
        price_hint = _to_float(match.group(3)) if match.group(3) else None

        window = lowered[max(0, match.start() - 10): match.end() + 15]
        leverage_match = _LEVERAGE_RE.search(window)
        leverage = _to_int(leverage_match.group(1)) if leverage_match else None
        if leverage is not None and leverage <= 0:
            leverage = None

        key = (side, price_hint)
        if key in seen:
            continue
        seen.add(key)
        trades.append(
            ParsedTrade(
                side=side,
                amount=amount,
                index=match.start(),
                end=match.end(),
                leverage=leverage,
                price_hint=price_hint,
            )
        )

    trades.sort(key=lambda trade: trade.index)
    return trades


def extract_quote_sizing(text: str) -> Optional[QuoteSizing]:
    """Detect quote-denominated sizing such as ``5 usdc worth of eth``."""
    lowered = text.lower()
    best: Optional[QuoteSizing] = None
    for pattern in _QUOTE_PATTERNS:
        match = pattern.search(lowered)
        if not match:
            continue
        groups = match.groups()
        amount = _to_float(groups[0])
        if amount is None or amount <= 0:
            continue
        if len(groups) == 3:
            quote_asset, token = groups[1].upper(), groups[2]
        else:
            quote_asset, token = "USD", groups[1]
        if token in ASSET_STOPWORDS or token in UNIT_WORDS:
            continue
        candidate = QuoteSizing(
            quote_amount=amount,
            quote_asset=quote_asset,
            asset=normalize_asset(token),
            index=match.start(),
        )
        if best is None or candidate.index < best.index:
            best = candidate
    return best


# ─── Price conditions ───────────────────────────────────────────────


def _keyword_operator(context: str) -> Optional[str]:
    """Operator of the keyword closest to the end of ``context``."""
    best: Optional[Tuple[int, str]] = None
    for pattern, operator in _OPERATOR_KEYWORDS:
        for match in pattern.finditer(context):
            if best is None or match.end() >= best[0]:
                best = (match.end(), operator)
    return best[1] if best else None


def infer_operator(leading: str, surrounding: str = "") -> str:
    """Comparison implied by the words around a price; the leading words win."""
    return _keyword_operator(leading) or _keyword_operator(surrounding) or ">="


def extract_price_conditions(
    text: str,
    excluded_spans: Sequence[Span] = (),
) -> List[ParsedPriceCondition]:
    lowered = text.lower()
    candidates: List[Tuple[int, float, str]] = []

    for pattern in _PRICE_PATTERNS:
        for match in pattern.finditer(lowered):
            number_start = match.start(match.lastindex)
            number_end = match.end(match.lastindex)
            if _inside(number_start, excluded_spans):
                continue
            if _NON_PRICE_SUFFIX_RE.match(lowered, number_end):
                continue
            value = _to_float(match.group(match.lastindex))
            if value is None or value < MIN_PRICE_THRESHOLD:
                continue

            leading = lowered[max(0, match.start() - 25): number_end]
            surrounding = lowered[max(0, match.start() - 25): match.end() + 10]
            explicit = _SYMBOL_OPERATOR_RE.search(match.group(0))
            operator = explicit.group(1) if explicit else infer_operator(leading, surrounding)
            candidates.append((number_start, value, operator))

    candidates.sort(key=lambda item: item[0])
    conditions: List[ParsedPriceCondition] = []
    seen_values = set()
    for index, value, operator in candidates:
        if value in seen_values:
            continue
        seen_values.add(value)
        conditions.append(ParsedPriceCondition(threshold=value, operator=operator, index=index))
    return conditions


# ─── Recurrence ─────────────────────────────────────────────────────


def _unit_seconds(unit: str) -> int:
    if unit.startswith("h"):
        return 3600
    if unit.startswith("m"):
        return 60
    return 1


def extract_recurrence(text: str) -> Optional[Recurrence]:
    lowered = text.lower()
    match = _INTERVAL_RE.search(lowered)
    if match:
        count = _to_int(match.group(1)) if match.group(1) else 1
        if count is not None and count > 0:
            return Recurrence(interval_seconds=count * _unit_seconds(match.group(2)), explicit=True)

    if _REPEAT_RE.search(lowered):
        return Recurrence(interval_seconds=DEFAULT_RECURRING_INTERVAL_SECONDS, explicit=False)
    return None


# ─── Exits ──────────────────────────────────────────────────────────


def extract_exit_targets(text: str) -> ExitTargets:
    lowered = text.lower()
    values: Dict[str, Optional[float]] = {}
    spans: List[Span] = []

    for pattern, absolute_key, percent_key in (
        (_TAKE_PROFIT_RE, "take_profit", "take_profit_percent"),
        (_STOP_LOSS_RE, "stop_loss", "stop_loss_percent"),
    ):
        match = pattern.search(lowered)
        if not match:
            continue
        number = _to_float(match.group(1))
        if number is None:
            continue
        spans.append((match.start(), match.end()))
        values[percent_key if match.group(2) == "%" else absolute_key] = number

    return ExitTargets(spans=tuple(spans), **values)


# ─── Notifications ──────────────────────────────────────────────────


def extract_notification_target(text: str) -> Optional[NotificationTarget]:
    lowered = text.lower()
    email = _EMAIL_RE.search(lowered)
    if email:
        return NotificationTarget(channel="email", to=email.group(0), span=email.span())

    phone = _PHONE_RE.search(lowered)
    if phone:
        number = re.sub(r"[\s-]", "", phone.group(1))
        return NotificationTarget(channel="sms", to=number, span=phone.span(1))

    if _DISCORD_RE.search(lowered):
        return NotificationTarget(channel="discord", to=None)
    return None

"""Locale-ambiguous amount parsing.

Colombian (``1.234.567,89``) and US (``1,234,567.89``) conventions coexist in
the same exports and there is no per-cell locale signal, so ambiguity is
resolved by pattern specificity: strategies are tried in a fixed order and the
first one that structurally matches wins, even if a later one would report a
higher confidence.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from decimal import Decimal
from numbers import Real
from typing import Any, NamedTuple

from voucher_rescue.models import FAILED_METHOD, ParseResult

logger = logging.getLogger(__name__)

_NULL_TOKENS = frozenset({"", "0", "-", "n/a"})
_CURRENCY_RE = re.compile(r"(?i)[\$€£¥₹₽]|\bcop\b|\busd\b|\beur\b")
_WHITESPACE_RE = re.compile(r"[\s ]+")
_PARENS_RE = re.compile(r"^\((.*)\)$")


class AmountStrategy(NamedTuple):
    """One entry of the ordered chain: ``pattern`` gates ``extract``."""

    method: str
    pattern: re.Pattern[str]
    extract: Callable[[str], float | None]
    confidence: float


def _dot_thousands_comma_decimal(token: str) -> float:
    return float(token.replace(".", "").replace(",", "."))


def _drop_dots(token: str) -> float:
    return float(token.replace(".", ""))


def _drop_commas(token: str) -> float:
    return float(token.replace(",", ""))


def _comma_decimal(token: str) -> float:
    return float(token.replace(",", "."))


def _digits_only(token: str) -> float | None:
    digits = re.sub(r"\D", "", token)
    if not digits:
        return None
    value = float(digits)
    return value if value > 0 else None


def _digits_dot_minus(token: str) -> float | None:
    kept = re.sub(r"[^\d.\-]", "", token)
    try:
        value = abs(float(kept))
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value if value > 0 else None


AMOUNT_STRATEGIES: tuple[AmountStrategy, ...] = (
    AmountStrategy(
        "thousands_dot_decimal_comma",
        re.compile(r"\d{1,3}(?:\.\d{3})+,\d+"),
        _dot_thousands_comma_decimal,
        0.95,
    ),
    AmountStrategy("thousands_dot", re.compile(r"\d{1,3}(?:\.\d{3})+"), _drop_dots, 0.90),
    AmountStrategy(
        "thousands_comma_decimal_dot",
        re.compile(r"\d{1,3}(?:,\d{3})+\.\d+"),
        _drop_commas,
        0.85,
    ),
    AmountStrategy("thousands_comma", re.compile(r"\d{1,3}(?:,\d{3})+"), _drop_commas, 0.80),
    AmountStrategy("decimal_comma", re.compile(r"\d+,\d+"), _comma_decimal, 0.75),
    AmountStrategy("decimal_dot", re.compile(r"\d+\.\d+"), float, 0.70),
    AmountStrategy("digits", re.compile(r"\d+"), float, 0.65),
    AmountStrategy("strip_non_digits", re.compile(r".*\d.*"), _digits_only, 0.40),
    AmountStrategy("strip_to_number", re.compile(r".*\d.*"), _digits_dot_minus, 0.20),
)


def _clean_token(text: str) -> str:
    token = _CURRENCY_RE.sub("", text)
    token = _WHITESPACE_RE.sub("", token)
    token = _PARENS_RE.sub(r"\1", token)
    return token.strip("+-")


def _is_native_number(value: Any) -> bool:
    return isinstance(value, (Real, Decimal)) and not isinstance(value, bool)


class CurrencyParser:
    """Parse a raw cell into a non-negative amount with a confidence score."""

    def __init__(self, strategies: tuple[AmountStrategy, ...] = AMOUNT_STRATEGIES) -> None:
        self.strategies = strategies

    def parse(self, raw: Any) -> ParseResult[float]:
        if raw is None:
            return ParseResult(0.0, 1.0, "empty", raw, "")

        if _is_native_number(raw):
            number = float(raw)
            if math.isnan(number):
                return ParseResult(0.0, 1.0, "empty", raw, "")
            if math.isinf(number):
                return ParseResult(0.0, 0.0, FAILED_METHOD, raw, str(raw))
            return ParseResult(abs(number), 1.0, "native_number", raw, str(raw))

        text = str(raw).strip()
        if text.lower() in _NULL_TOKENS:
            return ParseResult(0.0, 1.0, "empty", raw, text)

        token = _clean_token(text)
        for strategy in self.strategies:
            if not strategy.pattern.fullmatch(token):
                continue
            value = strategy.extract(token)
            # Overlong digit runs overflow float() to inf.
            if value is None or not math.isfinite(value):
                continue
            logger.debug("amount %r parsed by %s -> %s", raw, strategy.method, value)
            return ParseResult(abs(value), strategy.confidence, strategy.method, raw, token)

        return ParseResult(0.0, 0.0, FAILED_METHOD, raw, token)

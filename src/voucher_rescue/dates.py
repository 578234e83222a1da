"""Date parsing for native cells, spreadsheet serials and free text."""

from __future__ import annotations

import logging
import re
import warnings
from collections.abc import Callable
from datetime import date, datetime, timedelta
from decimal import Decimal
from numbers import Real
from typing import Any, NamedTuple

import pandas as pd

from voucher_rescue.models import FAILED_METHOD, ParseResult

logger = logging.getLogger(__name__)

# Excel's day zero, accounting for the 1900 leap-year bug.
SPREADSHEET_EPOCH = date(1899, 12, 30)
MAX_SERIAL_DAYS = 73050

_TIME_SUFFIX = r"(?:[ T]\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:\s*[ap]\.?\s*m\.?)?)?"
_DAY_FIRST_RE = re.compile(rf"(\d{{1,2}})[/\-.](\d{{1,2}})[/\-.](\d{{4}}|\d{{2}}){_TIME_SUFFIX}", re.I)
_ISO_RE = re.compile(rf"(\d{{4}})[-/](\d{{1,2}})[-/](\d{{1,2}}){_TIME_SUFFIX}", re.I)
_SERIAL_TEXT_RE = re.compile(r"\d{5}(?:\.\d+)?")


class DateStrategy(NamedTuple):
    method: str
    extract: Callable[[Any], date | None]
    confidence: float


def _expand_year(year_text: str) -> int:
    year = int(year_text)
    if len(year_text) == 2:
        return 2000 + year if year < 50 else 1900 + year
    return year


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _as_text(raw: Any) -> str | None:
    if isinstance(raw, str):
        text = raw.strip()
        return text or None
    return None


class DateParser:
    """Parse a raw cell into a calendar date.

    Strategies that are prone to misreading swapped day/month values only
    accept results whose year lies in ``[min_year, max_year]``.
    """

    def __init__(self, min_year: int = 2020, max_year: int = 2030) -> None:
        if min_year > max_year:
            raise ValueError("min_year must be <= max_year")
        self.min_year = min_year
        self.max_year = max_year
        self.strategies: tuple[DateStrategy, ...] = (
            DateStrategy("native_date", self._native, 1.0),
            DateStrategy("spreadsheet_serial", self._serial, 0.9),
            DateStrategy("day_month_year", self._day_first, 0.85),
            DateStrategy("iso", self._iso, 0.8),
            DateStrategy("month_day_year", self._month_first, 0.75),
            DateStrategy("generic", self._generic, 0.6),
        )

    def in_window(self, value: date) -> bool:
        return self.min_year <= value.year <= self.max_year

    def parse(self, raw: Any) -> ParseResult[date]:
        for strategy in self.strategies:
            value = strategy.extract(raw)
            if value is None:
                continue
            logger.debug("date %r parsed by %s -> %s", raw, strategy.method, value)
            return ParseResult(value, strategy.confidence, strategy.method, raw, str(raw).strip())
        return ParseResult(None, 0.0, FAILED_METHOD, raw, "" if raw is None else str(raw).strip())

    # ── Strategies ───────────────────────────────────────────────

    def _native(self, raw: Any) -> date | None:
        if raw is pd.NaT:
            return None
        if isinstance(raw, pd.Timestamp):
            return raw.to_pydatetime().date()
        if isinstance(raw, datetime):
            return raw.date()
        if isinstance(raw, date):
            return raw
        return None

    def _serial(self, raw: Any) -> date | None:
        if isinstance(raw, bool):
            return None
        if isinstance(raw, (Real, Decimal)):
            days = float(raw)
        else:
            text = _as_text(raw)
            if text is None or not _SERIAL_TEXT_RE.fullmatch(text):
                return None
            days = float(text)
        if not 1 < days < MAX_SERIAL_DAYS:
            return None
        value = SPREADSHEET_EPOCH + timedelta(days=int(days))
        return value if self.in_window(value) else None

    def _day_first(self, raw: Any) -> date | None:
        text = _as_text(raw)
        match = _DAY_FIRST_RE.fullmatch(text) if text else None
        if match is None:
            return None
        day, month, year = match.groups()
        return _safe_date(_expand_year(year), int(month), int(day))

    def _iso(self, raw: Any) -> date | None:
        text = _as_text(raw)
        match = _ISO_RE.fullmatch(text) if text else None
        if match is None:
            return None
        year, month, day = match.groups()
        return _safe_date(int(year), int(month), int(day))

    def _month_first(self, raw: Any) -> date | None:
        text = _as_text(raw)
        match = _DAY_FIRST_RE.fullmatch(text) if text else None
        if match is None:
            return None
        month, day, year = match.groups()
        value = _safe_date(_expand_year(year), int(month), int(day))
        return value if value is not None and self.in_window(value) else None

    def _generic(self, raw: Any) -> date | None:
        text = _as_text(raw)
        if text is None or not re.search(r"\d", text):
            return None
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                parsed = pd.to_datetime(text, errors="coerce", dayfirst=True)
        except (ValueError, TypeError, OverflowError):
            return None
        if pd.isna(parsed):
            return None
        value = parsed.to_pydatetime().date()
        return value if self.in_window(value) else None

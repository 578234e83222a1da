"""Shared helpers — hashing, timestamps, text normalisation, logging."""

from __future__ import annotations

import hashlib
import logging
import math
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

_SPACES_RE = re.compile(r"\s+")


def sha256_bytes(data: bytes) -> str:
    """Return the hex SHA-256 digest of *data*."""
    return hashlib.sha256(data).hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def normalize_text(value: object) -> str:
    """Lowercase, strip diacritics and collapse whitespace."""
    if value is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _SPACES_RE.sub(" ", stripped.lower()).strip()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def is_blank_row(row: Any) -> bool:
    return all(is_blank(cell) for cell in row)


def setup_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a rich console handler to the package logger once.

    Repeated calls only adjust the level so handlers are never duplicated.
    """
    logger = logging.getLogger("voucher_rescue")
    level = logging.DEBUG if verbose else logging.WARNING
    if not logger.handlers:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger

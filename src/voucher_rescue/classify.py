"""Document category classification from filename and content."""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Sequence
from pathlib import PurePath
from typing import Any

from voucher_rescue.models import DocumentCategory
from voucher_rescue.utils import normalize_text

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = next(iter(DocumentCategory))
CONTENT_SAMPLE_ROWS = 20

_CODES = "|".join(category.value for category in DocumentCategory)
_PREFIX_RE = re.compile(rf"^({_CODES})(?![A-Z])")
_CONTENT_RE = re.compile(rf"\b({_CODES})\s*-\s*\d+")
_LOOSE_CODE_RE = re.compile(rf"(?<![A-Z])({_CODES})(?![A-Z])")

# Full names are trusted as much as a code prefix.
_NAME_KEYWORDS: tuple[tuple[str, DocumentCategory], ...] = (
    ("factura de compra", DocumentCategory.FC),
    ("factura compra", DocumentCategory.FC),
    ("nota debito", DocumentCategory.ND),
    ("documento soporte", DocumentCategory.DS),
    ("recibo de pago", DocumentCategory.RP),
    ("recibo pago", DocumentCategory.RP),
)

_LOOSE_KEYWORDS: tuple[tuple[str, DocumentCategory], ...] = (
    ("compra", DocumentCategory.FC),
    ("debito", DocumentCategory.ND),
    ("soporte", DocumentCategory.DS),
    ("recibo", DocumentCategory.RP),
    ("pago", DocumentCategory.RP),
)


def _stem(filename: str) -> str:
    return PurePath(filename.replace("\\", "/")).stem


def _spaced(text: str) -> str:
    return normalize_text(re.sub(r"[_\-.]+", " ", text))


class DocumentClassifier:
    """Assign one :class:`DocumentCategory` to a file. Never raises."""

    def __init__(self, default: DocumentCategory = DEFAULT_CATEGORY) -> None:
        self.default = default

    def classify(
        self, filename: str, sample: Sequence[Sequence[Any]] | None = None
    ) -> DocumentCategory:
        category, source = self.explain(filename, sample)
        logger.debug("classified %s as %s via %s", filename, category.value, source)
        return category

    def explain(
        self, filename: str, sample: Sequence[Sequence[Any]] | None = None
    ) -> tuple[DocumentCategory, str]:
        """Return the category together with the rule that decided it."""
        stem = _stem(filename or "")

        prefix = _PREFIX_RE.match(stem.upper())
        if prefix:
            return DocumentCategory(prefix.group(1)), "filename_prefix"

        spaced = _spaced(stem)
        for keyword, category in _NAME_KEYWORDS:
            if keyword in spaced:
                return category, "filename_keyword"

        voted = self._vote(sample)
        if voted is not None:
            return voted, "content_vote"

        loose = _LOOSE_CODE_RE.search(stem.upper())
        if loose:
            return DocumentCategory(loose.group(1)), "filename_loose"
        for keyword, category in _LOOSE_KEYWORDS:
            if keyword in spaced:
                return category, "filename_loose"

        return self.default, "default"

    def _vote(self, sample: Sequence[Sequence[Any]] | None) -> DocumentCategory | None:
        if not sample:
            return None
        votes: Counter[str] = Counter()
        for row in list(sample)[:CONTENT_SAMPLE_ROWS]:
            for cell in row:
                if cell is None:
                    continue
                votes.update(_CONTENT_RE.findall(str(cell).upper()))
        if not votes:
            return None
        # Ties go to the category declared first.
        best = max(DocumentCategory, key=lambda category: votes.get(category.value, 0))
        return best

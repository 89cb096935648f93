"""Descriptor tokenization.

A descriptor such as ``"COOP KONSUM /16-03-17"`` becomes the ordered tokens
``["COOP", "KONSUM", "YY-MM-DD"]``. Calendar dates are degraded to fixed
placeholders first so that the same merchant on different days yields the
same tokens.
"""

from __future__ import annotations

import re

from .models import Token

# 8-digit dates, years 1900-2199 with a valid month and day.
_FULL_DATE_RE = re.compile(r"(?:19|20|21)[0-9]{2}(?:0[1-9]|1[0-2])(?:0[1-9]|[12][0-9]|3[01])")
_SHORT_DATE_RE = re.compile(r"/[0-9]{2}-[0-9]{2}-[0-9]{2}")
_DELIMITERS_RE = re.compile(r"[,/ ]")

FULL_DATE_PLACEHOLDER = "YYYYMMDD"
SHORT_DATE_PLACEHOLDER = "/YY-MM-DD"


def tokenize(descriptor: str | None) -> list[Token]:
    """Split ``descriptor`` into normalized, upper-case tokens.

    ``None`` and blank strings yield ``[]``. Otherwise dates are replaced by
    their placeholders, the text is upper-cased (full Unicode case mapping,
    so ``"számláról"`` becomes ``"SZÁMLÁRÓL"``) and split at every single
    comma, slash and space. Empty pieces are dropped; order is kept.
    """

    if descriptor is None or not descriptor.strip():
        return []

    s = _FULL_DATE_RE.sub(FULL_DATE_PLACEHOLDER, descriptor)
    s = _SHORT_DATE_RE.sub(SHORT_DATE_PLACEHOLDER, s)
    return [tok for tok in _DELIMITERS_RE.split(s.upper()) if tok]


__all__ = ["FULL_DATE_PLACEHOLDER", "SHORT_DATE_PLACEHOLDER", "tokenize"]

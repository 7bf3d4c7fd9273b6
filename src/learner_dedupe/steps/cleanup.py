from __future__ import annotations

import re
import unicodedata

_NON_ALPHA = re.compile(r"[^a-z\s]")
_WHITESPACE = re.compile(r"\s+")
_TOKEN_SPLIT = re.compile(r"[\s\-]+")


def normalize(raw: str | None) -> str:
    """Canonical comparison form: lowercase ``a-z`` words separated by single spaces."""
    if not raw:
        return ""
    folded = unicodedata.normalize("NFKD", str(raw).casefold())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    letters = _NON_ALPHA.sub("", folded)
    return _WHITESPACE.sub(" ", letters).strip()


def tokenize(raw: str | None, min_length: int = 3) -> frozenset[str]:
    """Name tokens split on whitespace or hyphens, dropping anything shorter than ``min_length``."""
    if not raw:
        return frozenset()
    tokens = (normalize(piece) for piece in _TOKEN_SPLIT.split(str(raw).casefold()))
    return frozenset(token for token in tokens if len(token) >= min_length)

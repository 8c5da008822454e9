"""
Text cleanup utils
"""

import re
import unicodedata
from urllib.parse import unquote

__all__ = ("normalize_title", "title_tokens")

_STOP_WORDS = frozenset({"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "is", "are"})


def normalize_title(text: str) -> str:
    """
    Lowercases, strips accents and punctuation, collapses whitespace.
    """
    text = unicodedata.normalize("NFKD", unquote(text))
    text = "".join([c for c in text if not unicodedata.combining(c)])
    text = text.lower().replace("_", " ")
    text = re.sub(r"[!\"#$%&'()*+,\-./;<=>?@\[\\\]^`{|}~]", " ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def title_tokens(text: str) -> frozenset[str]:
    """Significant words of a title."""
    return frozenset(w for w in normalize_title(text).split() if w not in _STOP_WORDS and len(w) > 1)

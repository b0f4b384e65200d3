"""
Deterministic normalization only. No LLM, no guessing.
The same normalize() builds snapshot lookup keys and query keys, so matching
is symmetric.
"""
import re
import unicodedata
import logging
from typing import Iterable, List

logger = logging.getLogger(__name__)

_WS = re.compile(r"\s+")
# Footnote markers used on labels ("Caffeine*", "Whey†")
_FOOTNOTE_MARKERS = re.compile(r"[*†‡]+")
# "Caffeine 2%", "Caffeine (2%)", "Caffeine (0.5 %)"
_TRAILING_PERCENT = re.compile(r"\s*\(?\s*\d+(?:[.,]\d+)?\s*%\s*\)?\s*$")


def _is_separator(ch: str) -> bool:
    if ch == "-":
        return False
    cat = unicodedata.category(ch)
    return cat[0] in ("P", "S")


def normalize(text) -> str:
    """
    Normalize text for lookup.
    - NFKD decompose, case-fold, decompose again (case-folding can yield new
      composed or compatibility forms), drop combining marks (diacritics).
    - Punctuation and symbols become spaces; ASCII hyphens inside words are kept
      ("l-carnitine", "omega-3").
    - Collapse whitespace and trim.
    Total: non-string input yields "".
    """
    if not text or not isinstance(text, str):
        return ""
    t = unicodedata.normalize("NFKD", unicodedata.normalize("NFKD", text).casefold())
    t = "".join(
        " " if _is_separator(ch) else ch
        for ch in t
        if not unicodedata.combining(ch)
    )
    tokens = [tok.strip("-") for tok in _WS.split(t)]
    return " ".join(tok for tok in tokens if tok)


def clean_label_ingredient(text) -> str:
    """
    Boundary cleanup for a raw ingredient string as printed on a label.
    Drops footnote markers and a trailing percentage; keeps display casing.
    """
    if not text or not isinstance(text, str):
        return ""
    t = _FOOTNOTE_MARKERS.sub("", text)
    t = _TRAILING_PERCENT.sub("", t)
    t = _WS.sub(" ", t).strip()
    return t


def tokenize(normalized: str, min_length: int, stopwords: Iterable[str] = ()) -> List[str]:
    """
    Whitespace tokens of an already-normalized string that are long enough to
    discriminate and not generic qualifiers.
    """
    stop = stopwords if isinstance(stopwords, (set, frozenset)) else set(stopwords)
    return [
        tok for tok in normalized.split()
        if len(tok) >= min_length and tok not in stop
    ]


def split_ingredient_text(raw_text: str) -> List[str]:
    """
    Split a raw ingredient statement into candidate ingredient strings
    (comma, semicolon, newline). Does not resolve or validate.
    """
    if not raw_text:
        return []
    parts = re.split(r"[\n,;]", raw_text)
    return [p.strip() for p in parts if p.strip()]


# Generic qualifiers that say nothing about which ingredient is meant
DEFAULT_STOPWORDS = frozenset({
    "extract",
    "powder",
    "flavor",
    "flavour",
    "natural",
    "artificial",
    "concentrate",
    "isolate",
    "blend",
    "complex",
    "root",
    "seed",
    "leaf",
    "fruit",
    "berry",
})


class TokenFilter:
    """
    Token filter shared by reference terms and queries in the fuzzy stage.
    Tokens shorter than min_length ("oil", "gum") and stopwords are discarded.
    """

    def __init__(self, min_length: int = 4, stopwords: Iterable[str] = DEFAULT_STOPWORDS):
        self.min_length = min_length
        self.stopwords = frozenset(normalize(w) for w in stopwords if normalize(w))

    def tokens(self, normalized: str) -> List[str]:
        return tokenize(normalized, self.min_length, self.stopwords)

    def __repr__(self) -> str:
        return f"TokenFilter(min_length={self.min_length}, stopwords={len(self.stopwords)})"

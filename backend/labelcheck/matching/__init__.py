from .matcher import (
    DEFAULT_FALSE_POSITIVES,
    MatchConfidence,
    MatchResult,
    MatchType,
    Matcher,
    match,
)

__all__ = [
    "DEFAULT_FALSE_POSITIVES",
    "MatchConfidence",
    "MatchResult",
    "MatchType",
    "Matcher",
    "match",
]

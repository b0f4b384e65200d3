"""
Match one label ingredient against one dataset snapshot.
Stages, first hit wins: exact canonical name -> synonym -> fuzzy containment.

Fuzzy containment runs in one direction only: the query must contain one
discriminating token of a reference term as a whole word. Tokens of 3
characters or fewer and generic qualifiers ("extract", "powder", "flavor") are
discarded on both sides, so "cordyceps extract" never matches "shellfish extract".
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

from labelcheck.normalization.normalizer import normalize
from labelcheck.reference.reference_schema import DatasetKind, DatasetSnapshot, ReferenceEntry

logger = logging.getLogger(__name__)


class MatchType(str, Enum):
    EXACT = "EXACT"
    SYNONYM = "SYNONYM"
    FUZZY = "FUZZY"
    NONE = "NONE"


class MatchConfidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


_CONFIDENCE = {
    MatchType.EXACT: MatchConfidence.HIGH,
    MatchType.SYNONYM: MatchConfidence.HIGH,
    MatchType.FUZZY: MatchConfidence.MEDIUM,
}

# Label ingredients known to fuzzy-match an allergen derivative without
# containing the allergen (bee products vs. "jelly")
DEFAULT_FALSE_POSITIVES: dict[DatasetKind, frozenset[str]] = {
    DatasetKind.ALLERGEN_DERIVATIVE: frozenset({"royal jelly", "royal gel", "bee jelly"}),
}


@dataclass(frozen=True)
class MatchResult:
    query_text: str
    dataset: DatasetKind
    matched: bool = False
    matched_entry: Optional[ReferenceEntry] = None
    match_type: MatchType = MatchType.NONE
    confidence: Optional[MatchConfidence] = None
    # canonical name or synonym that produced the hit
    matched_term: Optional[str] = None

    def __post_init__(self):
        if not self.matched and (self.matched_entry is not None or self.match_type != MatchType.NONE):
            raise ValueError("Unmatched MatchResult must have no entry and match_type NONE")
        if self.matched and (self.matched_entry is None or self.match_type == MatchType.NONE):
            raise ValueError("Matched MatchResult requires an entry and a match type")

    @classmethod
    def hit(cls, query: str, snapshot: DatasetSnapshot, entry: ReferenceEntry,
            match_type: MatchType, term: str) -> "MatchResult":
        return cls(
            query_text=query,
            dataset=snapshot.kind,
            matched=True,
            matched_entry=entry,
            match_type=match_type,
            confidence=_CONFIDENCE[match_type],
            matched_term=term,
        )

    @classmethod
    def miss(cls, query: str, dataset: DatasetKind) -> "MatchResult":
        return cls(query_text=query, dataset=dataset)

    def to_dict(self) -> dict:
        return {
            "query_text": self.query_text,
            "dataset": self.dataset.value,
            "matched": self.matched,
            "matched_entry": self.matched_entry.to_dict() if self.matched_entry else None,
            "match_type": self.match_type.value,
            "confidence": self.confidence.value if self.confidence else None,
            "matched_term": self.matched_term,
        }


class Matcher:
    """
    Stateless apart from the false-positive lists; safe to share across threads.
    The fuzzy token filter comes from the snapshot, so queries are always
    filtered exactly like the reference terms they are compared with.
    """

    def __init__(self, false_positives: Optional[Mapping[DatasetKind, Iterable[str]]] = None):
        source = DEFAULT_FALSE_POSITIVES if false_positives is None else false_positives
        self._false_positives = {
            kind: frozenset(normalize(q) for q in queries)
            for kind, queries in source.items()
        }

    def match(self, query: str, snapshot: DatasetSnapshot) -> MatchResult:
        key = normalize(query)
        if not key:
            return MatchResult.miss(query, snapshot.kind)

        if key in self._false_positives.get(snapshot.kind, ()):
            logger.debug("MATCHER known_false_positive kind=%s query=%s", snapshot.kind.value, key)
            return MatchResult.miss(query, snapshot.kind)

        entry = snapshot.by_name.get(key)
        if entry is not None:
            return MatchResult.hit(query, snapshot, entry, MatchType.EXACT, entry.canonical_name)

        entry = snapshot.by_synonym.get(key)
        if entry is not None:
            term = next((s for s in entry.synonyms if normalize(s) == key), key)
            return MatchResult.hit(query, snapshot, entry, MatchType.SYNONYM, term)

        return self._fuzzy(query, key, snapshot)

    def _fuzzy(self, query: str, key: str, snapshot: DatasetSnapshot) -> MatchResult:
        if not snapshot.token_filter.tokens(key):
            return MatchResult.miss(query, snapshot.kind)
        for entry, terms in snapshot.fuzzy_terms:
            for term in terms:
                if term.contained_in(key):
                    logger.debug(
                        "MATCHER fuzzy kind=%s query=%s entry=%s term=%s",
                        snapshot.kind.value, key, entry.canonical_name, term.term,
                    )
                    return MatchResult.hit(query, snapshot, entry, MatchType.FUZZY, term.term)
        return MatchResult.miss(query, snapshot.kind)


_default_matcher = Matcher()


def match(query: str, snapshot: DatasetSnapshot) -> MatchResult:
    """Match with the default false-positive lists."""
    return _default_matcher.match(query, snapshot)

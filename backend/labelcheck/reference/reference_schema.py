"""
Strict contract for reference-dataset rows and the immutable snapshots the
cache serves. Snapshots are never mutated after build().
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from labelcheck.normalization.normalizer import TokenFilter, normalize

logger = logging.getLogger(__name__)


class DatasetKind(str, Enum):
    GRAS = "GRAS"
    NDI = "NDI"
    ODI = "ODI"
    ALLERGEN_DERIVATIVE = "ALLERGEN_DERIVATIVE"


@dataclass(frozen=True)
class ReferenceEntry:
    canonical_name: str
    dataset_kind: DatasetKind
    synonyms: tuple[str, ...] = ()
    source_citation: str = ""
    active: bool = True
    entry_id: Optional[str] = None
    # GRAS functional category ("preservative") or allergen group ("milk")
    category: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.canonical_name, str) or not self.canonical_name.strip():
            raise ValueError("ReferenceEntry.canonical_name must be a non-empty string")
        object.__setattr__(self, "canonical_name", self.canonical_name.strip())
        synonyms = tuple(
            s.strip() for s in (self.synonyms or ())
            if isinstance(s, str) and s.strip()
        )
        object.__setattr__(self, "synonyms", synonyms)
        if not isinstance(self.dataset_kind, DatasetKind):
            object.__setattr__(self, "dataset_kind", DatasetKind(self.dataset_kind))

    def names(self) -> tuple[str, ...]:
        """Canonical name followed by synonyms."""
        return (self.canonical_name,) + self.synonyms

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "canonical_name": self.canonical_name,
            "synonyms": list(self.synonyms),
            "source_citation": self.source_citation,
            "dataset_kind": self.dataset_kind.value,
            "active": self.active,
            "category": self.category,
        }


@dataclass(frozen=True)
class FuzzyTerm:
    """One canonical name or synonym, reduced to its discriminating tokens."""
    term: str
    tokens: tuple[str, ...]
    patterns: tuple[re.Pattern, ...]

    @classmethod
    def build(cls, term: str, token_filter: TokenFilter) -> Optional["FuzzyTerm"]:
        tokens = tuple(dict.fromkeys(token_filter.tokens(normalize(term))))
        if not tokens:
            return None
        patterns = tuple(re.compile(r"\b" + re.escape(tok) + r"\b") for tok in tokens)
        return cls(term=term, tokens=tokens, patterns=patterns)

    def contained_in(self, normalized_query: str) -> bool:
        """True when the query contains one of this term's tokens as a whole word."""
        return any(p.search(normalized_query) for p in self.patterns)


@dataclass(frozen=True)
class DatasetSnapshot:
    """
    Immutable, versioned copy of the active entries of one dataset, with
    lookup maps keyed by normalized canonical name and by normalized synonym.
    """
    kind: DatasetKind
    version: int
    loaded_at: float
    entries: tuple[ReferenceEntry, ...]
    by_name: Mapping[str, ReferenceEntry]
    by_synonym: Mapping[str, ReferenceEntry]
    fuzzy_terms: tuple[tuple[ReferenceEntry, tuple[FuzzyTerm, ...]], ...]
    token_filter: TokenFilter = field(default_factory=TokenFilter, compare=False)

    @classmethod
    def build(
        cls,
        kind: DatasetKind,
        entries: Iterable[ReferenceEntry],
        version: int = 1,
        loaded_at: float = 0.0,
        token_filter: Optional[TokenFilter] = None,
    ) -> "DatasetSnapshot":
        """
        Keep active entries of this kind in dataset order. The first entry wins
        on a duplicate normalized canonical name or synonym, which keeps lookups
        deterministic when the source data overlaps.
        """
        token_filter = token_filter or TokenFilter()
        kept: list[ReferenceEntry] = []
        by_name: dict[str, ReferenceEntry] = {}
        by_synonym: dict[str, ReferenceEntry] = {}
        duplicates = 0
        for entry in entries:
            if not entry.active or entry.dataset_kind != kind:
                continue
            key = normalize(entry.canonical_name)
            if not key:
                continue
            if key in by_name:
                duplicates += 1
                logger.debug(
                    "SNAPSHOT duplicate canonical kind=%s name=%s kept=%s",
                    kind.value, entry.canonical_name, by_name[key].canonical_name,
                )
                continue
            by_name[key] = entry
            kept.append(entry)
            for syn in entry.synonyms:
                syn_key = normalize(syn)
                if syn_key and syn_key not in by_synonym:
                    by_synonym[syn_key] = entry

        fuzzy_terms = []
        for entry in kept:
            terms = tuple(
                t for t in (FuzzyTerm.build(name, token_filter) for name in entry.names())
                if t is not None
            )
            if terms:
                fuzzy_terms.append((entry, terms))

        if duplicates:
            logger.info("SNAPSHOT kind=%s skipped %d duplicate canonical names", kind.value, duplicates)
        return cls(
            kind=kind,
            version=version,
            loaded_at=loaded_at,
            entries=tuple(kept),
            by_name=MappingProxyType(by_name),
            by_synonym=MappingProxyType(by_synonym),
            fuzzy_terms=tuple(fuzzy_terms),
            token_filter=token_filter,
        )

    def __len__(self) -> int:
        return len(self.entries)

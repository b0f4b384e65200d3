"""
Regulatory reference datasets: typed rows, store adapters, snapshot cache.
"""
from .reference_schema import DatasetKind, ReferenceEntry, DatasetSnapshot, FuzzyTerm
from .reference_store import (
    ReferencePage,
    ReferenceStore,
    SupabaseReferenceStore,
    JsonReferenceStore,
    InMemoryReferenceStore,
    rows_to_entries,
)
from .reference_cache import ReferenceCache

__all__ = [
    "DatasetKind",
    "ReferenceEntry",
    "DatasetSnapshot",
    "FuzzyTerm",
    "ReferencePage",
    "ReferenceStore",
    "SupabaseReferenceStore",
    "JsonReferenceStore",
    "InMemoryReferenceStore",
    "rows_to_entries",
    "ReferenceCache",
]

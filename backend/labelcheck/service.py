"""
Builds the reference store, cache and engine from configuration.
Every call returns new instances; the application owns their lifetime.
"""
import logging
from typing import Optional

from labelcheck import config
from labelcheck.errors import InvalidInputError
from labelcheck.evaluation.compliance_engine import ComplianceEngine
from labelcheck.normalization.normalizer import DEFAULT_STOPWORDS, TokenFilter
from labelcheck.reference.reference_cache import ReferenceCache
from labelcheck.reference.reference_store import (
    JsonReferenceStore,
    ReferenceStore,
    SupabaseReferenceStore,
)

logger = logging.getLogger(__name__)


def build_token_filter() -> TokenFilter:
    stopwords = set(DEFAULT_STOPWORDS) | set(config.get_fuzzy_extra_stopwords())
    return TokenFilter(min_length=config.get_fuzzy_min_token_length(), stopwords=stopwords)


def build_reference_store() -> ReferenceStore:
    backend = config.get_reference_store_backend()
    if backend == "supabase":
        return SupabaseReferenceStore.from_env()
    if backend == "json":
        path = config.get_reference_data_path()
        logger.info("SERVICE reference_store=json path=%s", path)
        return JsonReferenceStore(path)
    raise InvalidInputError(
        f"Unknown REFERENCE_STORE {backend!r}", metadata={"allowed": ["supabase", "json"]},
    )


def build_cache(store: Optional[ReferenceStore] = None) -> ReferenceCache:
    return ReferenceCache(
        store if store is not None else build_reference_store(),
        ttl_seconds=config.get_reference_cache_ttl_seconds(),
        page_size=config.get_reference_page_size(),
        token_filter=build_token_filter(),
        failure_backoff_seconds=config.get_refresh_failure_backoff_seconds(),
    )


def build_engine(store: Optional[ReferenceStore] = None) -> ComplianceEngine:
    return ComplianceEngine(
        build_cache(store),
        add_monitoring_recommendation=config.get_monitoring_recommendation_enabled(),
    )

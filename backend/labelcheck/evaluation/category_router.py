"""
Which ingredient checks apply to a product category, and dataset fallback
within a check (NDI notifications first, then the pre-1994 ODI list).
"""
import logging
from typing import Iterable, Mapping, Optional

from labelcheck.matching.matcher import Matcher, MatchResult
from labelcheck.models.category import ComplianceCheck, ProductCategory
from labelcheck.reference.reference_cache import ReferenceCache
from labelcheck.reference.reference_schema import DatasetKind, DatasetSnapshot

logger = logging.getLogger(__name__)

# Food and beverages: GRAS (21 CFR 170.3). Supplements: DSHEA (NDI/ODI), not GRAS.
# Allergens apply to every category.
_CATEGORY_CHECKS: dict[ProductCategory, tuple[ComplianceCheck, ...]] = {
    ProductCategory.CONVENTIONAL_FOOD: (ComplianceCheck.GRAS, ComplianceCheck.ALLERGEN),
    ProductCategory.NON_ALCOHOLIC_BEVERAGE: (ComplianceCheck.GRAS, ComplianceCheck.ALLERGEN),
    ProductCategory.ALCOHOLIC_BEVERAGE: (ComplianceCheck.GRAS, ComplianceCheck.ALLERGEN),
    ProductCategory.DIETARY_SUPPLEMENT: (ComplianceCheck.DIETARY_INGREDIENT, ComplianceCheck.ALLERGEN),
}


def applicable_checks(category: ProductCategory) -> tuple[ComplianceCheck, ...]:
    return _CATEGORY_CHECKS[ProductCategory.parse(category)]


def applicable_datasets(category: ProductCategory) -> frozenset[DatasetKind]:
    return frozenset(kind for check in applicable_checks(category) for kind in check.datasets)


class CategoryRouter:
    """Runs the matcher for one ingredient across the datasets of a check."""

    def __init__(self, cache: ReferenceCache, matcher: Optional[Matcher] = None):
        self._cache = cache
        self._matcher = matcher or Matcher()

    def checks_for(self, category: ProductCategory) -> tuple[ComplianceCheck, ...]:
        checks = applicable_checks(category)
        logger.debug(
            "CATEGORY_ROUTER category=%s checks=%s",
            ProductCategory.parse(category).value, [c.value for c in checks],
        )
        return checks

    def snapshots_for(self, checks: Iterable[ComplianceCheck]) -> dict[DatasetKind, DatasetSnapshot]:
        """
        Fetch every dataset the checks need, once. Raises DataUnavailableError
        before any matching starts if one has never loaded.
        """
        snapshots: dict[DatasetKind, DatasetSnapshot] = {}
        for check in checks:
            for kind in check.datasets:
                if kind not in snapshots:
                    snapshots[kind] = self._cache.get(kind)
        return snapshots

    def match(
        self,
        ingredient: str,
        check: ComplianceCheck,
        snapshots: Optional[Mapping[DatasetKind, DatasetSnapshot]] = None,
    ) -> MatchResult:
        """First dataset that matches wins; otherwise the miss from the last dataset tried."""
        result = None
        for kind in check.datasets:
            snapshot = snapshots[kind] if snapshots is not None else self._cache.get(kind)
            result = self._matcher.match(ingredient, snapshot)
            if result.matched:
                return result
        return result

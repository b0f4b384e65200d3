"""
Deterministic compliance engine. Single pipeline per label:
parse ingredients -> route checks by category -> match against cached
reference snapshots -> findings -> prioritized recommendations -> consistent report.

Absence from a reference dataset is never a violation: GRAS and NDI misses are
REQUIRES_VERIFICATION (self-affirmed GRAS and pre-1994 ingredients are not
publicly enumerable). Only an undeclared major allergen is an ingredient-level
violation.
"""
import logging
from typing import Any, Iterable, Mapping, Optional, Union

from labelcheck import config
from labelcheck.errors import InvalidInputError
from labelcheck.matching.matcher import DEFAULT_FALSE_POSITIVES, Matcher, MatchResult, MatchType
from labelcheck.models.category import ComplianceCheck, ProductCategory
from labelcheck.models.report import (
    ComplianceFinding,
    ComplianceReport,
    DatasetReport,
    FindingStatus,
    OverallStatus,
    Recommendation,
    ViolationKind,
)
from labelcheck.normalization.normalizer import clean_label_ingredient, normalize, split_ingredient_text
from labelcheck.reference.reference_cache import ReferenceCache
from labelcheck.reference.reference_schema import DatasetKind, DatasetSnapshot
from labelcheck.reference.reference_store import DEFAULT_ALLERGEN_CITATION
from .category_router import CategoryRouter
from .consistency import finalize
from .priority import classify, monitoring_recommendation

logger = logging.getLogger(__name__)

GRAS_NOT_FOUND_RATIONALE = (
    "Not found in the FDA GRAS database. The ingredient may be the subject of a self-affirmed "
    "GRAS determination under 21 CFR 170.30, which is legal without FDA notification; absence "
    "from the database is not proof of non-compliance."
)
NDI_NOT_FOUND_RATIONALE = (
    "Not found in the NDI notification or old dietary ingredient lists. Under DSHEA Section 413 "
    "a new dietary ingredient requires an NDI notification at least 75 days before marketing "
    "unless it was marketed in the US before October 15, 1994."
)


def parse_ingredient_list(ingredients: Union[str, Iterable[str], None]) -> list[str]:
    """
    Accept a list of strings or one label string ("Water, Sugar; Salt").
    Returns cleaned display strings, blanks dropped, de-duplicated by
    normalized key (first spelling kept).
    """
    if ingredients is None:
        return []
    if isinstance(ingredients, str):
        raw_items = split_ingredient_text(ingredients)
    else:
        try:
            raw_items = list(ingredients)
        except TypeError:
            raise InvalidInputError("Ingredients must be a string or a list of strings")
    out: list[str] = []
    seen: set[str] = set()
    for item in raw_items:
        if item is None:
            continue
        if not isinstance(item, str):
            raise InvalidInputError(
                f"Ingredient entries must be strings, got {type(item).__name__}",
                metadata={"value": repr(item)[:100]},
            )
        cleaned = clean_label_ingredient(item)
        key = normalize(cleaned)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(cleaned)
    return out


def parse_label_finding(data: Union[ComplianceFinding, Mapping[str, Any]]) -> ComplianceFinding:
    """
    Label-level finding from the extraction step (ingredient order, claims,
    panel type). VIOLATION findings must name a violation_kind.
    """
    if isinstance(data, ComplianceFinding):
        return data
    if not isinstance(data, Mapping):
        raise InvalidInputError("Label finding must be an object")
    try:
        status = FindingStatus(str(data.get("status", "")).upper())
        kind = data.get("violation_kind")
        return ComplianceFinding(
            ingredient=str(data.get("ingredient") or data.get("element") or ""),
            status=status,
            rationale=str(data.get("rationale") or ""),
            citation=data.get("citation"),
            violation_kind=ViolationKind(str(kind).upper()) if kind else None,
            voluntary=bool(data.get("voluntary", False)),
        )
    except ValueError as e:
        raise InvalidInputError(f"Invalid label finding: {e}", metadata={"finding": dict(data)})


def _matched_finding(ingredient: str, check: ComplianceCheck, result: MatchResult,
                     allergen_declaration_present: bool) -> ComplianceFinding:
    entry = result.matched_entry
    common = dict(
        ingredient=ingredient,
        check=check,
        match_type=result.match_type,
        matched_dataset=result.dataset,
        matched_name=entry.canonical_name,
    )
    if result.match_type == MatchType.FUZZY:
        basis = f"Fuzzy match: contains \"{result.matched_term}\" ({entry.canonical_name})"
    else:
        basis = f"Matched {entry.canonical_name}"

    if check == ComplianceCheck.ALLERGEN:
        citation = entry.source_citation or DEFAULT_ALLERGEN_CITATION
        if not allergen_declaration_present:
            return ComplianceFinding(
                status=FindingStatus.VIOLATION,
                rationale=(
                    f"{basis}. Contains major food allergen {entry.canonical_name} "
                    "with no allergen declaration on the label."
                ),
                citation=citation,
                violation_kind=ViolationKind.ALLERGEN_NON_DECLARATION,
                **common,
            )
        return ComplianceFinding(
            status=FindingStatus.COMPLIANT,
            rationale=f"{basis}. Major food allergen {entry.canonical_name} is declared.",
            citation=citation,
            **common,
        )

    citation = entry.source_citation or None
    if result.dataset == DatasetKind.NDI:
        rationale = f"{basis}. NDI notification on file"
    elif result.dataset == DatasetKind.ODI:
        rationale = f"{basis}. Marketed before October 15, 1994 (grandfathered under DSHEA)"
    else:
        rationale = f"{basis} in the FDA GRAS database"
    if citation:
        rationale += f". Source: {citation}"
    return ComplianceFinding(
        status=FindingStatus.COMPLIANT,
        rationale=rationale + ".",
        citation=citation,
        **common,
    )


def _unmatched_finding(ingredient: str, check: ComplianceCheck, result: MatchResult) -> ComplianceFinding:
    if check == ComplianceCheck.GRAS:
        return ComplianceFinding(
            ingredient=ingredient,
            status=FindingStatus.REQUIRES_VERIFICATION,
            rationale=GRAS_NOT_FOUND_RATIONALE,
            check=check,
            match_type=MatchType.NONE,
        )
    if check == ComplianceCheck.DIETARY_INGREDIENT:
        return ComplianceFinding(
            ingredient=ingredient,
            status=FindingStatus.REQUIRES_VERIFICATION,
            rationale=NDI_NOT_FOUND_RATIONALE,
            check=check,
            match_type=MatchType.NONE,
        )
    return ComplianceFinding(
        ingredient=ingredient,
        status=FindingStatus.COMPLIANT,
        rationale="Not a major food allergen; allergen declaration not applicable.",
        check=check,
        match_type=MatchType.NONE,
    )


class ComplianceEngine:
    """
    Pipeline: parse -> route by category -> match (exact -> synonym -> fuzzy) ->
    findings -> recommendations -> enforce status consistency.
    Holds no per-request state; the cache is shared and injected.
    """

    def __init__(
        self,
        cache: ReferenceCache,
        matcher: Optional[Matcher] = None,
        allergen_false_positives: Optional[Iterable[str]] = None,
        add_monitoring_recommendation: Optional[bool] = None,
    ):
        if matcher is None:
            false_positives = dict(DEFAULT_FALSE_POSITIVES)
            if allergen_false_positives is not None:
                false_positives[DatasetKind.ALLERGEN_DERIVATIVE] = frozenset(allergen_false_positives)
            matcher = Matcher(false_positives)
        self._cache = cache
        self._router = CategoryRouter(cache, matcher)
        if add_monitoring_recommendation is None:
            add_monitoring_recommendation = config.get_monitoring_recommendation_enabled()
        self._add_monitoring = add_monitoring_recommendation

    @property
    def cache(self) -> ReferenceCache:
        return self._cache

    def analyze_compliance(
        self,
        ingredients: Union[str, Iterable[str], None],
        product_category: Union[ProductCategory, str],
        allergen_declaration_present: bool,
        label_findings: Iterable[Union[ComplianceFinding, Mapping[str, Any]]] = (),
        reported_status: Optional[Union[OverallStatus, str]] = None,
    ) -> ComplianceReport:
        """
        Analyze one label. Raises InvalidInputError for an unknown category or
        malformed input, DataUnavailableError when a needed dataset has never loaded.
        """
        category = ProductCategory.parse(product_category)
        items = parse_ingredient_list(ingredients)
        upstream = [parse_label_finding(f) for f in label_findings or ()]
        if reported_status is not None:
            try:
                reported_status = OverallStatus(str(getattr(reported_status, "value", reported_status)).upper())
            except ValueError:
                raise InvalidInputError(f"Unknown reported status {reported_status!r}")

        checks = self._router.checks_for(category)
        # All datasets are read up front so one report sees one snapshot per dataset
        snapshots = self._router.snapshots_for(checks)

        dataset_reports = [
            self._check_report(items, check, snapshots, allergen_declaration_present)
            for check in checks
        ]

        recommendations: list[Recommendation] = []
        for report in dataset_reports:
            for finding in report.findings:
                rec = classify(finding)
                if rec is not None:
                    recommendations.append(rec)
        for finding in upstream:
            rec = classify(finding)
            if rec is not None:
                recommendations.append(rec)
        if self._add_monitoring:
            recommendations.append(monitoring_recommendation())

        result = finalize(
            product_category=category,
            dataset_reports=dataset_reports,
            recommendations=recommendations,
            label_findings=upstream,
            allergen_declaration_present=allergen_declaration_present,
            reported_status=reported_status,
        )
        logger.info(
            "COMPLIANCE_ENGINE analyzed category=%s ingredients=%d status=%s recommendations=%s versions=%s",
            category.value, len(items), result.overall_status.value, result.priority_counts(),
            {k.value: s.version for k, s in snapshots.items()},
        )
        return result

    def _check_report(
        self,
        items: list[str],
        check: ComplianceCheck,
        snapshots: Mapping[DatasetKind, DatasetSnapshot],
        allergen_declaration_present: bool,
    ) -> DatasetReport:
        findings: list[ComplianceFinding] = []
        allergens: list[str] = []
        unknown: list[str] = []
        for ingredient in items:
            result = self._router.match(ingredient, check, snapshots)
            if result.matched:
                findings.append(_matched_finding(ingredient, check, result, allergen_declaration_present))
                if check == ComplianceCheck.ALLERGEN:
                    name = result.matched_entry.canonical_name
                    if name not in allergens:
                        allergens.append(name)
            else:
                findings.append(_unmatched_finding(ingredient, check, result))
                if check != ComplianceCheck.ALLERGEN:
                    unknown.append(ingredient)

        if unknown:
            logger.info(
                "COMPLIANCE_ENGINE unknown_ingredients check=%s count=%d items=%s",
                check.value, len(unknown), unknown[:20],
            )
        if allergens:
            logger.info(
                "COMPLIANCE_ENGINE allergens_detected declared=%s items=%s",
                allergen_declaration_present, allergens,
            )
        return DatasetReport(check=check, findings=tuple(findings), allergens_detected=tuple(allergens))

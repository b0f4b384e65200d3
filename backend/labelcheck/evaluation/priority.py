"""
Priority classification: one finding -> zero or one Recommendation.

Rules, in order:
1. VIOLATION with high enforcement risk (allergen non-declaration, prohibited
   claim, wrong panel type) -> CRITICAL
2. VIOLATION otherwise (ingredient order, labeling format) -> HIGH
3. REQUIRES_VERIFICATION -> MEDIUM, whatever the ingredient. Missing
   information never escalates past MEDIUM.
4. Voluntary improvement -> LOW
5. Plain COMPLIANT -> no recommendation
"""
from typing import Iterable, Optional

from labelcheck.models.category import ComplianceCheck
from labelcheck.models.report import (
    ComplianceFinding,
    FindingStatus,
    Priority,
    Recommendation,
)

GRAS_REGULATION = "21 CFR 170.30(b) (GRAS determination)"
NDI_REGULATION = "DSHEA Section 413 (New Dietary Ingredient Notification)"
MONITORING_REGULATION = "General FDA guidelines for product labeling"


def priority_for(finding: ComplianceFinding) -> Optional[Priority]:
    if finding.status == FindingStatus.VIOLATION:
        if finding.violation_kind is not None and finding.violation_kind.high_enforcement_risk:
            return Priority.CRITICAL
        return Priority.HIGH
    if finding.status == FindingStatus.REQUIRES_VERIFICATION:
        return Priority.MEDIUM
    if finding.voluntary:
        return Priority.LOW
    return None


def _text(finding: ComplianceFinding, priority: Priority) -> str:
    if finding.check == ComplianceCheck.ALLERGEN and finding.status == FindingStatus.VIOLATION:
        return (
            f"ALLERGEN DECLARATION REQUIRED: \"{finding.ingredient}\" contains the major food allergen "
            f"{finding.matched_name}. Declare it parenthetically after the ingredient or in a "
            "\"Contains:\" statement. Missing allergen declarations can result in FDA enforcement "
            "action and mandatory recalls."
        )
    if finding.check == ComplianceCheck.GRAS and finding.status == FindingStatus.REQUIRES_VERIFICATION:
        return (
            f"Verify GRAS status for ingredient \"{finding.ingredient}\". It was not found in the FDA "
            "GRAS database; it may be the subject of a self-affirmed GRAS determination under "
            "21 CFR 170.30(b). Keep documentation of the determination or of FDA approval on file."
        )
    if finding.check == ComplianceCheck.DIETARY_INGREDIENT and finding.status == FindingStatus.REQUIRES_VERIFICATION:
        return f"Verify NDI compliance for ingredient \"{finding.ingredient}\". {finding.rationale}"
    prefix = {
        Priority.CRITICAL: "CRITICAL",
        Priority.HIGH: "IMPORTANT",
        Priority.MEDIUM: "Verify",
        Priority.LOW: "Suggestion",
    }[priority]
    return f"{prefix}: {finding.rationale}"


def _reference(finding: ComplianceFinding) -> Optional[str]:
    if finding.citation:
        return finding.citation
    if finding.check == ComplianceCheck.GRAS:
        return GRAS_REGULATION
    if finding.check == ComplianceCheck.DIETARY_INGREDIENT:
        return NDI_REGULATION
    return None


def classify(finding: ComplianceFinding) -> Optional[Recommendation]:
    priority = priority_for(finding)
    if priority is None:
        return None
    return Recommendation(
        priority=priority,
        text=_text(finding, priority),
        regulation_reference=_reference(finding),
        ingredient=finding.ingredient or None,
    )


def monitoring_recommendation() -> Recommendation:
    return Recommendation(
        priority=Priority.LOW,
        text=(
            "Continue monitoring for compliance with any new regulations or labeling requirements. "
            "FDA regulations and guidance documents are updated periodically."
        ),
        regulation_reference=MONITORING_REGULATION,
    )


def sort_recommendations(recommendations: Iterable[Recommendation]) -> list[Recommendation]:
    """CRITICAL first; stable within a priority."""
    return sorted(recommendations, key=lambda r: r.priority.rank)

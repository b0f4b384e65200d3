"""
Structured compliance report: findings, recommendations, per-check reports,
and the top-level report. Immutable once built.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from labelcheck.matching.matcher import MatchType
from labelcheck.reference.reference_schema import DatasetKind
from .category import ComplianceCheck, ProductCategory


class FindingStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    REQUIRES_VERIFICATION = "REQUIRES_VERIFICATION"
    VIOLATION = "VIOLATION"


# Same three values; kept separate so the headline status is never confused
# with a single finding
class OverallStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    REQUIRES_VERIFICATION = "REQUIRES_VERIFICATION"
    VIOLATION = "VIOLATION"


class ViolationKind(str, Enum):
    ALLERGEN_NON_DECLARATION = "ALLERGEN_NON_DECLARATION"
    PROHIBITED_CLAIM = "PROHIBITED_CLAIM"
    WRONG_PANEL_TYPE = "WRONG_PANEL_TYPE"
    INGREDIENT_ORDER = "INGREDIENT_ORDER"
    LABELING_FORMAT = "LABELING_FORMAT"

    @property
    def high_enforcement_risk(self) -> bool:
        return self in HIGH_RISK_VIOLATIONS


HIGH_RISK_VIOLATIONS = frozenset({
    ViolationKind.ALLERGEN_NON_DECLARATION,
    ViolationKind.PROHIBITED_CLAIM,
    ViolationKind.WRONG_PANEL_TYPE,
})


class Priority(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @property
    def blocks_print(self) -> bool:
        return self in (Priority.CRITICAL, Priority.HIGH)


_PRIORITY_RANK = {Priority.CRITICAL: 0, Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}

_STATUS_SEVERITY = {
    FindingStatus.COMPLIANT: 0,
    FindingStatus.REQUIRES_VERIFICATION: 1,
    FindingStatus.VIOLATION: 2,
}


def worst_status(statuses) -> FindingStatus:
    worst = FindingStatus.COMPLIANT
    for s in statuses:
        if _STATUS_SEVERITY[s] > _STATUS_SEVERITY[worst]:
            worst = s
    return worst


@dataclass(frozen=True)
class ComplianceFinding:
    ingredient: str
    status: FindingStatus
    rationale: str
    citation: Optional[str] = None
    check: Optional[ComplianceCheck] = None  # None for findings supplied by label extraction
    match_type: Optional[MatchType] = None
    matched_dataset: Optional[DatasetKind] = None
    matched_name: Optional[str] = None
    violation_kind: Optional[ViolationKind] = None
    voluntary: bool = False  # optional improvement, not a requirement

    def __post_init__(self):
        if self.status == FindingStatus.VIOLATION and self.violation_kind is None:
            raise ValueError("A VIOLATION finding must name the violated requirement (violation_kind)")

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingredient": self.ingredient,
            "status": self.status.value,
            "rationale": self.rationale,
            "citation": self.citation,
            "check": self.check.value if self.check else None,
            "match_type": self.match_type.value if self.match_type else None,
            "matched_dataset": self.matched_dataset.value if self.matched_dataset else None,
            "matched_name": self.matched_name,
            "violation_kind": self.violation_kind.value if self.violation_kind else None,
            "voluntary": self.voluntary,
        }


@dataclass(frozen=True)
class Recommendation:
    priority: Priority
    text: str
    regulation_reference: Optional[str] = None
    ingredient: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "text": self.text,
            "regulation_reference": self.regulation_reference,
            "ingredient": self.ingredient,
        }


@dataclass(frozen=True)
class DatasetReport:
    check: ComplianceCheck
    findings: tuple[ComplianceFinding, ...] = ()
    allergens_detected: tuple[str, ...] = ()

    @property
    def datasets(self) -> tuple[DatasetKind, ...]:
        return self.check.datasets

    @property
    def element(self) -> str:
        return self.check.element

    @property
    def status(self) -> FindingStatus:
        return worst_status(f.status for f in self.findings)

    @property
    def total(self) -> int:
        return len(self.findings)

    def _count(self, status: FindingStatus) -> int:
        return sum(1 for f in self.findings if f.status == status)

    @property
    def compliant(self) -> int:
        return self._count(FindingStatus.COMPLIANT)

    @property
    def requires_verification(self) -> int:
        return self._count(FindingStatus.REQUIRES_VERIFICATION)

    @property
    def violations(self) -> int:
        return self._count(FindingStatus.VIOLATION)

    @property
    def matched_ingredients(self) -> list[str]:
        return [f.ingredient for f in self.findings if f.match_type not in (None, MatchType.NONE)]

    @property
    def unmatched_ingredients(self) -> list[str]:
        return [f.ingredient for f in self.findings if f.match_type in (None, MatchType.NONE)]

    def summary_row(self) -> dict[str, str]:
        """One compliance-table row for this check."""
        status = self.status
        if self.check == ComplianceCheck.ALLERGEN:
            if status == FindingStatus.VIOLATION:
                rationale = (
                    f"Allergens detected ({', '.join(self.allergens_detected)}) but no allergen "
                    "declaration found per FALCPA/FASTER Act"
                )
            elif self.allergens_detected:
                rationale = f"Allergens detected and declared: {', '.join(self.allergens_detected)}"
            else:
                rationale = f"No major food allergens detected in {self.total} ingredient(s)"
        elif status == FindingStatus.COMPLIANT:
            rationale = f"All {self.total} ingredient(s) found in the reference database"
        else:
            missing = [f.ingredient for f in self.findings if f.status != FindingStatus.COMPLIANT]
            rationale = (
                f"{len(missing)} ingredient(s) not found in the reference database: "
                f"{', '.join(missing)}. Absence is not proof of non-compliance; verify documentation."
            )
        return {"element": self.element, "status": status.value, "rationale": rationale}

    def to_dict(self) -> dict[str, Any]:
        return {
            "check": self.check.value,
            "element": self.element,
            "datasets": [d.value for d in self.datasets],
            "status": self.status.value,
            "summary": {
                "total": self.total,
                "compliant": self.compliant,
                "requires_verification": self.requires_verification,
                "violations": self.violations,
                "matched_ingredients": self.matched_ingredients,
                "unmatched_ingredients": self.unmatched_ingredients,
            },
            "allergens_detected": list(self.allergens_detected),
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass(frozen=True)
class ComplianceReport:
    product_category: ProductCategory
    overall_status: OverallStatus
    dataset_reports: tuple[DatasetReport, ...] = ()
    label_findings: tuple[ComplianceFinding, ...] = ()
    recommendations: tuple[Recommendation, ...] = ()
    allergen_declaration_present: bool = False
    status_overridden: bool = False

    @property
    def findings(self) -> list[ComplianceFinding]:
        out = [f for r in self.dataset_reports for f in r.findings]
        out.extend(self.label_findings)
        return out

    def report_for(self, check: ComplianceCheck) -> Optional[DatasetReport]:
        return next((r for r in self.dataset_reports if r.check == check), None)

    def priority_counts(self) -> dict[str, int]:
        counts = {p.value: 0 for p in Priority}
        for rec in self.recommendations:
            counts[rec.priority.value] += 1
        return counts

    def compliance_table(self) -> list[dict[str, str]]:
        return [r.summary_row() for r in self.dataset_reports]

    def to_dict(self) -> dict[str, Any]:
        from labelcheck.evaluation.consistency import is_print_ready
        return {
            "product_category": self.product_category.value,
            "overall_status": self.overall_status.value,
            "print_ready": is_print_ready(self),
            "status_overridden": self.status_overridden,
            "allergen_declaration_present": self.allergen_declaration_present,
            "priority_counts": self.priority_counts(),
            "compliance_table": self.compliance_table(),
            "dataset_reports": [r.to_dict() for r in self.dataset_reports],
            "label_findings": [f.to_dict() for f in self.label_findings],
            "recommendations": [r.to_dict() for r in self.recommendations],
        }

"""
Final status enforcement. The headline status is derived from recommendation
priorities only, so it can never read COMPLIANT while a CRITICAL/HIGH item
exists, and MEDIUM items alone never make it a violation.
"""
import logging
from typing import Iterable, Optional

from labelcheck.models.category import ProductCategory
from labelcheck.models.report import (
    ComplianceFinding,
    ComplianceReport,
    DatasetReport,
    OverallStatus,
    Priority,
    Recommendation,
)
from .priority import sort_recommendations

logger = logging.getLogger(__name__)


def derive_overall_status(recommendations: Iterable[Recommendation]) -> OverallStatus:
    priorities = {r.priority for r in recommendations}
    if Priority.CRITICAL in priorities or Priority.HIGH in priorities:
        return OverallStatus.VIOLATION
    if Priority.MEDIUM in priorities:
        return OverallStatus.REQUIRES_VERIFICATION
    return OverallStatus.COMPLIANT


def finalize(
    product_category: ProductCategory,
    dataset_reports: Iterable[DatasetReport],
    recommendations: Iterable[Recommendation],
    label_findings: Iterable[ComplianceFinding] = (),
    allergen_declaration_present: bool = False,
    reported_status: Optional[OverallStatus] = None,
) -> ComplianceReport:
    """
    Build the immutable report. reported_status is the status an upstream
    analysis claimed; when it disagrees with the derived status the derived
    status wins and the report is marked status_overridden.
    """
    recs = sort_recommendations(recommendations)
    status = derive_overall_status(recs)
    overridden = reported_status is not None and OverallStatus(reported_status) != status
    if overridden:
        counts = {p: sum(1 for r in recs if r.priority == p) for p in Priority}
        logger.info(
            "CONSISTENCY enforced status=%s reported=%s critical=%d high=%d medium=%d low=%d",
            status.value, OverallStatus(reported_status).value,
            counts[Priority.CRITICAL], counts[Priority.HIGH],
            counts[Priority.MEDIUM], counts[Priority.LOW],
        )
    return ComplianceReport(
        product_category=product_category,
        overall_status=status,
        dataset_reports=tuple(dataset_reports),
        label_findings=tuple(label_findings),
        recommendations=tuple(recs),
        allergen_declaration_present=allergen_declaration_present,
        status_overridden=overridden,
    )


def is_print_ready(report: ComplianceReport) -> bool:
    """True when no CRITICAL or HIGH recommendation is present."""
    return not any(r.priority.blocks_print for r in report.recommendations)

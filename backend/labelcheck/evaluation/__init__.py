from .category_router import CategoryRouter, applicable_checks, applicable_datasets
from .compliance_engine import ComplianceEngine, parse_ingredient_list, parse_label_finding
from .consistency import derive_overall_status, finalize, is_print_ready
from .priority import classify, monitoring_recommendation, priority_for

__all__ = [
    "CategoryRouter",
    "applicable_checks",
    "applicable_datasets",
    "ComplianceEngine",
    "parse_ingredient_list",
    "parse_label_finding",
    "derive_overall_status",
    "finalize",
    "is_print_ready",
    "classify",
    "monitoring_recommendation",
    "priority_for",
]

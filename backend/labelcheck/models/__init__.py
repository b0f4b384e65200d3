from .category import ProductCategory, ComplianceCheck
from .report import (
    FindingStatus,
    OverallStatus,
    ViolationKind,
    Priority,
    ComplianceFinding,
    Recommendation,
    DatasetReport,
    ComplianceReport,
)

__all__ = [
    "ProductCategory",
    "ComplianceCheck",
    "FindingStatus",
    "OverallStatus",
    "ViolationKind",
    "Priority",
    "ComplianceFinding",
    "Recommendation",
    "DatasetReport",
    "ComplianceReport",
]

"""
Engine error hierarchy. Only DataUnavailableError (and boundary
InvalidInputError) ever reaches a caller; everything else is absorbed into
report findings.
"""
from typing import Any, Optional


class ComplianceEngineError(Exception):
    code = "COMPLIANCE_ENGINE_ERROR"

    def __init__(self, message: str, metadata: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.metadata = metadata or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": str(self),
            "code": self.code,
            "metadata": dict(self.metadata),
        }


class DataUnavailableError(ComplianceEngineError):
    """No snapshot of a reference dataset has ever been loaded."""
    code = "DATA_UNAVAILABLE"


class ReferenceStoreError(ComplianceEngineError):
    """The reference-data store failed to return a page."""
    code = "REFERENCE_STORE_ERROR"


class InvalidInputError(ComplianceEngineError, ValueError):
    code = "VALIDATION_ERROR"

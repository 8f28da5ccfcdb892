"""RigCheck: compatibility rule evaluation and power aggregation for custom PC builds."""

from .builder import EngineSettings, ProgressiveValidator
from .data import CatalogSnapshot
from .schemas import BuildStatus, Finding, Severity, ValidationResult

__all__ = [
    "BuildStatus",
    "CatalogSnapshot",
    "EngineSettings",
    "Finding",
    "ProgressiveValidator",
    "Severity",
    "ValidationResult",
]

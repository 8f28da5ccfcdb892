"""Per-category view of a validation result.

Findings are produced per rule, not per category, so the association is a
loose string match of each finding's labels against category names and slugs.
"""

from __future__ import annotations

from typing import Iterable, List

from ..schemas import Category, CategoryFindings, Finding, ValidationResult


def _mentions(finding: Finding, category: Category) -> bool:
    needles = {category.name.casefold(), category.slug.casefold()}
    for label in (finding.primary_label, finding.secondary_label):
        lowered = label.casefold()
        if lowered in needles or any(needle and needle in lowered for needle in needles):
            return True
    return False


def findings_by_category(result: ValidationResult, categories: Iterable[Category]) -> List[CategoryFindings]:
    breakdown: List[CategoryFindings] = []
    for category in categories:
        issues = [f for f in result.issues if _mentions(f, category)]
        warnings = [f for f in result.warnings if _mentions(f, category)]
        breakdown.append(
            CategoryFindings(slug=category.slug, name=category.name, issues=issues, warnings=warnings)
        )
    return breakdown

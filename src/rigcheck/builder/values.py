"""Normalisation of loosely typed attribute values."""

from __future__ import annotations

import re
from typing import List, Optional

from ..schemas import AttributeValue

_NUMBER_WITH_UNIT = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*[a-zA-Z%]*\s*$")


def normalize(value: AttributeValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return ",".join(sorted(normalize(v) for v in value))
    return str(value).strip().casefold()


def as_number(value: Optional[AttributeValue]) -> Optional[float]:
    """Numeric reading of ``value``; ``"500W"`` reads as 500. Booleans and lists are not numbers."""
    if value is None or isinstance(value, (bool, list)):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER_WITH_UNIT.match(str(value))
    if match is None:
        return None
    return float(match.group(1))


def as_items(value: AttributeValue) -> List[str]:
    """Normalised members of a multi-valued attribute; comma-separated strings are split."""
    if isinstance(value, list):
        return [normalize(v) for v in value]
    if isinstance(value, str) and "," in value:
        return [normalize(v) for v in value.split(",") if v.strip()]
    return [normalize(value)]


def display(value: AttributeValue) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)

"""
自定义规则函数表 - Custom Rule Hook Table

规则类型为 custom 时，按 ``custom_check_ref`` 查找宿主程序注册的检查函数。
For ``custom`` rules, ``custom_check_ref`` names a function registered by the
host application. Each function takes ``(primary_value, secondary_value)`` and
returns True when the pair is compatible.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, Optional

from ..schemas import AttributeValue
from .values import as_items, as_number, normalize

logger = logging.getLogger(__name__)

CustomCheck = Callable[[AttributeValue, AttributeValue], bool]


class CustomCheckRegistry:
    def __init__(self, checks: Optional[Dict[str, CustomCheck]] = None):
        self._checks: Dict[str, CustomCheck] = dict(checks or {})

    def register(self, name: str, fn: Optional[CustomCheck] = None):
        """Register ``fn`` under ``name``; usable as a decorator when ``fn`` is omitted."""
        if fn is not None:
            self._checks[name] = fn
            return fn

        def decorator(func: CustomCheck) -> CustomCheck:
            self._checks[name] = func
            return func

        return decorator

    def resolve(self, name: Optional[str]) -> Optional[CustomCheck]:
        if not name:
            return None
        return self._checks.get(name)

    def copy(self) -> "CustomCheckRegistry":
        return CustomCheckRegistry(self._checks)

    def __contains__(self, name: object) -> bool:
        return name in self._checks

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._checks))


# 插槽与内存类型矩阵 - socket -> supported memory generations
SOCKET_MEMORY_SUPPORT: Dict[str, frozenset] = {
    "am4": frozenset({"ddr4"}),
    "am5": frozenset({"ddr5"}),
    "lga1700": frozenset({"ddr4", "ddr5"}),
    "lga1200": frozenset({"ddr4"}),
    "lga1151": frozenset({"ddr4"}),
    "lga2066": frozenset({"ddr4"}),
}

# 芯片组与插槽矩阵 - chipset -> socket
CHIPSET_SOCKETS: Dict[str, frozenset] = {
    "b450": frozenset({"am4"}),
    "b550": frozenset({"am4"}),
    "x570": frozenset({"am4"}),
    "b650": frozenset({"am5"}),
    "b650e": frozenset({"am5"}),
    "x670": frozenset({"am5"}),
    "x670e": frozenset({"am5"}),
    "b560": frozenset({"lga1200"}),
    "z490": frozenset({"lga1200"}),
    "z590": frozenset({"lga1200"}),
    "b660": frozenset({"lga1700"}),
    "b760": frozenset({"lga1700"}),
    "h610": frozenset({"lga1700"}),
    "h670": frozenset({"lga1700"}),
    "h770": frozenset({"lga1700"}),
    "z690": frozenset({"lga1700"}),
    "z790": frozenset({"lga1700"}),
}


def socket_supports_memory(socket: AttributeValue, memory_type: AttributeValue) -> bool:
    supported = SOCKET_MEMORY_SUPPORT.get(normalize(socket))
    if supported is None:
        # unknown sockets are not second-guessed
        return True
    return all(item in supported for item in as_items(memory_type))


def chipset_matches_socket(chipset: AttributeValue, socket: AttributeValue) -> bool:
    sockets = CHIPSET_SOCKETS.get(normalize(chipset))
    if sockets is None:
        return True
    return normalize(socket) in sockets


def form_factor_supported(form_factor: AttributeValue, supported: AttributeValue) -> bool:
    return normalize(form_factor) in as_items(supported)


def fits_within(size: AttributeValue, limit: AttributeValue) -> bool:
    size_n, limit_n = as_number(size), as_number(limit)
    if size_n is None or limit_n is None:
        # unreadable part data is not a verdict
        logger.debug("fits_within not applicable to %r and %r", size, limit)
        return True
    return size_n <= limit_n


def at_least(required: AttributeValue, provided: AttributeValue) -> bool:
    required_n, provided_n = as_number(required), as_number(provided)
    if required_n is None or provided_n is None:
        logger.debug("at_least not applicable to %r and %r", required, provided)
        return True
    return provided_n >= required_n


def default_custom_checks() -> CustomCheckRegistry:
    registry = CustomCheckRegistry()
    registry.register("socket_supports_memory", socket_supports_memory)
    registry.register("chipset_matches_socket", chipset_matches_socket)
    registry.register("form_factor_supported", form_factor_supported)
    registry.register("fits_within", fits_within)
    registry.register("at_least", at_least)
    return registry

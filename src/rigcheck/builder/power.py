"""
功耗汇总模块 - Power Aggregation Module

汇总整机功耗，并给出建议的电源功率。
Sum the power draw of every selected part and derive a recommended
power-supply wattage.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..schemas import AttributeValue, Part
from .values import as_number

logger = logging.getLogger(__name__)


@dataclass
class PowerEstimate:
    """
    功耗估算结果 - Power Estimate Result

    字段说明 Field Descriptions:
    - total_watts: 整机估算功耗 - estimated draw of the whole build
    - recommended_psu_watts: 建议电源功率 - recommended PSU wattage
    - per_part: 各配件功耗 - draw per part id
    - estimated_parts: 使用类别估值的配件 - parts that fell back to the category table
    - anomalies: 声明值无效的配件 - parts whose declared draw was negative or non-numeric
    """
    total_watts: float = 0
    recommended_psu_watts: int = 0
    per_part: Dict[str, float] = field(default_factory=dict)
    estimated_parts: List[str] = field(default_factory=list)
    anomalies: List[str] = field(default_factory=list)

    def as_tuple(self) -> Tuple[float, int]:
        return self.total_watts, self.recommended_psu_watts


# 默认类别功耗表 - Default Category Power Table
DEFAULT_CATEGORY_WATTS: Dict[str, float] = {
    "processors": 65,
    "graphics-cards": 150,
    "memory": 5,
    "storage": 10,
    "motherboards": 25,
    "cooling": 15,
    "cases": 0,
    "power-supplies": 0,
}
"""
默认类别功耗 - Default Category Power Draw (W)

配件未声明功耗时使用的估值，是策略默认值而非物理定律，声明值总是优先。
Fallback estimates used when a part declares no draw. These are policy
defaults, not measurements; a declared value always wins.

- processors: 65W
- graphics-cards: 150W（独立显卡 discrete graphics）
- memory: 5W 每条 per module
- storage: 10W
- motherboards: 25W
- cooling: 15W
- cases / power-supplies: 0W
"""

DEFAULT_POWER_ATTRIBUTES: Tuple[str, ...] = ("power_consumption", "power_draw", "tdp")
"""Attribute names read, in order, as a part's declared draw."""

MODULE_COUNT_ATTRIBUTE = "modules"
MEMORY_SLUG = "memory"

PSU_HEADROOM = 1.25
PSU_STEP_WATTS = 50


def recommend_psu_watts(total_watts: float, headroom: float = PSU_HEADROOM, step: int = PSU_STEP_WATTS) -> int:
    """
    计算建议电源功率 - Recommend PSU Wattage

    ``ceil(total * headroom / step) * step``：25% 余量并向上取整到 50W。
    25% headroom, rounded up to the next 50 W. A build drawing nothing needs no PSU.
    """
    if total_watts <= 0:
        return 0
    return int(math.ceil(total_watts * headroom / step) * step)


class PowerAggregator:
    """
    功耗汇总器 - Power Aggregator

    参数 Parameters:
        value_lookup: 按属性名读取配件值的函数 - reads a part attribute by internal name;
                      defaults to a plain lookup in ``Part.attributes``
        category_watts: 类别功耗表，覆盖默认值 - category table overrides
        power_attributes: 声明功耗的属性名 - attribute names holding declared draw
        headroom: 余量倍数 - headroom multiplier
        step: 取整步长 - rounding step in watts
    """

    def __init__(
        self,
        value_lookup: Optional[Callable[[Part, str], Optional[AttributeValue]]] = None,
        category_watts: Optional[Mapping[str, float]] = None,
        power_attributes: Iterable[str] = DEFAULT_POWER_ATTRIBUTES,
        headroom: float = PSU_HEADROOM,
        step: int = PSU_STEP_WATTS,
    ):
        self.value_lookup = value_lookup or _plain_lookup
        self.category_watts = dict(DEFAULT_CATEGORY_WATTS)
        if category_watts:
            self.category_watts.update(category_watts)
        self.power_attributes = tuple(power_attributes)
        self.headroom = headroom
        self.step = step

    def part_watts(self, part: Part, category_slug: str) -> Tuple[float, bool, bool]:
        """
        单个配件功耗 - Draw of One Part

        返回 Returns:
            (watts, estimated, anomalous)
        """
        anomalous = False
        for name in self.power_attributes:
            raw = self.value_lookup(part, name)
            if raw is None:
                continue
            declared = as_number(raw)
            if declared is None or declared < 0:
                logger.warning("part %s declares invalid %s %r", part.id, name, raw)
                anomalous = True
                continue
            return declared, False, False

        if anomalous:
            logger.warning("part %s has no usable declared draw; using category estimate", part.id)
        per_unit = self.category_watts.get(category_slug, 0)
        if category_slug == MEMORY_SLUG:
            # 内存估值按条计算 - the memory estimate is per module
            modules = as_number(self.value_lookup(part, MODULE_COUNT_ATTRIBUTE))
            if modules is not None and modules >= 1 and modules.is_integer():
                per_unit *= int(modules)
            elif modules is not None:
                logger.warning("part %s declares invalid module count %r", part.id, modules)
        return per_unit, True, anomalous

    def aggregate(self, selected_parts: List[Part], category_of: Mapping[str, str]) -> PowerEstimate:
        """
        汇总功耗 - Aggregate Power

        参数 Parameters:
            selected_parts: 已选配件（多选槽位逐件展开）- selected parts, multi-select slots expanded
            category_of: 配件 id -> 父类别 slug - part id to parent category slug

        返回 Returns:
            功耗估算结果 - power estimate
        """
        estimate = PowerEstimate()
        total = 0.0
        for part in selected_parts:
            watts, estimated, anomalous = self.part_watts(part, category_of.get(part.id, ""))
            # the same part chosen twice (two identical sticks) counts twice
            estimate.per_part[part.id] = estimate.per_part.get(part.id, 0) + watts
            if estimated:
                estimate.estimated_parts.append(part.id)
            if anomalous:
                estimate.anomalies.append(part.id)
            total += watts
        estimate.total_watts = total
        estimate.recommended_psu_watts = recommend_psu_watts(total, self.headroom, self.step)
        logger.debug("power: %.1fW total, %dW recommended", total, estimate.recommended_psu_watts)
        return estimate


def _plain_lookup(part: Part, name: str) -> Optional[AttributeValue]:
    return part.attributes.get(name)

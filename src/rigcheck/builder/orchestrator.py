"""
渐进式验证模块 - Progressive Validation Module

根据当前选择决定是否进行成对兼容性检查，合并结果并汇总功耗。
Decide whether the current selection is complete enough for pairwise
evaluation, run it, merge the findings and aggregate power.
"""

from __future__ import annotations

import itertools
import logging
import math
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from ..data.snapshot import CatalogSnapshot
from ..errors import ConfigurationError, NotFoundError, SnapshotInconsistencyError
from ..schemas import BuildStatus, Category, Finding, Part, Severity, ValidationResult
from .compatibility import RuleEvaluator
from .custom_checks import CustomCheckRegistry, default_custom_checks
from .hierarchy import DEFAULT_MULTI_SELECT_SLUGS, CategoryHierarchyResolver
from .power import DEFAULT_POWER_ATTRIBUTES, PSU_HEADROOM, PSU_STEP_WATTS, PowerAggregator, PowerEstimate
from .registry import AttributeSchemaRegistry
from .rule_store import RuleStore
from .values import as_number, display

logger = logging.getLogger(__name__)

SYSTEM_LABEL = "System"
VALIDATION_LABEL = "Validation"
CONFIGURATION_LABEL = "Configuration"

# 电源最低余量 - capacity below draw * 1.1 leaves too little reserve
PSU_MIN_RESERVE = 1.1


class BuildState(str, Enum):
    EMPTY = "empty"
    INSUFFICIENT = "insufficient"
    EVALUABLE = "evaluable"


@dataclass
class EngineSettings:
    """
    引擎策略参数 - Engine Policy Settings

    所有策略都通过构造参数传入，引擎本身不读取环境变量。
    All policy comes in through here; the engine never reads the environment.
    """
    processor_slug: str = "processors"
    motherboard_slug: str = "motherboards"
    psu_slug: str = "power-supplies"
    psu_capacity_attribute: str = "wattage"
    check_psu_capacity: bool = True
    multi_select_slugs: FrozenSet[str] = DEFAULT_MULTI_SELECT_SLUGS
    category_watts: Dict[str, float] = field(default_factory=dict)
    power_attributes: Tuple[str, ...] = DEFAULT_POWER_ATTRIBUTES
    psu_headroom: float = PSU_HEADROOM
    psu_step_watts: int = PSU_STEP_WATTS


@dataclass
class _Slot:
    slug: str
    category: Category
    parent: Category
    parts: List[Part]


class ProgressiveValidator:
    """
    渐进式验证器 - Progressive Validation Orchestrator

    无可变共享状态，除了单调递增的代次计数器；同一快照和选择的两次调用结果完全相同。
    Holds no mutable shared state apart from the generation counter; two calls
    with the same snapshot and selection return equal results.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        custom_checks: Optional[CustomCheckRegistry] = None,
    ):
        self.settings = settings or EngineSettings()
        self.custom_checks = custom_checks if custom_checks is not None else default_custom_checks()
        self._generation = itertools.count(1)
        self._generation_lock = threading.Lock()
        self._current_generation = 0

    def next_generation(self) -> int:
        """Issue a new generation token; later calls always return larger values."""
        with self._generation_lock:
            self._current_generation = next(self._generation)
            return self._current_generation

    @property
    def current_generation(self) -> int:
        with self._generation_lock:
            return self._current_generation

    def classify(self, parent_slugs: List[str]) -> BuildState:
        """
        判断构建状态 - Classify Build State

        参数 Parameters:
            parent_slugs: 每个已选槽位的父类别 slug - parent slug of every non-empty slot
        """
        if not parent_slugs:
            return BuildState.EMPTY
        has_cpu = self.settings.processor_slug in parent_slugs
        has_board = self.settings.motherboard_slug in parent_slugs
        core = {self.settings.processor_slug, self.settings.motherboard_slug}
        others = sum(1 for slug in parent_slugs if slug not in core)
        if (has_cpu and has_board) or (has_cpu and others) or (has_board and others):
            return BuildState.EVALUABLE
        return BuildState.INSUFFICIENT

    def validate(
        self,
        snapshot: CatalogSnapshot,
        selection: Mapping[str, Union[str, List[str], None]],
    ) -> ValidationResult:
        """
        验证当前配置 - Validate Current Build

        参数 Parameters:
            snapshot: 本次运行使用的目录快照 - catalog snapshot for this run
            selection: 类别 slug -> 配件 id 或 id 列表 - slot slug to part id(s)

        返回 Returns:
            新的验证结果 - a fresh validation result
        """
        resolver = CategoryHierarchyResolver(snapshot, self.settings.multi_select_slugs)
        registry = AttributeSchemaRegistry(snapshot)
        normalized, overflowing = resolver.normalize(selection)
        if not normalized:
            return ValidationResult()

        slots, problems = self._resolve_slots(snapshot, resolver, normalized)
        parts = [part for slot in slots for part in slot.parts]
        category_of = {part.id: slot.parent.slug for slot in slots for part in slot.parts}
        aggregator = PowerAggregator(
            value_lookup=registry.value_by_name,
            category_watts=self.settings.category_watts,
            power_attributes=self.settings.power_attributes,
            headroom=self.settings.psu_headroom,
            step=self.settings.psu_step_watts,
        )
        power = aggregator.aggregate(parts, category_of)

        findings: List[Finding] = []
        if problems:
            findings.append(
                Finding(
                    severity=Severity.ERROR,
                    primary_label=SYSTEM_LABEL,
                    secondary_label=VALIDATION_LABEL,
                    message="Error checking compatibility",
                    details="; ".join(problems),
                )
            )

        state = self.classify([slot.parent.slug for slot in slots])
        logger.debug("selection of %d slots classified as %s", len(slots), state.value)
        if state is BuildState.EVALUABLE:
            findings.extend(self._overflow_warnings(snapshot, overflowing))
            evaluator = RuleEvaluator(registry, self.custom_checks)
            findings.extend(self._pairwise(slots, RuleStore(snapshot.rules), evaluator))
            if self.settings.check_psu_capacity:
                findings.extend(self._psu_capacity(slots, registry, power))

        return self._result(findings, power, parts)

    def _resolve_slots(
        self,
        snapshot: CatalogSnapshot,
        resolver: CategoryHierarchyResolver,
        selection: Mapping[str, List[str]],
    ) -> Tuple[List[_Slot], List[str]]:
        slots: List[_Slot] = []
        problems: List[str] = []
        for slug, part_ids in selection.items():
            try:
                category = snapshot.category_by_slug(slug)
                parent = resolver.resolve_parent(slug)
            except NotFoundError as exc:
                problems.append(str(exc))
                continue
            parts: List[Part] = []
            for part_id in part_ids:
                try:
                    parts.append(self._slot_part(snapshot, resolver, parent, part_id, slug))
                except SnapshotInconsistencyError as exc:
                    problems.append(str(exc))
            if parts:
                slots.append(_Slot(slug=slug, category=category, parent=parent, parts=parts))
        if problems:
            logger.warning("selection inconsistent with snapshot: %s", "; ".join(problems))
        return slots, problems

    @staticmethod
    def _slot_part(
        snapshot: CatalogSnapshot,
        resolver: CategoryHierarchyResolver,
        parent: Category,
        part_id: str,
        slug: str,
    ) -> Part:
        try:
            part = snapshot.part(part_id)
            part_parent = resolver.resolve_parent_id(part.category_id)
        except NotFoundError as exc:
            raise SnapshotInconsistencyError(f"slot {slug!r}: {exc}") from exc
        if part_parent != parent.id:
            raise SnapshotInconsistencyError(f"part {part_id!r} does not belong to slot {slug!r}")
        return part

    @staticmethod
    def _overflow_warnings(snapshot: CatalogSnapshot, overflowing: List[str]) -> List[Finding]:
        warnings = []
        for slug in overflowing:
            try:
                label = snapshot.category_by_slug(slug).name
            except NotFoundError:
                continue
            warnings.append(
                Finding(
                    severity=Severity.WARNING,
                    primary_label=label,
                    secondary_label=VALIDATION_LABEL,
                    message=f"{label} accepts a single part; only the first selection was checked",
                )
            )
        return warnings

    def _pairwise(self, slots: List[_Slot], rules: RuleStore, evaluator: RuleEvaluator) -> List[Finding]:
        findings: List[Finding] = []
        misconfigured: Dict[str, Finding] = {}
        for left, right in itertools.combinations(slots, 2):
            applicable = rules.rules_between(left.parent.id, right.parent.id)
            if not applicable:
                continue
            for a, b in itertools.product(left.parts, right.parts):
                for rule in applicable:
                    if rule.id in misconfigured:
                        continue
                    if rule.primary_category_id == left.parent.id and rule.secondary_category_id == right.parent.id:
                        primary, secondary = a, b
                    else:
                        primary, secondary = b, a
                    try:
                        finding = evaluator.evaluate(rule, primary, secondary)
                    except ConfigurationError as exc:
                        logger.warning("skipping rule %s: %s", rule.id, exc)
                        misconfigured[rule.id] = Finding(
                            severity=Severity.WARNING,
                            primary_label=rule.name,
                            secondary_label=CONFIGURATION_LABEL,
                            message="Compatibility rule misconfigured",
                            details=str(exc),
                            rule_id=rule.id,
                        )
                        findings.append(misconfigured[rule.id])
                        continue
                    if finding is not None:
                        findings.append(finding)
        return findings

    def _psu_capacity(
        self, slots: List[_Slot], registry: AttributeSchemaRegistry, power: PowerEstimate
    ) -> List[Finding]:
        """
        电源容量检查 - PSU Capacity Check

        容量低于 总功耗*余量 为错误，低于 总功耗*1.1 为警告，未声明容量为警告。
        Below draw * headroom is an Error, below draw * 1.1 a Warning, and a
        PSU without a declared capacity gets a Warning.
        """
        findings: List[Finding] = []
        required = power.total_watts * self.settings.psu_headroom
        reserve = power.total_watts * PSU_MIN_RESERVE
        for slot in slots:
            if slot.parent.slug != self.settings.psu_slug:
                continue
            for part in slot.parts:
                capacity = as_number(registry.value_by_name(part, self.settings.psu_capacity_attribute))
                if not capacity:
                    findings.append(
                        Finding(
                            severity=Severity.WARNING,
                            primary_label=slot.parent.name,
                            secondary_label=SYSTEM_LABEL,
                            message="No information about the power supply capacity",
                            details="Unable to verify sufficient power",
                            part_ids=[part.id],
                        )
                    )
                    continue
                details = (
                    f"Required: {math.ceil(required)}W (recommended PSU "
                    f"{power.recommended_psu_watts}W), available: {display(capacity)}W"
                )
                if capacity < required:
                    findings.append(
                        Finding(
                            severity=Severity.ERROR,
                            primary_label=slot.parent.name,
                            secondary_label=SYSTEM_LABEL,
                            message="Insufficient power supply capacity",
                            details=details,
                            part_ids=[part.id],
                        )
                    )
                elif capacity < reserve:
                    findings.append(
                        Finding(
                            severity=Severity.WARNING,
                            primary_label=slot.parent.name,
                            secondary_label=SYSTEM_LABEL,
                            message="Low power supply headroom",
                            details=details,
                            part_ids=[part.id],
                        )
                    )
        return findings

    @staticmethod
    def _result(findings: List[Finding], power: PowerEstimate, parts: List[Part]) -> ValidationResult:
        issues = [f for f in findings if f.severity is Severity.ERROR]
        warnings = [f for f in findings if f.severity is Severity.WARNING]
        if issues:
            status = BuildStatus.ERROR
        elif warnings:
            status = BuildStatus.WARNING
        else:
            status = BuildStatus.VALID
        return ValidationResult(
            is_valid=not issues,
            status=status,
            issues=issues,
            warnings=warnings,
            total_power_draw_watts=power.total_watts,
            recommended_psu_watts=power.recommended_psu_watts,
            total_price=sum(part.price for part in parts),
            power_breakdown=dict(power.per_part),
        )

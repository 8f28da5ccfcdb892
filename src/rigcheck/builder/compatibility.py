"""
兼容性规则评估模块 - Compatibility Rule Evaluation Module

把一条兼容性规则作用于两件配件，按规则类型判定是否匹配。
Apply one compatibility rule to a pair of parts and decide match/mismatch
according to the rule's strategy.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Tuple

from ..errors import ConfigurationError, NotFoundError
from ..schemas import (
    AttributeTemplate,
    AttributeValue,
    CompatibilityRule,
    DataKind,
    Finding,
    Part,
    RuleType,
    Severity,
)
from .custom_checks import CustomCheckRegistry, default_custom_checks
from .registry import AttributeSchemaRegistry
from .values import as_items, as_number, display, normalize

logger = logging.getLogger(__name__)

# Returns None when the pair passes, otherwise (message, details).
Strategy = Callable[
    [CompatibilityRule, "RuleContext"],
    Optional[Tuple[str, Optional[str]]],
]

_PAYLOAD_FIELDS = ("compatible_values", "min_value", "max_value", "custom_check_ref")

_ALLOWED_PAYLOAD: Dict[RuleType, Tuple[str, ...]] = {
    RuleType.EXACT_MATCH: (),
    RuleType.COMPATIBLE_VALUES: ("compatible_values",),
    RuleType.RANGE_CHECK: ("min_value", "max_value"),
    RuleType.CUSTOM: ("custom_check_ref",),
}


class RuleContext:
    """Both sides of one rule evaluation."""

    __slots__ = ("primary", "secondary", "primary_template", "secondary_template", "primary_value", "secondary_value")

    def __init__(
        self,
        primary: Part,
        secondary: Part,
        primary_template: AttributeTemplate,
        secondary_template: AttributeTemplate,
        primary_value: AttributeValue,
        secondary_value: AttributeValue,
    ):
        self.primary = primary
        self.secondary = secondary
        self.primary_template = primary_template
        self.secondary_template = secondary_template
        self.primary_value = primary_value
        self.secondary_value = secondary_value


class RuleEvaluator:
    """Evaluate compatibility rules against part pairs.

    参数 Parameters:
        registry: 属性模板注册表 - attribute schema registry of the current snapshot
        custom_checks: 自定义检查函数表 - hook table for ``custom`` rules;
                       defaults to the built-in checks
    """

    def __init__(
        self,
        registry: AttributeSchemaRegistry,
        custom_checks: Optional[CustomCheckRegistry] = None,
    ):
        self.registry = registry
        self.custom_checks = custom_checks if custom_checks is not None else default_custom_checks()
        self._strategies: Dict[RuleType, Strategy] = {
            RuleType.EXACT_MATCH: self._exact_match,
            RuleType.COMPATIBLE_VALUES: self._compatible_values,
            RuleType.RANGE_CHECK: self._range_check,
            RuleType.CUSTOM: self._custom,
        }

    def check_rule(self, rule: CompatibilityRule) -> Tuple[AttributeTemplate, AttributeTemplate]:
        """Validate ``rule`` against the snapshot and return its two templates.

        Raises ConfigurationError when the rule cannot be evaluated as authored.
        """
        for field_name in _PAYLOAD_FIELDS:
            if field_name in _ALLOWED_PAYLOAD[rule.rule_type]:
                continue
            if getattr(rule, field_name) is not None:
                raise ConfigurationError(
                    f"rule {rule.name!r} ({rule.rule_type.value}) must not set {field_name}",
                    rule_id=rule.id,
                )

        if rule.rule_type is RuleType.COMPATIBLE_VALUES and not rule.compatible_values:
            raise ConfigurationError(f"rule {rule.name!r} has no compatible values", rule_id=rule.id)
        if rule.rule_type is RuleType.RANGE_CHECK:
            if rule.min_value is None and rule.max_value is None:
                raise ConfigurationError(f"rule {rule.name!r} declares no range bound", rule_id=rule.id)
            if rule.min_value is not None and rule.max_value is not None and rule.min_value > rule.max_value:
                raise ConfigurationError(
                    f"rule {rule.name!r} has min_value {rule.min_value} above max_value {rule.max_value}",
                    rule_id=rule.id,
                )
        if rule.rule_type is RuleType.CUSTOM and self.custom_checks.resolve(rule.custom_check_ref) is None:
            raise ConfigurationError(
                f"rule {rule.name!r} references unknown custom check {rule.custom_check_ref!r}",
                rule_id=rule.id,
            )

        primary_template = self._rule_template(rule, rule.primary_category_id, rule.primary_attribute_id)
        secondary_template = self._rule_template(rule, rule.secondary_category_id, rule.secondary_attribute_id)
        return primary_template, secondary_template

    def _rule_template(self, rule: CompatibilityRule, category_id: str, template_id: str) -> AttributeTemplate:
        snapshot = self.registry.snapshot
        if not snapshot.has_category(category_id):
            raise ConfigurationError(
                f"rule {rule.name!r} references unknown category {category_id!r}", rule_id=rule.id
            )
        try:
            template = self.registry.template(template_id)
        except NotFoundError:
            raise ConfigurationError(
                f"rule {rule.name!r} references unknown attribute {template_id!r}", rule_id=rule.id
            ) from None
        if template.category_id != category_id:
            raise ConfigurationError(
                f"rule {rule.name!r}: attribute {template.name!r} does not belong to category {category_id!r}",
                rule_id=rule.id,
                template_id=template.id,
            )
        if not template.is_compatibility_key:
            raise ConfigurationError(
                f"rule {rule.name!r}: attribute {template.name!r} is not a compatibility key",
                rule_id=rule.id,
                template_id=template.id,
            )
        self.registry.check_template(template)
        return template

    def evaluate(self, rule: CompatibilityRule, primary: Part, secondary: Part) -> Optional[Finding]:
        """Evaluate ``rule`` with ``primary`` on its primary side.

        Returns None when the pair passes or when either part lacks a value for
        the rule's attribute. Raises ConfigurationError for a rule that cannot
        be evaluated.
        """
        primary_template, secondary_template = self.check_rule(rule)
        primary_value = self.registry.value_of(primary, primary_template)
        secondary_value = self.registry.value_of(secondary, secondary_template)
        if primary_value is None or secondary_value is None:
            logger.debug("rule %s skipped for %s/%s: missing value", rule.id, primary.id, secondary.id)
            return None

        context = RuleContext(
            primary, secondary, primary_template, secondary_template, primary_value, secondary_value
        )
        outcome = self._strategies[rule.rule_type](rule, context)
        if outcome is None:
            return None
        message, details = outcome
        snapshot = self.registry.snapshot
        return Finding(
            severity=Severity.ERROR,
            primary_label=snapshot.category(rule.primary_category_id).name,
            secondary_label=snapshot.category(rule.secondary_category_id).name,
            message=message,
            details=details if details is not None else rule.description,
            rule_id=rule.id,
            part_ids=[primary.id, secondary.id],
        )

    @staticmethod
    def _exact_match(rule: CompatibilityRule, ctx: RuleContext):
        if normalize(ctx.primary_value) == normalize(ctx.secondary_value):
            return None
        return (
            f"{ctx.primary.label} and {ctx.secondary.label} have incompatible "
            f"{ctx.primary_template.label} values: {display(ctx.primary_value)} vs {display(ctx.secondary_value)}",
            None,
        )

    @staticmethod
    def _compatible_values(rule: CompatibilityRule, ctx: RuleContext):
        allowed = {normalize(v) for v in rule.compatible_values or []}
        rejected = [item for item in as_items(ctx.secondary_value) if item not in allowed]
        if not rejected:
            return None
        return (
            f"{ctx.secondary.label}'s {ctx.secondary_template.label} ({display(ctx.secondary_value)}) "
            f"is not compatible with {ctx.primary.label}'s {ctx.primary_template.label} "
            f"({display(ctx.primary_value)})",
            f"Compatible values: {', '.join(rule.compatible_values or [])}",
        )

    @staticmethod
    def _range_check(rule: CompatibilityRule, ctx: RuleContext):
        secondary_number = as_number(ctx.secondary_value)
        if secondary_number is None:
            logger.warning(
                "rule %s: %s value %r of %s is not numeric; range not checked",
                rule.id,
                ctx.secondary_template.name,
                ctx.secondary_value,
                ctx.secondary.id,
            )
            return None

        floor = rule.min_value
        if ctx.primary_template.data_kind is DataKind.NUMBER:
            declared = as_number(ctx.primary_value)
            if declared is not None:
                # a part-declared requirement supersedes the rule's default floor
                floor = declared
        ceiling = rule.max_value

        too_low = floor is not None and secondary_number < floor
        too_high = ceiling is not None and secondary_number > ceiling
        if not (too_low or too_high):
            return None
        bounds = []
        if floor is not None:
            bounds.append(f"min {display(floor)}")
        if ceiling is not None:
            bounds.append(f"max {display(ceiling)}")
        return (
            f"{ctx.secondary.label}'s {ctx.secondary_template.label} ({display(ctx.secondary_value)}) "
            f"is outside the compatible range for {ctx.primary.label}",
            f"Allowed range: {', '.join(bounds)}",
        )

    def _custom(self, rule: CompatibilityRule, ctx: RuleContext):
        check = self.custom_checks.resolve(rule.custom_check_ref)
        if check is None:
            raise ConfigurationError(
                f"rule {rule.name!r} references unknown custom check {rule.custom_check_ref!r}",
                rule_id=rule.id,
            )
        try:
            compatible = bool(check(ctx.primary_value, ctx.secondary_value))
        except Exception as exc:  # host-supplied code
            raise ConfigurationError(
                f"custom check {rule.custom_check_ref!r} of rule {rule.name!r} failed: {exc}",
                rule_id=rule.id,
            ) from exc
        if compatible:
            return None
        return (
            f"{ctx.primary.label} and {ctx.secondary.label} fail {rule.name}: "
            f"{ctx.primary_template.label} {display(ctx.primary_value)} vs "
            f"{ctx.secondary_template.label} {display(ctx.secondary_value)}",
            None,
        )

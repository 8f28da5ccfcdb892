"""Builder 模块：兼容性规则评估与功耗汇总"""

from .breakdown import findings_by_category
from .compatibility import RuleEvaluator
from .custom_checks import CustomCheckRegistry, default_custom_checks
from .hierarchy import CategoryHierarchyResolver
from .orchestrator import BuildState, EngineSettings, ProgressiveValidator
from .power import DEFAULT_CATEGORY_WATTS, PowerAggregator, PowerEstimate, recommend_psu_watts
from .registry import AttributeSchemaRegistry
from .rule_store import RuleStore

__all__ = [
    "AttributeSchemaRegistry",
    "BuildState",
    "CategoryHierarchyResolver",
    "CustomCheckRegistry",
    "DEFAULT_CATEGORY_WATTS",
    "EngineSettings",
    "PowerAggregator",
    "PowerEstimate",
    "ProgressiveValidator",
    "RuleEvaluator",
    "RuleStore",
    "default_custom_checks",
    "findings_by_category",
    "recommend_psu_watts",
]

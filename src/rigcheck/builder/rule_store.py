"""Queryable view over the rule snapshot."""

from __future__ import annotations

from typing import Dict, List, Tuple

from ..schemas import CompatibilityRule


class RuleStore:
    def __init__(self, rules: List[CompatibilityRule]):
        self._rules = list(rules)
        self._order = {id(rule): index for index, rule in enumerate(self._rules)}
        self._by_pair: Dict[Tuple[str, str], List[CompatibilityRule]] = {}
        for rule in self._rules:
            key = (rule.primary_category_id, rule.secondary_category_id)
            self._by_pair.setdefault(key, []).append(rule)

    def all(self) -> List[CompatibilityRule]:
        return list(self._rules)

    def rules_between(self, category_a: str, category_b: str) -> List[CompatibilityRule]:
        """Rules declared for the two categories in either order, in snapshot order."""
        matched = list(self._by_pair.get((category_a, category_b), []))
        if category_a != category_b:
            matched.extend(self._by_pair.get((category_b, category_a), []))
        matched.sort(key=lambda rule: self._order[id(rule)])
        return matched

    def __len__(self) -> int:
        return len(self._rules)

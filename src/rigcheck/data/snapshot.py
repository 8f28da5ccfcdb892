"""Immutable catalog view handed to the engine for one validation run."""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..errors import NotFoundError
from ..schemas import AttributeTemplate, Category, CompatibilityRule, Part


class CatalogSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: List[Category] = Field(default_factory=list)
    templates: List[AttributeTemplate] = Field(default_factory=list)
    parts: List[Part] = Field(default_factory=list)
    rules: List[CompatibilityRule] = Field(default_factory=list)

    _categories_by_id: Dict[str, Category] = PrivateAttr(default_factory=dict)
    _categories_by_slug: Dict[str, Category] = PrivateAttr(default_factory=dict)
    _templates_by_id: Dict[str, AttributeTemplate] = PrivateAttr(default_factory=dict)
    _templates_by_category: Dict[str, List[AttributeTemplate]] = PrivateAttr(default_factory=dict)
    _parts_by_id: Dict[str, Part] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._categories_by_id = {c.id: c for c in self.categories}
        self._categories_by_slug = {c.slug: c for c in self.categories}
        self._templates_by_id = {t.id: t for t in self.templates}
        by_category: Dict[str, List[AttributeTemplate]] = {}
        for template in self.templates:
            by_category.setdefault(template.category_id, []).append(template)
        self._templates_by_category = by_category
        self._parts_by_id = {p.id: p for p in self.parts}

    def category(self, category_id: str) -> Category:
        try:
            return self._categories_by_id[category_id]
        except KeyError:
            raise NotFoundError(f"category {category_id!r} not found") from None

    def category_by_slug(self, slug: str) -> Category:
        try:
            return self._categories_by_slug[slug]
        except KeyError:
            raise NotFoundError(f"category slug {slug!r} not found") from None

    def has_category(self, category_id: str) -> bool:
        return category_id in self._categories_by_id

    def template(self, template_id: str) -> AttributeTemplate:
        try:
            return self._templates_by_id[template_id]
        except KeyError:
            raise NotFoundError(f"attribute template {template_id!r} not found") from None

    def templates_of(self, category_id: str) -> List[AttributeTemplate]:
        return list(self._templates_by_category.get(category_id, []))

    def part(self, part_id: str) -> Part:
        try:
            return self._parts_by_id[part_id]
        except KeyError:
            raise NotFoundError(f"part {part_id!r} not found") from None

    def parts_in(self, category_id: str) -> List[Part]:
        return [p for p in self.parts if p.category_id == category_id]

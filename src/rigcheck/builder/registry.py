"""
属性模板注册表 - Attribute Schema Registry

按类别提供规格模板，并筛选出参与兼容性规则的"兼容性键"。
Per-category attribute templates, filtered to compatibility keys.
"""

from __future__ import annotations

from typing import List, Optional

from ..data.snapshot import CatalogSnapshot
from ..errors import ConfigurationError, NotFoundError
from ..schemas import AttributeTemplate, AttributeValue, Part


class AttributeSchemaRegistry:
    def __init__(self, snapshot: CatalogSnapshot):
        self.snapshot = snapshot

    def templates_for(self, category_id: str) -> List[AttributeTemplate]:
        # raises NotFoundError for a category missing from the snapshot
        self.snapshot.category(category_id)
        return self.snapshot.templates_of(category_id)

    def compatibility_key_templates_for(self, category_id: str) -> List[AttributeTemplate]:
        return [t for t in self.templates_for(category_id) if t.is_compatibility_key]

    def template(self, template_id: str) -> AttributeTemplate:
        return self.snapshot.template(template_id)

    def find_by_name(self, category_id: str, name: str) -> Optional[AttributeTemplate]:
        """Look a template up by internal name, falling back to a case-insensitive match."""
        templates = self.templates_for(category_id)
        for template in templates:
            if template.name == name:
                return template
        lowered = name.lower()
        for template in templates:
            if template.name.lower() == lowered:
                return template
        return None

    @staticmethod
    def check_template(template: AttributeTemplate) -> None:
        """Fail fast on a template the engine cannot evaluate against."""
        if template.data_kind.is_enumerated and not template.enum_values:
            raise ConfigurationError(
                f"template {template.name!r} is {template.data_kind.value} but declares no enum values",
                template_id=template.id,
            )

    def template_notes(self, category_id: str) -> List[str]:
        notes: List[str] = []
        for template in self.templates_for(category_id):
            try:
                self.check_template(template)
            except ConfigurationError as exc:
                notes.append(str(exc))
            if template.is_compatibility_key and not template.is_required:
                notes.append(f"compatibility key {template.name!r} is usually required")
        return notes

    @staticmethod
    def value_of(part: Part, template: AttributeTemplate) -> Optional[AttributeValue]:
        """Attribute value of ``part`` for ``template``: by id, then by internal name.

        Empty strings and empty lists count as missing.
        """
        attributes = part.attributes
        if template.id in attributes:
            value = attributes[template.id]
        elif template.name in attributes:
            value = attributes[template.name]
        else:
            lowered = template.name.lower()
            value = next((v for k, v in attributes.items() if k.lower() == lowered), None)
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        if isinstance(value, list) and not value:
            return None
        return value

    def value_by_name(self, part: Part, name: str) -> Optional[AttributeValue]:
        """Part value for an internal attribute name, whether or not a template declares it."""
        try:
            template = self.find_by_name(part.category_id, name)
        except NotFoundError:
            template = None
        if template is not None:
            return self.value_of(part, template)
        lowered = name.lower()
        return next((v for k, v in part.attributes.items() if k.lower() == lowered), None)

"""Category hierarchy resolution and slot normalisation."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..data.snapshot import CatalogSnapshot
from ..errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_MULTI_SELECT_SLUGS = frozenset({"memory", "storage"})

BuildSelection = Dict[str, List[str]]


class CategoryHierarchyResolver:
    def __init__(
        self,
        snapshot: CatalogSnapshot,
        multi_select_slugs: Iterable[str] = DEFAULT_MULTI_SELECT_SLUGS,
    ):
        self.snapshot = snapshot
        self.multi_select_slugs = frozenset(multi_select_slugs)

    def resolve_parent_slug(self, slug: str) -> str:
        return self.resolve_parent(slug).slug

    def resolve_parent(self, slug: str):
        category = self.snapshot.category_by_slug(slug)
        if category.is_subcategory and category.parent_id:
            return self.snapshot.category(category.parent_id)
        return category

    def resolve_parent_id(self, category_id: str) -> str:
        category = self.snapshot.category(category_id)
        if category.is_subcategory and category.parent_id:
            return category.parent_id
        return category.id

    def is_multi_select(self, category_slug: str) -> bool:
        """True for slots that accept an ordered list of parts.

        A subcategory inherits the flag of its parent, so every drive type is a
        storage slot.
        """
        try:
            category = self.resolve_parent(category_slug)
        except NotFoundError:
            return category_slug in self.multi_select_slugs
        if category.slug in self.multi_select_slugs or category_slug in self.multi_select_slugs:
            return True
        return category.max_components > 1

    def normalize(
        self, raw: Mapping[str, Union[str, List[str], None]]
    ) -> Tuple[BuildSelection, List[str]]:
        """Turn a caller selection into ``slug -> [part ids]``.

        Empty slots are dropped. Single-select slots are cut to their first
        part; the slugs that were cut are returned alongside.
        """
        selection: BuildSelection = {}
        overflowing: List[str] = []
        for slug, value in raw.items():
            part_ids = _as_list(value)
            if not part_ids:
                continue
            if len(part_ids) > 1 and not self.is_multi_select(slug):
                logger.warning("slot %s accepts one part, got %d; keeping the first", slug, len(part_ids))
                overflowing.append(slug)
                part_ids = part_ids[:1]
            selection[slug] = part_ids
        return selection, overflowing


def _as_list(value: Optional[Union[str, List[str]]]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [v for v in value if v and v.strip()]

"""Data 模块：目录快照与仓库 - catalog snapshot and repositories"""

from .repository import CatalogRepository, InMemoryCatalogRepository
from .snapshot import CatalogSnapshot

__all__ = [
    "CatalogSnapshot",
    "CatalogRepository",
    "InMemoryCatalogRepository",
]

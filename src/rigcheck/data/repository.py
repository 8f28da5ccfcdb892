"""Catalog repository: loads a consistent snapshot from a JSON document."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from ..errors import ConfigurationError
from .snapshot import CatalogSnapshot

logger = logging.getLogger(__name__)


class CatalogRepository:
    """Holds the latest catalog snapshot.

    The JSON document carries four lists: ``categories``, ``templates``,
    ``parts`` and ``rules``. Every call to :meth:`snapshot` returns the same
    immutable object until :meth:`reload` swaps in a new one, so a validation
    run never observes a half-applied edit.
    """

    def __init__(self, data_path: Path):
        self.data_path = data_path
        self._lock = threading.Lock()
        self._snapshot = CatalogSnapshot()
        self.reload()

    def reload(self) -> CatalogSnapshot:
        with self.data_path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        snapshot = self.parse(raw)
        with self._lock:
            self._snapshot = snapshot
        logger.info(
            "catalog loaded from %s: %d categories, %d templates, %d parts, %d rules",
            self.data_path,
            len(snapshot.categories),
            len(snapshot.templates),
            len(snapshot.parts),
            len(snapshot.rules),
        )
        return snapshot

    @staticmethod
    def parse(raw: dict) -> CatalogSnapshot:
        try:
            return CatalogSnapshot.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid catalog document: {exc}") from exc

    def snapshot(self) -> CatalogSnapshot:
        with self._lock:
            return self._snapshot


class InMemoryCatalogRepository:
    """Repository over an already-built snapshot; used by tests and embedders."""

    def __init__(self, snapshot: CatalogSnapshot):
        self._lock = threading.Lock()
        self._snapshot = snapshot

    def replace(self, snapshot: CatalogSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot

    def snapshot(self) -> CatalogSnapshot:
        with self._lock:
            return self._snapshot

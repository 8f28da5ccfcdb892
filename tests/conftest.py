import copy
import json
from pathlib import Path

import pytest

from rigcheck.data import CatalogSnapshot


ROOT = Path(__file__).resolve().parents[1]
CATALOG_PATH = ROOT / "data" / "catalog.json"

_DOCUMENT = json.loads(CATALOG_PATH.read_text(encoding="utf-8"))


@pytest.fixture
def catalog_doc():
    """A private copy of the sample catalog document; tests may edit it freely."""
    return copy.deepcopy(_DOCUMENT)


@pytest.fixture
def snapshot(catalog_doc):
    return CatalogSnapshot.model_validate(catalog_doc)

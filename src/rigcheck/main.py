from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .builder import EngineSettings, ProgressiveValidator
from .data import CatalogRepository
from .errors import ConfigurationError, NotFoundError
from .schemas import (
    ScheduledResponse,
    SelectionRequest,
    ValidateResponse,
    ValidationRunResponse,
)
from .service import ValidationService

ROOT = Path(__file__).resolve().parents[2]

load_dotenv(ROOT / ".env")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


CATALOG_PATH = Path(os.getenv("RIGCHECK_CATALOG_PATH", str(ROOT / "data" / "catalog.json")))
DEBOUNCE_MS = _env_int("RIGCHECK_DEBOUNCE_MS", 300)
PSU_HEADROOM = _env_float("RIGCHECK_PSU_HEADROOM", 1.25)
PSU_STEP_WATTS = _env_int("RIGCHECK_PSU_STEP_WATTS", 50)
SESSION_TTL_SECONDS = _env_int("RIGCHECK_SESSION_TTL_SECONDS", 3600)
LOG_LEVEL = os.getenv("RIGCHECK_LOG_LEVEL", "INFO").strip().upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _build_service(repository: CatalogRepository) -> ValidationService:
    settings = EngineSettings(psu_headroom=PSU_HEADROOM, psu_step_watts=PSU_STEP_WATTS)
    return ValidationService(
        repository,
        validator=ProgressiveValidator(settings),
        debounce_seconds=DEBOUNCE_MS / 1000.0,
        session_ttl_seconds=SESSION_TTL_SECONDS,
    )


repository = CatalogRepository(CATALOG_PATH)
service = _build_service(repository)

app = FastAPI(title="RigCheck")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/categories")
def list_categories():
    return [c.model_dump() for c in service.repository.snapshot().categories]


@app.get("/api/parts")
def list_parts(category: Optional[str] = None):
    snapshot = service.repository.snapshot()
    if category is None:
        return [p.model_dump() for p in snapshot.parts]
    try:
        selected = snapshot.category_by_slug(category)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"unknown category {category!r}") from None
    # a top-level slot also lists the parts of its subcategories
    ids = {selected.id} | {c.id for c in snapshot.categories if c.parent_id == selected.id}
    return [p.model_dump() for p in snapshot.parts if p.category_id in ids]


@app.get("/api/rules")
def list_rules():
    return [r.model_dump() for r in service.repository.snapshot().rules]


@app.post("/api/validate")
def validate(payload: SelectionRequest):
    result = service.validate_now(payload.selection)
    return ValidateResponse(result=result, breakdown=service.breakdown(result)).model_dump(mode="json")


@app.put("/api/builds/{session_id}/selection")
def submit_selection(session_id: str, payload: SelectionRequest):
    generation = service.submit(session_id, payload.selection)
    return ScheduledResponse(session_id=session_id, generation=generation).model_dump(mode="json")


@app.get("/api/builds/{session_id}/result")
def latest_result(session_id: str):
    run = service.latest(session_id)
    if run is None:
        raise HTTPException(status_code=404, detail="no validation result yet")
    return ValidationRunResponse(
        session_id=session_id,
        generation=run.generation,
        result=run.result,
        breakdown=service.breakdown(run.result),
    ).model_dump(mode="json")


@app.post("/api/catalog/reload")
def reload_catalog():
    reload = getattr(service.repository, "reload", None)
    if reload is None:
        raise HTTPException(status_code=409, detail="catalog source cannot be reloaded")
    try:
        snapshot = reload()
    except (OSError, ValueError, ConfigurationError) as exc:
        logger.error("catalog reload failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {
        "categories": len(snapshot.categories),
        "templates": len(snapshot.templates),
        "parts": len(snapshot.parts),
        "rules": len(snapshot.rules),
    }


@app.get("/api/stats")
def stats():
    return service.stats()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=os.getenv("RIGCHECK_HOST", "0.0.0.0"), port=_env_int("RIGCHECK_PORT", 8000))


if __name__ == "__main__":
    run()

"""World lifecycle endpoints: create, read, advance, export, delete."""

import logging

from fastapi import APIRouter, HTTPException

from realm_forge.errors import OracleUnavailable, TurnInProgress
from realm_forge.models import ThemeConfig
from realm_forge.runtime import get_runtime

from .deps import require_orchestrator
from .models import CreateWorld

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/world")
async def get_world():
    """Get the full current world bundle."""
    return require_orchestrator().bundle


@router.post("/world", status_code=201)
async def create_world(body: CreateWorld):
    """Generate a new world from a seed and theme, replacing the current one."""
    theme = ThemeConfig(**body.model_dump(exclude={"seed"}, exclude_none=True))
    try:
        bundle = await get_runtime().create(body.seed, theme)
    except OracleUnavailable as e:
        raise HTTPException(502, f"World generation failed: {e}") from e
    except TurnInProgress as e:
        raise HTTPException(409, str(e)) from e
    return bundle.meta


@router.post("/world/advance")
async def advance_world():
    """Simulate one epoch and return the turn report."""
    orchestrator = require_orchestrator()
    try:
        return await orchestrator.advance_time()
    except TurnInProgress as e:
        raise HTTPException(409, str(e)) from e


@router.get("/world/diffs")
async def list_diffs(limit: int = 10):
    """Most recent world diffs, newest last."""
    diffs = require_orchestrator().bundle.world_diffs
    return diffs[-limit:] if limit > 0 else []


@router.get("/world/events")
async def list_events(limit: int = 20):
    """Most recent event log entries, newest last."""
    events = require_orchestrator().bundle.world_state.event_log
    return events[-limit:] if limit > 0 else []


@router.get("/world/export")
async def export_world():
    """Write the bundle to the exports directory and return it."""
    orchestrator = require_orchestrator()
    path = get_runtime().storage.export_bundle(orchestrator.bundle)
    logger.info("Exported world to %s", path)
    return {"path": str(path), "bundle": orchestrator.bundle}


@router.delete("/world")
async def delete_world():
    """Delete the current world. Settings are kept."""
    try:
        deleted = get_runtime().reset()
    except TurnInProgress as e:
        raise HTTPException(409, str(e)) from e
    if not deleted:
        raise HTTPException(404, "No world has been created")
    return {"ok": True}

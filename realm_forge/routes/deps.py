"""Shared lookups that turn engine errors into HTTP errors."""

from fastapi import HTTPException

from realm_forge.errors import CorruptSave
from realm_forge.pipeline.orchestrator import TurnOrchestrator
from realm_forge.runtime import get_runtime


def require_orchestrator() -> TurnOrchestrator:
    try:
        orchestrator = get_runtime().orchestrator()
    except CorruptSave as e:
        raise HTTPException(422, str(e)) from e
    if orchestrator is None:
        raise HTTPException(404, "No world has been created")
    return orchestrator

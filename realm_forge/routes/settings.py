"""Health check and settings endpoints."""

from fastapi import APIRouter

from realm_forge.runtime import get_runtime

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get settings (LLM connection, simulation tunables, prompt overrides)."""
    return get_runtime().storage.get_config()


@router.patch("/settings")
async def update_settings(body: dict):
    """Update settings (partial merge)."""
    return get_runtime().update_config(body)

"""Tool Archive endpoints (read-only)."""

from fastapi import APIRouter, HTTPException

from realm_forge import tools as archive_ops

from .deps import require_orchestrator

router = APIRouter()


@router.get("/tools")
async def list_tools():
    """List shared tools with their cooldown status for the current epoch."""
    bundle = require_orchestrator().bundle
    epoch = bundle.world_state.time.epoch
    archive = bundle.tool_archive
    return [
        {
            **tool.model_dump(),
            "last_used_epoch": archive.usage.get(tool.id),
            "available": archive_ops.can_use(archive, tool.id, epoch),
        }
        for tool in archive.tools
    ]


@router.get("/tools/{tool_id}")
async def get_tool(tool_id: str):
    tool = archive_ops.get_tool(require_orchestrator().bundle.tool_archive, tool_id)
    if tool is None:
        raise HTTPException(404, "Tool not found")
    return tool

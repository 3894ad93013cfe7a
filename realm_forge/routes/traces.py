"""Decision trace endpoints (read-only audit trail)."""

from fastapi import APIRouter, HTTPException

from .deps import require_orchestrator

router = APIRouter()


@router.get("/traces")
async def list_traces(actor: str | None = None, epoch: int | None = None):
    """List decision traces, optionally filtered by actor or epoch."""
    traces = require_orchestrator().bundle.world_state.decision_traces
    return [
        t for t in traces
        if (actor is None or t.actor == actor) and (epoch is None or t.epoch == epoch)
    ]


@router.get("/traces/{trace_id}")
async def get_trace(trace_id: str):
    traces = require_orchestrator().bundle.world_state.decision_traces
    for trace in traces:
        if trace.decision_trace_id == trace_id:
            return trace
    raise HTTPException(404, "Trace not found")

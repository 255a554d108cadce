"""
Manual triggers for the scheduled sweeps.
"""
from fastapi import APIRouter

from app.core.deps import Runtime
from app.schemas.queue import AutoStopResponse, CompletionSweepResponse

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


@router.post("/completion-sweep", response_model=CompletionSweepResponse)
async def completion_sweep(runtime: Runtime):
    """Run the completion detector once."""
    return CompletionSweepResponse(**await runtime.detector.run_sweep())


@router.post("/auto-stop-paused", response_model=AutoStopResponse)
async def auto_stop_paused(runtime: Runtime):
    """Stop audits paused longer than the TTL."""
    return AutoStopResponse(**await runtime.manager.run_auto_stop_paused_sweep())

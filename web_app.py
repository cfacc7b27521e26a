from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import Field

from causetrace.config import logger
from causetrace.exceptions import PersistenceFailure
from causetrace.orchestrator import TraceOrchestrator
from causetrace.quick_trace import QuickTracer
from causetrace.schemas import PatientProfile, WireModel
from causetrace.storage import TraceStore, get_trace_store

app = FastAPI(title="CauseTrace")


class TraceRequest(WireModel):
    input_text: str = Field(default="", alias="inputText")  # Optional so a missing value is a 400, not a 422
    mode: Literal["deep", "quick"] = "deep"
    patient: Optional[PatientProfile] = None


def get_store() -> TraceStore:
    return get_trace_store()


def get_orchestrator(store: TraceStore = Depends(get_store)) -> TraceOrchestrator:
    # One orchestrator per request: traces never share pipeline state
    return TraceOrchestrator(store=store)


def get_quick_tracer() -> QuickTracer:
    return QuickTracer()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/trace")
async def trace(
    request: TraceRequest,
    orchestrator: TraceOrchestrator = Depends(get_orchestrator),
    quick_tracer: QuickTracer = Depends(get_quick_tracer),
) -> StreamingResponse:
    """Stream a trace as server-sent events, ending in one done or error event."""
    input_text = request.input_text.strip()
    if not input_text:
        raise HTTPException(status_code=400, detail="inputText is required")

    pipeline = quick_tracer if request.mode == "quick" else orchestrator
    logger.info(f"Starting {request.mode} trace ({len(input_text)} chars)")
    events = pipeline.stream(input_text, patient=request.patient)

    # A sync generator is iterated in the threadpool, one flush per event
    return StreamingResponse(
        (event.to_sse() for event in events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/traces")
async def list_traces(limit: int = Query(default=20, ge=1, le=100), store: TraceStore = Depends(get_store)):
    try:
        traces = await run_in_threadpool(store.recent, limit)
    except PersistenceFailure as exc:
        logger.error(f"Error reading trace history: {exc}")
        raise HTTPException(status_code=503, detail="Trace history unavailable") from exc
    return {"traces": traces}


@app.get("/traces/{trace_id}")
async def get_trace(trace_id: str, store: TraceStore = Depends(get_store)):
    try:
        trace = await run_in_threadpool(store.get, trace_id)
    except PersistenceFailure as exc:
        logger.error(f"Error reading trace {trace_id}: {exc}")
        raise HTTPException(status_code=503, detail="Trace history unavailable") from exc
    if trace is None:
        raise HTTPException(status_code=404, detail="Trace not found")
    return trace

"""
FastAPI Server for the Strategy Workflow Engine

Endpoints:
- POST /parse - Compile a strategy description into a workflow graph
- POST /execute - Execute a workflow (one-shot, or start a recurring run)
- POST /workflows/{workflow_id}/stop - Stop a recurring run
- GET /workflows - List active recurring runs
- GET /events - Server-sent event stream for one workflow id
- GET /env - Adapter credential presence
- GET /status - Health check
"""

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, List
from contextlib import asynccontextmanager
import asyncio
import json
import logging
import os

from ai_providers import get_provider
from event_bus import GLOBAL_CHANNEL, events_bus
from settings import EngineSettings, credentials_report
from workflow_compiler import WorkflowCompiler
from workflow_engine import ExecutionConfig, execute_workflow, scheduler
from workflow_graph import describe_workflow
from workflow_schema import WorkflowValidationError, parse_workflow
from workflow_types import Workflow, WorkflowEvent

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("server")

# ============================================================================
# CONFIGURATION
# ============================================================================

settings = EngineSettings.from_env()

HEARTBEAT_SECONDS = 5.0
STREAM_MAX_SECONDS = 300.0

ai_provider = None
if settings.ai_api_key:
    ai_provider = get_provider(
        api_key=settings.ai_api_key,
        model=settings.ai_model,
        provider=settings.ai_provider,
    )

workflow_compiler = WorkflowCompiler(ai_provider=ai_provider)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the active configuration and stop recurring runs on shutdown."""
    logger.info("Strategy Workflow Engine starting")
    logger.info("Default provider: %s", settings.default_provider)
    logger.info("Provider fallback: %s", settings.provider_fallback or "disabled")
    logger.info("Max recurring iterations: %d", settings.max_iterations)
    logger.info(
        "AI compiler: %s",
        f"{ai_provider.name} ({ai_provider.model})" if ai_provider else "disabled (local parser only)",
    )
    yield
    stopped = scheduler.stop_all("shutdown")
    if stopped:
        logger.info("Stopped %d recurring workflow(s) on shutdown", stopped)


app = FastAPI(
    title="Strategy Workflow Engine",
    description="Compile trading strategies from text and execute them",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# REQUEST / RESPONSE MODELS
# ============================================================================

class ParseRequest(BaseModel):
    """Request for workflow compilation"""
    prompt: str = Field(..., description="Trading strategy description")

    class Config:
        json_schema_extra = {
            "example": {
                "prompt": "Buy 10 ADA every 5 seconds and email me at trader@example.com"
            }
        }


class ParseResponse(BaseModel):
    workflow: Dict[str, Any]
    source: str
    summary: List[str]


class ExecuteRequest(BaseModel):
    """Request for workflow execution"""
    workflow: Dict[str, Any] = Field(..., description="Compiled workflow graph")
    provider: Optional[str] = Field(None, description="backpack | lighter | masumi | cardano")
    max_iterations: Optional[int] = Field(None, alias="maxIterations", gt=0)


class ExecuteResponse(BaseModel):
    ok: bool
    results: List[Dict[str, Any]]
    events: List[Dict[str, Any]]


class StopResponse(BaseModel):
    stopped: bool
    workflow_id: str


class StatusResponse(BaseModel):
    """Status check response"""
    status: str
    default_provider: str
    ai_compiler: Optional[str]
    max_iterations: int
    active_runs: int


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/status", response_model=StatusResponse)
async def status():
    """Health check endpoint"""
    return StatusResponse(
        status="running",
        default_provider=settings.default_provider,
        ai_compiler=ai_provider.name if ai_provider else None,
        max_iterations=settings.max_iterations,
        active_runs=len(scheduler.active_runs()),
    )


@app.post("/parse", response_model=ParseResponse)
async def parse_strategy(request: ParseRequest):
    """Compile a strategy description into a workflow graph."""
    if not request.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")

    compiled = await workflow_compiler.compile(request.prompt)
    workflow: Workflow = compiled["workflow"]
    logger.info("Compiled %s via %s compiler", workflow.id, compiled["source"])
    return ParseResponse(
        workflow=workflow.to_wire(),
        source=compiled["source"],
        summary=describe_workflow(workflow),
    )


@app.post("/execute", response_model=ExecuteResponse)
async def execute(request: ExecuteRequest):
    """
    Execute a workflow. One-shot workflows return one result per action;
    timer workflows return an acknowledgement and report through /events.
    """
    try:
        workflow: Workflow = parse_workflow(request.workflow)
    except WorkflowValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors)

    events: List[WorkflowEvent] = []
    results = await execute_workflow(
        workflow,
        ExecutionConfig(
            provider=request.provider,
            on_event=events.append,
            max_iterations=request.max_iterations,
            settings=settings,
        ),
    )
    return ExecuteResponse(
        ok=all(r.ok for r in results),
        results=[r.to_wire() for r in results],
        events=[e.to_wire() for e in events],
    )


@app.post("/workflows/{workflow_id}/stop", response_model=StopResponse)
async def stop_workflow(workflow_id: str):
    """Stop future firings of a recurring workflow."""
    return StopResponse(stopped=scheduler.stop(workflow_id), workflow_id=workflow_id)


@app.get("/workflows")
async def list_workflows():
    return {"active": scheduler.active_runs()}


@app.get("/env")
async def env_report():
    return {"ok": True, **credentials_report()}


def _sse(event: WorkflowEvent) -> str:
    return f"data: {json.dumps(event.to_wire())}\n\n"


@app.get("/events")
async def stream_events(workflow_id: str = Query(GLOBAL_CHANNEL, alias="workflowId")):
    """Server-sent events for one workflow id, with a periodic heartbeat."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def forward(event: WorkflowEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    async def stream():
        unsubscribe = events_bus.subscribe(workflow_id, forward)
        deadline = loop.time() + STREAM_MAX_SECONDS
        try:
            yield _sse(WorkflowEvent(type="hello", workflow_id=workflow_id))
            while loop.time() < deadline:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    event = WorkflowEvent(type="heartbeat", workflow_id=workflow_id)
                yield _sse(event)
        finally:
            unsubscribe()

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"},
    )


# ============================================================================
# STARTUP
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        reload=True
    )

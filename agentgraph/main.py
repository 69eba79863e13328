"""
AgentGraph - FastAPI Application Entry Point.

An async execution engine for agent workflow graphs.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from agentgraph.config import settings
from agentgraph.agents.registry import agent_registry
from agentgraph.api.routes import agents, runs, websocket, workflows
from agentgraph.runtime.runs import run_manager


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"{len(agent_registry)} agents registered")

    yield

    logger.info("Shutting down, stopping active runs...")
    await run_manager.shutdown()


app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Agent Workflow Engine API

Runs workflow graphs of typed nodes and keeps an inspectable run state.

### Node Types
- **start / end**: entry point and terminal of a workflow
- **agent**: calls a registered agent with the previous node's output
- **human-decision**: waits for an answer via `POST /runs/{run_id}/decision`
- **condition**: routes on the previous output (substring, regex, error marker)
- **parallel / merge**: fans out branches and joins them again
- **loop**: repeats its body up to `maxIterations` times
- **delay**: waits a fixed number of seconds

### Quick Start
1. List templates: `GET /workflows/templates`
2. Start a run: `POST /runs` with `{"template_id": "with-review"}`
3. Follow it: `GET /runs/{run_id}` or `WS /ws/runs/{run_id}`
4. Answer decisions: `POST /runs/{run_id}/decision`
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(workflows.router)
app.include_router(agents.router)
app.include_router(runs.router)
app.include_router(websocket.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "An async execution engine for agent workflow graphs",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "templates": "/workflows/templates",
            "agents": "/agents",
            "runs": "/runs",
            "websocket_run": "/ws/runs/{run_id}",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "agents_count": len(agent_registry),
        "runs_count": len(await run_manager.list_all()),
        "websocket_connections": len(websocket.manager),
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )

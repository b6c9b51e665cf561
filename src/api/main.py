"""Phaseflow API - workflow planning and execution service.

This API exposes the engine over HTTP:
- Workflow templates (list, inspect, instantiate)
- Plan validation (dependency graphs, execution order, critical path)
- Workflow execution (start, status, resume, adapt, step guidance)
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src import __version__
from src.api.routes import plans, templates, workflows
from src.executor.state_store import STATE_BACKEND, create_state_store
from src.executor.tools import InMemoryToolRegistry
from src.executor.workflow_runner import WorkflowRunner
from src.workflows.registry import get_template_registry

LOG_LEVEL = os.environ.get("PHASEFLOW_LOG_LEVEL", "INFO").upper()

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Loading workflow templates...")
    template_registry = get_template_registry()
    logger.info(f"Loaded {template_registry.count()} templates")

    if workflows._runner is None:
        logger.info(f"Initializing workflow runner ({STATE_BACKEND} state backend)...")
        workflows.init_runner(WorkflowRunner(InMemoryToolRegistry(), create_state_store()))

    logger.info("Phaseflow API ready")
    yield
    logger.info("Shutting down Phaseflow API")


app = FastAPI(
    title="Phaseflow API",
    description="""
## Task decomposition to execution

Phaseflow takes a planner's breakdown of work (steps grouped into phases,
gated by milestones), validates it, and runs it phase by phase.

### Key Endpoints

- `GET /v1/templates` - List workflow templates
- `POST /v1/templates/{key}/instantiate` - Build a plan from a template
- `POST /v1/plans/validate` - Validate a decomposition
- `POST /v1/workflows` - Start a workflow
- `GET /v1/workflows/{id}` - Workflow status and progress
- `POST /v1/workflows/{id}/resume` - Resume a suspended workflow
- `POST /v1/workflows/{id}/adapt` - Adapt a live plan
""",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers with /v1 prefix
app.include_router(templates.router, prefix="/v1")
app.include_router(plans.router, prefix="/v1")
app.include_router(workflows.router, prefix="/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Phaseflow API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "templates": "/v1/templates",
            "plans": "/v1/plans/validate",
            "workflows": "/v1/workflows",
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "templates_loaded": get_template_registry().count(),
        "runner_initialized": workflows._runner is not None,
        "state_backend": STATE_BACKEND,
    }

"""
Workflow API Routes.

Endpoints for browsing templates and checking or importing graphs.
Workflows are not stored: a run receives its graph directly.
"""

from fastapi import APIRouter, HTTPException
import logging

from agentgraph.api.schemas import (
    ErrorResponse,
    TemplateListResponse,
    TemplateSummary,
    ValidationResponse,
    WorkflowDetailResponse,
    WorkflowImportRequest,
)
from agentgraph.engine.errors import WorkflowImportError
from agentgraph.engine.graph import WorkflowGraph, import_workflow, validate_workflow
from agentgraph.workflows.templates import get_template, list_templates


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


def _detail(graph: WorkflowGraph) -> WorkflowDetailResponse:
    return WorkflowDetailResponse(
        workflow=graph.to_dict(),
        mermaid_diagram=graph.to_mermaid(),
        validation=ValidationResponse(**validate_workflow(graph).to_dict()),
    )


@router.get("/templates", response_model=TemplateListResponse)
async def get_templates() -> TemplateListResponse:
    """List the built-in workflow templates."""
    templates = [TemplateSummary(**t) for t in list_templates()]
    return TemplateListResponse(templates=templates, total=len(templates))


@router.get(
    "/templates/{template_id}",
    response_model=WorkflowDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_template_detail(template_id: str) -> WorkflowDetailResponse:
    """Get a template graph with its Mermaid diagram."""
    graph = get_template(template_id)
    if graph is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    return _detail(graph)


@router.post("/validate", response_model=ValidationResponse)
async def validate(workflow: WorkflowGraph) -> ValidationResponse:
    """
    Validate a workflow graph.

    Errors block a run from being useful (no start node, dangling edges,
    agent nodes without an agent); warnings are advisory.
    """
    return ValidationResponse(**validate_workflow(workflow).to_dict())


@router.post(
    "/import",
    response_model=WorkflowDetailResponse,
    responses={400: {"model": ErrorResponse}},
)
async def import_graph(request: WorkflowImportRequest) -> WorkflowDetailResponse:
    """Parse and validate a workflow exported as JSON."""
    try:
        graph = import_workflow(request.content)
    except WorkflowImportError as e:
        logger.info(f"Rejected workflow import: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return _detail(graph)

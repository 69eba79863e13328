"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation. Workflow graphs are
accepted and returned in their own wire format (camelCase keys).
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from agentgraph.engine.graph import DecisionOption, WorkflowGraph
from agentgraph.engine.state import ExecutionStatus


# ============================================================
# Workflow Schemas
# ============================================================

class TemplateSummary(BaseModel):
    """Short description of a workflow template."""
    id: str
    name: str
    description: str
    node_count: int


class TemplateListResponse(BaseModel):
    """Response listing all workflow templates."""
    templates: List[TemplateSummary]
    total: int


class ValidationResponse(BaseModel):
    """Result of validating a workflow graph."""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class WorkflowDetailResponse(BaseModel):
    """A workflow graph with its diagram and validation result."""
    workflow: Dict[str, Any] = Field(..., description="The graph in wire format")
    mermaid_diagram: str = Field(..., description="Mermaid diagram of the graph")
    validation: ValidationResponse


class WorkflowImportRequest(BaseModel):
    """Request to import a workflow exported as JSON."""
    content: str = Field(..., description="JSON text of the exported workflow")

    class Config:
        json_schema_extra = {
            "example": {
                "content": '{"name": "Tiny", "nodes": [...], "edges": [...]}'
            }
        }


# ============================================================
# Agent Schemas
# ============================================================

class AgentInfo(BaseModel):
    """Information about a registered agent."""
    id: str
    name: str
    description: str
    is_async: bool


class AgentListResponse(BaseModel):
    """Response listing all registered agents."""
    agents: List[AgentInfo]
    total: int


# ============================================================
# Run Schemas
# ============================================================

class RunCreateRequest(BaseModel):
    """Request to run a workflow: either a template id or an inline graph."""
    template_id: Optional[str] = Field(None, description="Id of a built-in template")
    workflow: Optional[WorkflowGraph] = Field(None, description="Inline workflow graph")

    class Config:
        json_schema_extra = {
            "example": {
                "template_id": "with-review",
            }
        }


class PendingDecisionInfo(BaseModel):
    """The question a run is waiting on."""
    node_id: str
    question: str
    options: List[DecisionOption]
    timeout_seconds: Optional[float] = None


class RunResponse(BaseModel):
    """Current state of a run."""
    run_id: str
    workflow_id: str
    workflow_name: str
    template_id: Optional[str]
    status: ExecutionStatus
    current_node_id: Optional[str]
    created_at: str
    state: Dict[str, Any]
    pending_decision: Optional[PendingDecisionInfo] = None

    class Config:
        json_schema_extra = {
            "example": {
                "run_id": "0b7e5f9e-7a53-4c1b-9f0e-2c4f0d9a1c11",
                "workflow_id": "workflow-3fa2b1c0",
                "workflow_name": "With Review Decision",
                "template_id": "with-review",
                "status": "waiting-human",
                "current_node_id": "decision",
                "created_at": "2024-01-01T12:00:00",
                "state": {"status": "waiting-human", "visited_nodes": ["start", "planner", "coder", "decision"]},
                "pending_decision": {
                    "node_id": "decision",
                    "question": "Should the generated code be reviewed?",
                    "options": [{"id": "yes", "label": "Yes, run a review"}],
                },
            }
        }


class RunListResponse(BaseModel):
    """Response listing runs."""
    runs: List[RunResponse]
    total: int


class ExecutionLogEntry(BaseModel):
    """A single node execution in the run log."""
    step: int
    node_id: str
    node_type: str
    label: str
    started_at: str
    completed_at: Optional[str]
    duration_ms: Optional[float]
    result: str
    error: Optional[str]
    route_taken: Optional[str]


class LogMessage(BaseModel):
    """A message the engine logged during the run."""
    level: str
    message: str
    timestamp: str


class RunLogResponse(BaseModel):
    """Execution log and messages of a run."""
    run_id: str
    steps: List[ExecutionLogEntry]
    messages: List[LogMessage]


class RunStatisticsResponse(BaseModel):
    """Aggregate statistics of a run."""
    run_id: str
    total_nodes: int
    executed_nodes: int
    successful_nodes: int
    failed_nodes: int
    pending_nodes: int
    total_duration_ms: float
    avg_node_duration_ms: float
    min_node_duration_ms: float
    max_node_duration_ms: float
    current_progress: float


class AgentPerformanceInfo(BaseModel):
    """Call counts and timings of one agent within a run."""
    agent_id: str
    execution_count: int
    success_count: int
    failure_count: int
    total_duration_ms: float
    avg_duration_ms: float
    success_rate: float
    last_execution: Optional[str] = None


class RunAgentsResponse(BaseModel):
    """Performance of every agent a run has called."""
    run_id: str
    agents: List[AgentPerformanceInfo]


class DecisionRequest(BaseModel):
    """Answer to a pending human decision."""
    option_id: str = Field(..., description="Id of the chosen option")

    class Config:
        json_schema_extra = {
            "example": {"option_id": "yes"}
        }


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

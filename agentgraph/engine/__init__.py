"""
Engine package - Graph model, execution state and the workflow engine.
"""

from agentgraph.engine.graph import (
    WorkflowGraph,
    NodeType,
    ConditionType,
    DecisionOption,
    Edge,
    ValidationResult,
    validate_workflow,
    export_workflow,
    import_workflow,
    clone_workflow,
)
from agentgraph.engine.state import ExecutionState, ExecutionStatus, ExecutionStep, StateSnapshot
from agentgraph.engine.events import WorkflowEvent, WorkflowEventType
from agentgraph.engine.engine import Engine, WorkflowStatistics, AgentPerformance
from agentgraph.engine.hooks import HookType, HookContext
from agentgraph.engine.errors import (
    WorkflowError,
    MissingAgentError,
    WorkflowImportError,
    RunNotFoundError,
    NoPendingDecisionError,
)

__all__ = [
    "WorkflowGraph",
    "NodeType",
    "ConditionType",
    "DecisionOption",
    "Edge",
    "ValidationResult",
    "validate_workflow",
    "export_workflow",
    "import_workflow",
    "clone_workflow",
    "ExecutionState",
    "ExecutionStatus",
    "ExecutionStep",
    "StateSnapshot",
    "WorkflowEvent",
    "WorkflowEventType",
    "Engine",
    "WorkflowStatistics",
    "AgentPerformance",
    "HookType",
    "HookContext",
    "WorkflowError",
    "MissingAgentError",
    "WorkflowImportError",
    "RunNotFoundError",
    "NoPendingDecisionError",
]

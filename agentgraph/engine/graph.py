"""
Graph Definition for the Workflow Engine.

A WorkflowGraph is the static, user-authored definition of a workflow:
typed nodes and the directed edges between them. The graph may contain
cycles (loop nodes and "fix" branches rely on them) and is never mutated
while a run is in progress.

Nodes are a tagged union selected by their ``type`` field, so every node
type carries exactly the payload it needs (an ``agent`` node has an
``agent_id``, a ``loop`` node has ``max_iterations`` and so on).
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import json
import re
import uuid

from pydantic import BaseModel, Field, ValidationError
from pydantic.alias_generators import to_camel

from agentgraph.config import settings
from agentgraph.engine.errors import WorkflowImportError


EXPORT_VERSION = "1.0"

# Graphs larger than this get a warning from validate_workflow
LARGE_GRAPH_NODE_COUNT = 15


class NodeType(str, Enum):
    """Types of nodes in a workflow graph."""
    START = "start"
    END = "end"
    AGENT = "agent"
    HUMAN_DECISION = "human-decision"
    CONDITION = "condition"
    PARALLEL = "parallel"
    MERGE = "merge"
    LOOP = "loop"
    DELAY = "delay"


class ConditionType(str, Enum):
    """Rules a condition node can apply to the upstream output."""
    OUTPUT_CONTAINS = "output-contains"
    OUTPUT_MATCHES = "output-matches"
    ERROR_OCCURRED = "error-occurred"


class GraphModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ============================================================
# Node payloads
# ============================================================

class Position(GraphModel):
    """Display position of a node. Irrelevant to execution."""
    x: float = 0
    y: float = 0


class NodeData(GraphModel):
    label: str = ""


class AgentData(NodeData):
    # Optional in the model so a half-authored node can still be loaded;
    # executing an agent node without it fails the run.
    agent_id: Optional[str] = None


class DecisionOption(GraphModel):
    """A choice offered by a human-decision node."""
    id: str
    label: str = ""
    description: Optional[str] = None
    next_node_id: Optional[str] = None


class HumanDecisionData(NodeData):
    question: str = ""
    options: List[DecisionOption] = Field(default_factory=list)
    timeout_seconds: Optional[float] = None


class Condition(GraphModel):
    """A single routing rule of a condition node."""
    id: Optional[str] = None
    type: ConditionType
    value: str = ""
    next_node_id: Optional[str] = None
    label: str = ""


class ConditionData(NodeData):
    conditions: List[Condition] = Field(default_factory=list)


class LoopData(NodeData):
    max_iterations: int = Field(
        default_factory=lambda: settings.DEFAULT_LOOP_MAX_ITERATIONS, ge=0
    )


class DelayData(NodeData):
    delay_seconds: float = Field(
        default_factory=lambda: settings.DEFAULT_DELAY_SECONDS, ge=0
    )


# ============================================================
# Nodes
# ============================================================

class BaseNode(GraphModel):
    id: str
    position: Position = Field(default_factory=Position)

    @property
    def label(self) -> str:
        """Display label, falling back to the node id."""
        return self.data.label or self.id


class StartNode(BaseNode):
    type: Literal["start"] = "start"
    data: NodeData = Field(default_factory=NodeData)


class EndNode(BaseNode):
    type: Literal["end"] = "end"
    data: NodeData = Field(default_factory=NodeData)


class AgentNode(BaseNode):
    type: Literal["agent"] = "agent"
    data: AgentData = Field(default_factory=AgentData)


class HumanDecisionNode(BaseNode):
    type: Literal["human-decision"] = "human-decision"
    data: HumanDecisionData = Field(default_factory=HumanDecisionData)


class ConditionNode(BaseNode):
    type: Literal["condition"] = "condition"
    data: ConditionData = Field(default_factory=ConditionData)


class ParallelNode(BaseNode):
    type: Literal["parallel"] = "parallel"
    data: NodeData = Field(default_factory=NodeData)


class MergeNode(BaseNode):
    type: Literal["merge"] = "merge"
    data: NodeData = Field(default_factory=NodeData)


class LoopNode(BaseNode):
    type: Literal["loop"] = "loop"
    data: LoopData = Field(default_factory=LoopData)


class DelayNode(BaseNode):
    type: Literal["delay"] = "delay"
    data: DelayData = Field(default_factory=DelayData)


Node = Annotated[
    Union[
        StartNode,
        EndNode,
        AgentNode,
        HumanDecisionNode,
        ConditionNode,
        ParallelNode,
        MergeNode,
        LoopNode,
        DelayNode,
    ],
    Field(discriminator="type"),
]


class Edge(GraphModel):
    """A directed connection between two nodes."""
    id: str
    source: str
    target: str
    label: Optional[str] = None


# ============================================================
# Graph
# ============================================================

class WorkflowGraph(GraphModel):
    """
    A workflow graph consisting of typed nodes and edges.

    Edge order matters: the first outgoing edge of a node is its default
    path, and the loop node exits through its second outgoing edge.

    Attributes:
        id: Unique identifier for this graph
        name: Human-readable name
        description: What the workflow does
        nodes: Nodes, unique by id
        edges: Edges in declaration order
        version: Definition version
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Unnamed Workflow"
    description: str = ""
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    version: int = 1
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def get_node(self, node_id: str) -> Optional[BaseNode]:
        """Get a node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def find_start_node(self) -> Optional[BaseNode]:
        """Get the first node of type start."""
        for node in self.nodes:
            if node.type == NodeType.START:
                return node
        return None

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        """Outgoing edges of a node, in declaration order."""
        return [e for e in self.edges if e.source == node_id]

    def incoming_edges(self, node_id: str) -> List[Edge]:
        """Incoming edges of a node, in declaration order."""
        return [e for e in self.edges if e.target == node_id]

    def reachable_from(self, node_id: str) -> List[str]:
        """Ids of all nodes reachable from the given node (breadth first)."""
        reachable: List[str] = []
        queue = [node_id]
        while queue:
            current = queue.pop(0)
            if current in reachable:
                continue
            reachable.append(current)
            queue.extend(e.target for e in self.outgoing_edges(current))
        return reachable

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph to a JSON-compatible dictionary."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the graph."""
        lines = ["graph TD"]

        for node in self.nodes:
            node_ref = _mermaid_id(node.id)
            label = node.label.replace('"', "'")
            if node.type in (NodeType.START, NodeType.END):
                lines.append(f'    {node_ref}(["{label}"])')
            elif node.type in (NodeType.CONDITION, NodeType.HUMAN_DECISION):
                lines.append(f'    {node_ref}{{"{label}"}}')
            else:
                lines.append(f'    {node_ref}["{label}"]')

        for edge in self.edges:
            source, target = _mermaid_id(edge.source), _mermaid_id(edge.target)
            if edge.label:
                lines.append(f"    {source} -->|{edge.label}| {target}")
            else:
                lines.append(f"    {source} --> {target}")

        return "\n".join(lines)


def _mermaid_id(node_id: str) -> str:
    return re.sub(r"[^0-9A-Za-z_]", "_", node_id)


# ============================================================
# Validation
# ============================================================

@dataclass
class ValidationResult:
    """Result of validating a workflow graph."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def validate_workflow(graph: WorkflowGraph) -> ValidationResult:
    """
    Validate the structure of a workflow graph.

    The engine does not call this: it fails at runtime on the first
    structural problem it meets. Hosts use it before saving or running.

    Args:
        graph: The graph to check

    Returns:
        ValidationResult with blocking errors and advisory warnings
    """
    errors: List[str] = []
    warnings: List[str] = []

    start_nodes = [n for n in graph.nodes if n.type == NodeType.START]
    if not start_nodes:
        errors.append("Workflow has no start node")
    elif len(start_nodes) > 1:
        errors.append("Workflow has multiple start nodes (only one is allowed)")

    if not any(n.type == NodeType.END for n in graph.nodes):
        errors.append("Workflow has no end node")

    seen = set()
    for node in graph.nodes:
        if node.id in seen:
            errors.append(f"Duplicate node id '{node.id}'")
        seen.add(node.id)

    if start_nodes:
        reachable = set(graph.reachable_from(start_nodes[0].id))
        unreachable = [n.label for n in graph.nodes if n.id not in reachable]
        if unreachable:
            warnings.append(f"Unreachable nodes: {', '.join(unreachable)}")

    for edge in graph.edges:
        if edge.source not in seen:
            errors.append(f"Edge '{edge.id}' has an invalid source: {edge.source}")
        if edge.target not in seen:
            errors.append(f"Edge '{edge.id}' has an invalid target: {edge.target}")

    for node in graph.nodes:
        if node.type == NodeType.AGENT and not node.data.agent_id:
            errors.append(f"Agent node '{node.label}' has no agent id")
        elif node.type == NodeType.HUMAN_DECISION:
            if not node.data.options:
                errors.append(f"Human decision '{node.label}' has no options")
            if not node.data.question:
                warnings.append(f"Human decision '{node.label}' has no question")
        elif node.type == NodeType.CONDITION and not node.data.conditions:
            errors.append(f"Condition node '{node.label}' has no conditions")

    if len(graph.nodes) > LARGE_GRAPH_NODE_COUNT:
        warnings.append(
            f"Workflow has many nodes (>{LARGE_GRAPH_NODE_COUNT}); "
            f"consider splitting it into smaller workflows"
        )

    if len(graph.description) < 10:
        warnings.append("Workflow should have a meaningful description")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


# ============================================================
# Import / Export
# ============================================================

def export_workflow(graph: WorkflowGraph) -> str:
    """Serialize a graph to pretty-printed JSON with export metadata."""
    payload = graph.to_dict()
    payload["exportedAt"] = datetime.now().isoformat()
    payload["exportVersion"] = EXPORT_VERSION
    return json.dumps(payload, indent=2)


def import_workflow(json_string: str) -> WorkflowGraph:
    """
    Parse a graph exported by export_workflow (or authored by hand).

    Missing ids, names and timestamps are filled in. The imported graph
    must pass validate_workflow.

    Raises:
        WorkflowImportError: If the JSON is malformed or the graph is invalid
    """
    try:
        parsed = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise WorkflowImportError(f"JSON parse error: {e}") from e

    if not isinstance(parsed, dict):
        raise WorkflowImportError("Invalid format: expected a JSON object")
    if not isinstance(parsed.get("nodes"), list):
        raise WorkflowImportError("Invalid format: 'nodes' is missing or not a list")
    if not isinstance(parsed.get("edges"), list):
        raise WorkflowImportError("Invalid format: 'edges' is missing or not a list")

    parsed.pop("exportedAt", None)
    parsed.pop("exportVersion", None)
    parsed.setdefault("id", f"imported-{uuid.uuid4().hex[:8]}")
    parsed.setdefault("name", "Imported Workflow")
    parsed["updatedAt"] = datetime.now().isoformat()

    try:
        graph = WorkflowGraph.model_validate(parsed)
    except ValidationError as e:
        raise WorkflowImportError(f"Invalid workflow definition: {e}") from e

    validation = validate_workflow(graph)
    if not validation.valid:
        raise WorkflowImportError(
            f"Validation failed: {', '.join(validation.errors)}"
        )
    return graph


def clone_workflow(graph: WorkflowGraph, new_name: Optional[str] = None) -> WorkflowGraph:
    """Deep-copy a graph under a fresh id."""
    now = datetime.now()
    return graph.model_copy(
        deep=True,
        update={
            "id": f"workflow-{uuid.uuid4().hex[:8]}",
            "name": new_name or f"{graph.name} (Copy)",
            "created_at": now,
            "updated_at": now,
        },
    )

"""
Execution State for the Workflow Engine.

ExecutionState is the mutable, observable record of a single run. The
engine mutates it in place and hands a deep copy to its observer after
every transition. Snapshots of it can be taken and restored to roll a run
back to an earlier point.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import uuid

from pydantic import BaseModel, Field

from agentgraph.engine.graph import DecisionOption


class ExecutionStatus(str, Enum):
    """Status of a workflow run."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    WAITING_HUMAN = "waiting-human"
    COMPLETED = "completed"
    ERROR = "error"


class AwaitKind(str, Enum):
    """What a run is suspended on."""
    AGENT = "agent"
    HUMAN = "human"
    DELAY = "delay"


class HumanDecisionPending(BaseModel):
    """The question a run is waiting on a human to answer."""
    node_id: str
    question: str
    options: List[DecisionOption] = Field(default_factory=list)
    timeout_at: Optional[datetime] = None


class Awaiting(BaseModel):
    """An in-flight suspension: which collaborator, at which node."""
    kind: AwaitKind
    node_id: str
    since: datetime = Field(default_factory=datetime.now)


class ExecutionState(BaseModel):
    """
    The record of one run of a workflow graph.

    Attributes:
        workflow_id: Id of the graph being run
        current_node_id: Node being executed (None when idle or finished)
        visited_nodes: Every node entered, in order; loops add repeats
        node_outputs: Latest output per node (agent result, chosen option id)
        loop_iterations: Number of times each loop node sent the run
            through its body
        status: Run status
        human_decision_pending: Set while status is waiting-human
        awaiting: Set while the run is suspended on a collaborator
        next_node_id: Node the run continues with after a pause
        error: Message of the error that ended the run
    """

    workflow_id: str
    current_node_id: Optional[str] = None
    visited_nodes: List[str] = Field(default_factory=list)
    node_outputs: Dict[str, str] = Field(default_factory=dict)
    loop_iterations: Dict[str, int] = Field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.IDLE
    human_decision_pending: Optional[HumanDecisionPending] = None
    awaiting: Optional[Awaiting] = None
    next_node_id: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        """Convert state to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")


@dataclass
class ExecutionStep:
    """A single node execution in the run log."""
    step: int
    node_id: str
    node_type: str
    label: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: str = "running"
    error: Optional[str] = None
    route_taken: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.result == "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "node_id": self.node_id,
            "node_type": self.node_type,
            "label": self.label,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
            "route_taken": self.route_taken,
        }


class StateSnapshot(BaseModel):
    """A copy of the execution state at a point in time."""
    id: str = Field(default_factory=lambda: f"snapshot-{uuid.uuid4().hex[:12]}")
    timestamp: datetime = Field(default_factory=datetime.now)
    workflow_id: str
    state: ExecutionState


class SnapshotHistory:
    """
    Bounded history of state snapshots for a run.

    Oldest snapshots are dropped once ``max_snapshots`` is exceeded.
    """

    def __init__(self, max_snapshots: int = 10):
        self.max_snapshots = max_snapshots
        self._snapshots: List[StateSnapshot] = []

    def record(self, state: ExecutionState) -> StateSnapshot:
        """Take a snapshot of the state and add it to the history."""
        snapshot = StateSnapshot(
            workflow_id=state.workflow_id,
            state=state.model_copy(deep=True),
        )
        self._snapshots.append(snapshot)
        if len(self._snapshots) > self.max_snapshots:
            self._snapshots.pop(0)
        return snapshot

    @property
    def latest(self) -> Optional[StateSnapshot]:
        return self._snapshots[-1] if self._snapshots else None

    def all(self) -> List[StateSnapshot]:
        return list(self._snapshots)

    def __len__(self) -> int:
        return len(self._snapshots)

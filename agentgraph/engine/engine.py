"""
Async Workflow Engine.

The engine walks a WorkflowGraph from its start node, dispatching every
node to the handler for its type, and drives the run to completion by
calling out to three collaborators:

- an agent invoker, which does the work of ``agent`` nodes
- a human-decision resolver, which answers ``human-decision`` nodes
- a logger, which receives leveled progress messages

After every state transition the engine hands a copy of its
ExecutionState to the state observer.

Usage:
    engine = Engine(
        graph,
        on_state_change=render,
        on_agent_execute=call_agent,
        on_human_decision=ask_user,
    )
    await engine.start()
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from dataclasses import dataclass
from datetime import datetime, timedelta
import asyncio
import functools
import inspect
import logging
import re

from agentgraph.config import settings
from agentgraph.engine.errors import MissingAgentError
from agentgraph.engine.events import EventBus, EventListener, WorkflowEvent, WorkflowEventType
from agentgraph.engine.hooks import Hook, HookContext, HookRegistry, HookType
from agentgraph.engine.graph import (
    BaseNode,
    Condition,
    ConditionType,
    DecisionOption,
    NodeType,
    WorkflowGraph,
)
from agentgraph.engine.state import (
    AwaitKind,
    Awaiting,
    ExecutionState,
    ExecutionStatus,
    ExecutionStep,
    HumanDecisionPending,
    SnapshotHistory,
    StateSnapshot,
)


logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# Markers of a failed upstream step for "error-occurred" conditions
ERROR_MARKERS = ("error", "fehler")

StateObserver = Callable[[ExecutionState], None]
AgentInvoker = Callable[[str, Optional[str]], Union[str, Awaitable[str]]]
DecisionResolver = Callable[[str, str, List[DecisionOption]], Union[str, Awaitable[str]]]
LogSink = Callable[[str, str], None]


@dataclass
class WorkflowStatistics:
    """Aggregate figures for a run, computed from the execution log."""
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

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_nodes": self.total_nodes,
            "executed_nodes": self.executed_nodes,
            "successful_nodes": self.successful_nodes,
            "failed_nodes": self.failed_nodes,
            "pending_nodes": self.pending_nodes,
            "total_duration_ms": self.total_duration_ms,
            "avg_node_duration_ms": self.avg_node_duration_ms,
            "min_node_duration_ms": self.min_node_duration_ms,
            "max_node_duration_ms": self.max_node_duration_ms,
            "current_progress": self.current_progress,
        }


@dataclass
class AgentPerformance:
    """Call counts and timings of one agent across the runs of an engine."""
    agent_id: str
    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: float = 0.0
    last_execution: Optional[datetime] = None

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.execution_count if self.execution_count else 0.0

    @property
    def success_rate(self) -> float:
        """Successful calls in percent."""
        return self.success_count / self.execution_count * 100 if self.execution_count else 0.0

    def record(self, duration_ms: float, success: bool) -> None:
        self.execution_count += 1
        self.total_duration_ms += duration_ms
        self.last_execution = datetime.now()
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "execution_count": self.execution_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_duration_ms": self.total_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
            "success_rate": self.success_rate,
            "last_execution": self.last_execution.isoformat() if self.last_execution else None,
        }


class Engine:
    """
    Workflow engine for a single run of a graph.

    One engine drives one run. All public methods must be called from the
    event loop the run executes on. Only one driver task is alive at a
    time: ``start``, ``jump_to_node`` and ``resume`` refuse to start a
    second one while the first is still running.

    Suspension points are the agent invoker, the human-decision resolver,
    the delay sleep, and the pause gate checked before every node.
    ``stop`` cancels whichever of them the run is suspended on.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        on_state_change: StateObserver,
        on_agent_execute: AgentInvoker,
        on_human_decision: DecisionResolver,
        on_log: Optional[LogSink] = None,
        concurrent_branches: Optional[bool] = None,
        max_snapshots: Optional[int] = None,
    ):
        """
        Initialize the engine.

        Args:
            graph: The workflow graph to run
            on_state_change: Receives a copy of the state after every transition
            on_agent_execute: Called as (agent_id, previous_output) -> result
            on_human_decision: Called as (node_id, question, options) -> option id
            on_log: Called as (message, level); defaults to this module's logger
            concurrent_branches: Run parallel branches concurrently
                (defaults to settings.CONCURRENT_BRANCHES)
            max_snapshots: Size of the automatic snapshot history
        """
        self.graph = graph
        self.on_state_change = on_state_change
        self.on_agent_execute = on_agent_execute
        self.on_human_decision = on_human_decision
        self.on_log = on_log
        self.concurrent_branches = (
            settings.CONCURRENT_BRANCHES if concurrent_branches is None else concurrent_branches
        )

        self.state = ExecutionState(workflow_id=graph.id)

        self._events = EventBus()
        self._hooks = HookRegistry()
        self._agent_performance: Dict[str, AgentPerformance] = {}
        self._snapshots = SnapshotHistory(max_snapshots or settings.MAX_SNAPSHOTS)
        self._execution_log: List[ExecutionStep] = []
        self._step_counter = 0
        self._task: Optional[asyncio.Task] = None
        self._resume_gate = asyncio.Event()
        self._resume_gate.set()
        self._decision_lock = asyncio.Lock()

        self._handlers = {
            NodeType.START: self._handle_start,
            NodeType.END: self._handle_end,
            NodeType.AGENT: self._handle_agent,
            NodeType.HUMAN_DECISION: self._handle_human_decision,
            NodeType.CONDITION: self._handle_condition,
            NodeType.PARALLEL: self._handle_parallel,
            NodeType.MERGE: self._handle_merge,
            NodeType.LOOP: self._handle_loop,
            NodeType.DELAY: self._handle_delay,
        }

    # ============================================================
    # Run control
    # ============================================================

    async def start(self) -> None:
        """
        Run the workflow from its start node until it finishes or is stopped.

        Any previous run state is discarded. Pauses and human decisions are
        waited out, so this returns only once the run is over.
        """
        if self.is_driving:
            self._log("Workflow is already running", "warn")
            return

        self.state = ExecutionState(workflow_id=self.graph.id)
        self._execution_log = []
        self._step_counter = 0

        self._log("Workflow started", "info")
        self._emit(WorkflowEventType.WORKFLOW_STARTED)

        start_node = self.graph.find_start_node()
        if start_node is None:
            self._set_error("No start node found")
            return

        self.state.status = ExecutionStatus.RUNNING
        self.state.current_node_id = start_node.id
        self.state.started_at = datetime.now()
        self._resume_gate.set()
        self._notify()
        self._snapshots.record(self.state)
        await self._run_hooks(HookType.BEFORE_WORKFLOW_START, start_node)

        await self._drive(start_node.id)

    def pause(self) -> None:
        """
        Pause a running workflow before its next node.

        The pause request is the closed resume gate, not the status: a
        branch that is waiting for a human when pause() is called shows
        ``waiting-human`` until the decision arrives and ``paused`` after.
        """
        if self.state.status == ExecutionStatus.WAITING_HUMAN:
            if self.pause_requested:
                return
        elif self.state.status == ExecutionStatus.RUNNING:
            self.state.status = ExecutionStatus.PAUSED
        else:
            return
        self._resume_gate.clear()
        self._notify()
        self._log("Workflow paused", "info")
        self._emit(WorkflowEventType.WORKFLOW_PAUSED, self._current_node())

    @property
    def pause_requested(self) -> bool:
        """Whether the run parks at its next node boundary."""
        return not self._resume_gate.is_set()

    def resume(self) -> None:
        """
        Resume a paused workflow.

        The run continues with the node it was about to enter when it
        parked; the node that was executing when pause() was called is not
        executed again. Without a live driver task (a state restored from
        a snapshot) a new one starts at ``next_node_id``, falling back to
        ``current_node_id`` when the snapshot does not record one.

        A pause request still pending behind a human decision is withdrawn
        as well.
        """
        if not self.state.current_node_id:
            return
        if self.state.status == ExecutionStatus.PAUSED:
            self.state.status = ExecutionStatus.RUNNING
        elif not (self.pause_requested and self.is_driving and not self._halted()):
            return
        self._notify()
        self._log("Workflow resumed", "info")
        self._emit(WorkflowEventType.WORKFLOW_RESUMED, self._current_node())

        self._resume_gate.set()
        if not self.is_driving:
            node_id = self.state.next_node_id or self.state.current_node_id
            self.state.next_node_id = None
            self._task = asyncio.get_running_loop().create_task(self._run_chain(node_id))

    def stop(self) -> None:
        """Reset the run to idle and cancel whatever it is waiting on."""
        self.state.status = ExecutionStatus.IDLE
        self.state.current_node_id = None
        self.state.human_decision_pending = None
        self.state.awaiting = None
        self.state.next_node_id = None
        for step in self._execution_log:
            if step.result == "running":
                step.result = "cancelled"
        self._resume_gate.set()
        self._notify()
        self._log("Workflow stopped", "info")
        self._emit(WorkflowEventType.WORKFLOW_STOPPED)

        if self.is_driving:
            self._task.cancel()

    async def join(self) -> None:
        """Wait for the active driver task, if any, to finish."""
        task = self._task
        if task is None:
            return
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not task.cancelled():
            task.result()

    async def jump_to_node(self, node_id: str) -> None:
        """Continue the run from an arbitrary node."""
        node = self.graph.get_node(node_id)
        if node is None:
            self._log(f"Node '{node_id}' not found", "error")
            return
        if self.is_driving:
            self._log("Workflow is already running", "warn")
            return

        self._log(f"Jumping to node: {node.label}", "info")
        self.state.status = ExecutionStatus.RUNNING
        self.state.current_node_id = node_id
        self.state.error = None
        self.state.completed_at = None
        self.state.human_decision_pending = None
        self.state.next_node_id = None
        self._resume_gate.set()
        self._notify()

        await self._drive(node_id)

    async def retry_node(self, node_id: str) -> None:
        """Forget a node's output and visits, then run again from it."""
        node = self.graph.get_node(node_id)
        if node is None:
            self._log(f"Node '{node_id}' not found", "error")
            return

        self.state.node_outputs.pop(node_id, None)
        self.state.visited_nodes = [n for n in self.state.visited_nodes if n != node_id]
        self._log(f"Retrying node: {node.label}", "info")
        await self.jump_to_node(node_id)

    def get_state(self) -> ExecutionState:
        """Get a copy of the current execution state."""
        return self.state.model_copy(deep=True)

    @property
    def is_driving(self) -> bool:
        """Whether a driver task is currently executing nodes."""
        return self._task is not None and not self._task.done()

    # ============================================================
    # Snapshots, events, statistics
    # ============================================================

    def on(self, event_type: str, listener: EventListener) -> Callable[[], None]:
        """Subscribe to a workflow event type (or "*"); returns an unsubscribe function."""
        return self._events.on(event_type, listener)

    def register_hook(self, hook_type: Union[HookType, str], hook: Hook) -> Callable[[], None]:
        """
        Register a hook that the run awaits at a fixed point.

        Args:
            hook_type: A HookType or its wire name, e.g. "beforeAgentCall"
            hook: Called with a HookContext; may be a coroutine function

        Returns:
            A function that unregisters the hook

        Raises:
            ValueError: If hook_type is unknown
        """
        return self._hooks.register(hook_type, hook)

    def get_agent_performance(
        self, agent_id: Optional[str] = None
    ) -> Union[Optional[AgentPerformance], List[AgentPerformance]]:
        """Performance of one agent, or of every agent called so far."""
        if agent_id is not None:
            return self._agent_performance.get(agent_id)
        return list(self._agent_performance.values())

    def create_snapshot(self) -> StateSnapshot:
        """Take a snapshot of the current state for a later rollback."""
        return StateSnapshot(workflow_id=self.graph.id, state=self.get_state())

    def restore_snapshot(self, snapshot: StateSnapshot) -> None:
        """Roll the state back to a snapshot of this workflow."""
        if snapshot.workflow_id != self.graph.id:
            self._log("Snapshot belongs to a different workflow", "error")
            return
        if self.is_driving:
            self._log("Cannot restore a snapshot while the workflow is running", "warn")
            return

        self.state = snapshot.state.model_copy(deep=True)
        self._notify()
        self._log(f"Rolled back to snapshot {snapshot.id}", "info")

    def get_snapshots(self) -> List[StateSnapshot]:
        """Snapshots recorded automatically during the run, oldest first."""
        return self._snapshots.all()

    def get_execution_log(self) -> List[ExecutionStep]:
        return list(self._execution_log)

    def get_statistics(self) -> WorkflowStatistics:
        """Compute run statistics from the execution log."""
        durations = [s.duration_ms for s in self._execution_log if s.duration_ms is not None]
        total_nodes = len(self.graph.nodes)
        distinct_visited = len(set(self.state.visited_nodes))
        total_duration = sum(durations)

        return WorkflowStatistics(
            total_nodes=total_nodes,
            executed_nodes=len(self.state.visited_nodes),
            successful_nodes=sum(1 for s in self._execution_log if s.result == "success"),
            failed_nodes=sum(1 for s in self._execution_log if s.result == "error"),
            pending_nodes=max(0, total_nodes - distinct_visited),
            total_duration_ms=total_duration,
            avg_node_duration_ms=total_duration / len(durations) if durations else 0.0,
            min_node_duration_ms=min(durations) if durations else 0.0,
            max_node_duration_ms=max(durations) if durations else 0.0,
            current_progress=distinct_visited / total_nodes * 100 if total_nodes else 0.0,
        )

    # ============================================================
    # Dispatch
    # ============================================================

    async def _drive(self, node_id: str) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run_chain(node_id))
        await self.join()

    async def _run_chain(self, node_id: Optional[str], branch: bool = False) -> Optional[str]:
        """
        Execute nodes from node_id, following the edge each handler picks.

        A parallel branch (``branch=True``) stops in front of the first
        merge or end node it reaches and returns that node's id, so the
        parallel node can join its branches there.
        """
        last_node_id = None
        while node_id is not None:
            if self._halted():
                return None
            if branch and self._is_join_point(node_id):
                return node_id
            await self._wait_if_paused(node_id)
            if self._halted():
                return None
            last_node_id = node_id
            node_id = await self.execute_node(node_id)

        if not branch and last_node_id is not None and self.state.status in (
            ExecutionStatus.RUNNING, ExecutionStatus.PAUSED
        ):
            await self._complete_without_end(last_node_id)
        return None

    async def execute_node(self, node_id: str) -> Optional[str]:
        """
        Execute a single node.

        Returns:
            The id of the node to execute next, or None when this branch
            of the run is over (end node, error, or no outgoing edge)
        """
        node = self.graph.get_node(node_id)
        if node is None:
            self._set_error(f"Node '{node_id}' not found")
            return None

        self._log(f"Executing node: {node.label} ({node.type})", "info")
        self.state.visited_nodes.append(node_id)
        self.state.current_node_id = node_id
        self._notify()
        self._emit(WorkflowEventType.NODE_STARTED, node, {"node_type": node.type})

        step = self._begin_step(node)
        await self._run_hooks(HookType.BEFORE_NODE_EXECUTE, node)
        handler = self._handlers[NodeType(node.type)]
        try:
            next_node_id = await handler(node)
        except Exception as e:
            self._finish_step(step, "error", error=str(e))
            self._emit(WorkflowEventType.NODE_FAILED, node, {"error": str(e)})
            self._set_error(f"Error at node {node.label}: {e}")
            await self._run_hooks(HookType.ON_ERROR, node, error=e)
            return None

        self._finish_step(step, "success", route_taken=next_node_id)
        self._emit(WorkflowEventType.NODE_COMPLETED, node, {"next_node_id": next_node_id})
        await self._run_hooks(
            HookType.AFTER_NODE_EXECUTE, node,
            output=self.state.node_outputs.get(node.id),
            duration_ms=step.duration_ms,
        )
        return next_node_id

    def get_next_node(self, node_id: str) -> Optional[str]:
        """Target of the node's first outgoing edge (its default path)."""
        edges = self.graph.outgoing_edges(node_id)
        return edges[0].target if edges else None

    def get_previous_output(self, node_id: str) -> Optional[str]:
        """Output of the source of the node's first incoming edge."""
        edges = self.graph.incoming_edges(node_id)
        if not edges:
            return None
        return self.state.node_outputs.get(edges[0].source)

    # ============================================================
    # Node handlers
    # ============================================================

    async def _handle_start(self, node: BaseNode) -> Optional[str]:
        return self.get_next_node(node.id)

    async def _handle_end(self, node: BaseNode) -> Optional[str]:
        self.state.status = ExecutionStatus.COMPLETED
        self.state.current_node_id = None
        self.state.completed_at = datetime.now()
        self._resume_gate.set()
        self._notify()
        self._log("Workflow completed", "info")
        self._emit(WorkflowEventType.WORKFLOW_COMPLETED, node)
        self._snapshots.record(self.state)
        await self._run_hooks(HookType.AFTER_WORKFLOW_COMPLETE, node)
        return None

    async def _handle_agent(self, node: BaseNode) -> Optional[str]:
        agent_id = node.data.agent_id
        if not agent_id:
            raise MissingAgentError(f"Agent node '{node.id}' has no agent id")

        previous_output = self.get_previous_output(node.id)
        self._emit(WorkflowEventType.AGENT_STARTED, node, {"agent_id": agent_id})
        await self._run_hooks(HookType.BEFORE_AGENT_CALL, node, agent_id=agent_id, input=previous_output)
        started = datetime.now()

        performance = self._agent_performance.setdefault(agent_id, AgentPerformance(agent_id=agent_id))
        self._set_awaiting(AwaitKind.AGENT, node.id)
        try:
            output = await _call(self.on_agent_execute, agent_id, previous_output)
            if not isinstance(output, str):
                raise ValueError(
                    f"Agent '{agent_id}' must return a str, got {type(output).__name__}"
                )
        except Exception:
            performance.record(_elapsed_ms(started), success=False)
            raise
        finally:
            self.state.awaiting = None

        duration_ms = _elapsed_ms(started)
        performance.record(duration_ms, success=True)
        self.state.node_outputs[node.id] = output
        self._notify()
        self._log(f"Agent {agent_id} finished in {duration_ms:.0f}ms", "info")
        self._emit(
            WorkflowEventType.AGENT_COMPLETED, node,
            {"agent_id": agent_id, "duration_ms": duration_ms},
        )
        self._snapshots.record(self.state)
        await self._run_hooks(
            HookType.AFTER_AGENT_CALL, node,
            agent_id=agent_id, input=previous_output, output=output, duration_ms=duration_ms,
        )
        return self.get_next_node(node.id)

    async def _handle_human_decision(self, node: BaseNode) -> Optional[str]:
        data = node.data
        options = list(data.options)

        # Only one decision can be pending at a time, even across parallel branches
        async with self._decision_lock:
            # Another branch may have ended the run while this one queued
            if self._halted():
                return None

            timeout_at = None
            if data.timeout_seconds:
                timeout_at = datetime.now() + timedelta(seconds=data.timeout_seconds)

            self.state.status = ExecutionStatus.WAITING_HUMAN
            self.state.human_decision_pending = HumanDecisionPending(
                node_id=node.id,
                question=data.question,
                options=options,
                timeout_at=timeout_at,
            )
            self._set_awaiting(AwaitKind.HUMAN, node.id)
            self._log(f"Waiting for human decision: {data.question}", "info")
            self._emit(WorkflowEventType.HUMAN_WAITING, node, {"question": data.question})

            try:
                option_id = await _call(self.on_human_decision, node.id, data.question, options)
            finally:
                self.state.awaiting = None

            self.state.human_decision_pending = None
            if self._halted():
                self._log(f"Discarding decision for {node.label}, the run has ended", "debug")
                return None

            option_id = str(option_id)
            selected = next((o for o in options if o.id == option_id), None)
            if selected is None:
                self._log(f"Unknown option '{option_id}' for {node.label}, taking default path", "warn")
            if selected is not None and selected.next_node_id:
                next_node_id = selected.next_node_id
            else:
                next_node_id = self.get_next_node(node.id)

            self.state.node_outputs[node.id] = option_id
            if self.state.status == ExecutionStatus.WAITING_HUMAN:
                # A pause requested meanwhile takes effect now
                self.state.status = (
                    ExecutionStatus.PAUSED if self.pause_requested else ExecutionStatus.RUNNING
                )
            self._notify()
            self._emit(WorkflowEventType.HUMAN_DECIDED, node, {"option_id": option_id})

        return next_node_id

    async def _handle_condition(self, node: BaseNode) -> Optional[str]:
        output = self.get_previous_output(node.id)
        if not output:
            return self.get_next_node(node.id)

        for condition in node.data.conditions:
            if self._condition_matches(condition, output):
                self._log(
                    f"Condition met: {condition.label or condition.id or condition.type.value}",
                    "debug",
                )
                return condition.next_node_id or self.get_next_node(node.id)

        return self.get_next_node(node.id)

    def _condition_matches(self, condition: Condition, output: str) -> bool:
        output_lower = output.lower()

        if condition.type == ConditionType.OUTPUT_CONTAINS:
            return bool(condition.value) and condition.value.lower() in output_lower

        if condition.type == ConditionType.OUTPUT_MATCHES:
            try:
                return re.search(condition.value, output, re.IGNORECASE) is not None
            except re.error as e:
                self._log(f"Invalid condition pattern '{condition.value}': {e}", "warn")
                return False

        if condition.type == ConditionType.ERROR_OCCURRED:
            return any(marker in output_lower for marker in ERROR_MARKERS)

        return False

    async def _handle_parallel(self, node: BaseNode) -> Optional[str]:
        targets = [e.target for e in self.graph.outgoing_edges(node.id)]
        if not targets:
            return None

        self._log(f"Starting {len(targets)} parallel branches from {node.label}", "info")
        if self.concurrent_branches:
            reached = await asyncio.gather(
                *(self._run_chain(target, branch=True) for target in targets)
            )
        else:
            reached = []
            for target in targets:
                reached.append(await self._run_chain(target, branch=True))
                if self._halted():
                    break

        if self._halted():
            return None

        join_node_id = self._select_join(list(reached))
        if join_node_id is None:
            return None

        # The join node runs once, for all branches
        await self._wait_if_paused(join_node_id)
        if self._halted():
            return None
        return await self.execute_node(join_node_id)

    def _select_join(self, reached: List[Optional[str]]) -> Optional[str]:
        stops = [node_id for node_id in reached if node_id is not None]
        merges = [n for n in stops if self.graph.get_node(n).type == NodeType.MERGE]
        if merges:
            if len(set(merges)) > 1:
                self._log(f"Branches reached different merge nodes {merges}, joining at {merges[0]}", "warn")
            return merges[0]
        return stops[0] if stops else None

    async def _handle_merge(self, node: BaseNode) -> Optional[str]:
        return self.get_next_node(node.id)

    async def _handle_loop(self, node: BaseNode) -> Optional[str]:
        iterations = self.state.loop_iterations.get(node.id, 0)
        max_iterations = node.data.max_iterations

        if iterations < max_iterations:
            self.state.loop_iterations[node.id] = iterations + 1
            self._log(f"Loop {node.label}: iteration {iterations + 1}/{max_iterations}", "debug")
            return self.get_next_node(node.id)

        self._log(f"Loop {node.label} exhausted after {iterations} iterations", "info")
        edges = self.graph.outgoing_edges(node.id)
        return edges[1].target if len(edges) > 1 else self.get_next_node(node.id)

    async def _handle_delay(self, node: BaseNode) -> Optional[str]:
        delay_seconds = node.data.delay_seconds
        self._log(f"Waiting {delay_seconds} seconds...", "info")

        self._set_awaiting(AwaitKind.DELAY, node.id)
        try:
            await asyncio.sleep(delay_seconds)
        finally:
            self.state.awaiting = None
        return self.get_next_node(node.id)

    # ============================================================
    # Internals
    # ============================================================

    def _halted(self) -> bool:
        return self.state.status in (
            ExecutionStatus.ERROR,
            ExecutionStatus.COMPLETED,
            ExecutionStatus.IDLE,
        )

    def _is_join_point(self, node_id: str) -> bool:
        node = self.graph.get_node(node_id)
        return node is not None and node.type in (NodeType.MERGE, NodeType.END)

    async def _wait_if_paused(self, node_id: str) -> None:
        if self._resume_gate.is_set():
            return
        self.state.next_node_id = node_id
        self._notify()
        self._log(f"Paused before node {node_id}", "debug")
        await self._resume_gate.wait()
        self.state.next_node_id = None

    async def _complete_without_end(self, last_node_id: str) -> None:
        node = self.graph.get_node(last_node_id)
        self._log(f"No next node after {node.label if node else last_node_id}", "warn")
        self.state.status = ExecutionStatus.COMPLETED
        self.state.current_node_id = None
        self.state.completed_at = datetime.now()
        self._resume_gate.set()
        self._notify()
        self._emit(WorkflowEventType.WORKFLOW_COMPLETED, node)
        self._snapshots.record(self.state)
        await self._run_hooks(HookType.AFTER_WORKFLOW_COMPLETE, node)

    def _set_error(self, message: str) -> None:
        self.state.status = ExecutionStatus.ERROR
        self.state.error = message
        self.state.awaiting = None
        # Release branches parked at the pause gate so they can see the error
        self._resume_gate.set()
        self._notify()
        self._log(message, "error")
        self._emit(WorkflowEventType.WORKFLOW_ERROR, data={"error": message})

    def _set_awaiting(self, kind: AwaitKind, node_id: str) -> None:
        self.state.awaiting = Awaiting(kind=kind, node_id=node_id)
        self._notify()

    def _current_node(self) -> Optional[BaseNode]:
        if self.state.current_node_id is None:
            return None
        return self.graph.get_node(self.state.current_node_id)

    def _begin_step(self, node: BaseNode) -> ExecutionStep:
        self._step_counter += 1
        step = ExecutionStep(
            step=self._step_counter,
            node_id=node.id,
            node_type=node.type,
            label=node.label,
            started_at=datetime.now(),
        )
        self._execution_log.append(step)
        return step

    def _finish_step(
        self,
        step: ExecutionStep,
        result: str,
        error: Optional[str] = None,
        route_taken: Optional[str] = None,
    ) -> None:
        step.completed_at = datetime.now()
        step.duration_ms = (step.completed_at - step.started_at).total_seconds() * 1000
        step.result = result
        step.error = error
        step.route_taken = route_taken

    def _notify(self) -> None:
        try:
            self.on_state_change(self.get_state())
        except Exception as e:
            logger.warning(f"State observer failed: {e}")

    def _log(self, message: str, level: str) -> None:
        if self.on_log is not None:
            self.on_log(message, level)
        else:
            logger.log(LOG_LEVELS.get(level, logging.INFO), message)

    async def _run_hooks(
        self,
        hook_type: HookType,
        node: Optional[BaseNode] = None,
        **fields: Any,
    ) -> None:
        if not self._hooks.has(hook_type):
            return
        context = HookContext(
            hook_type=hook_type,
            state=self.get_state(),
            node_id=node.id if node else None,
            node_name=node.label if node else None,
            **fields,
        )
        await self._hooks.run(
            context,
            on_failure=lambda t, e: self._log(f"Hook {t.value} failed: {e}", "warn"),
        )

    def _emit(
        self,
        event_type: WorkflowEventType,
        node: Optional[BaseNode] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._events.emit(WorkflowEvent(
            type=event_type,
            workflow_id=self.graph.id,
            node_id=node.id if node else None,
            node_name=node.label if node else None,
            data=data or {},
        ))


def _elapsed_ms(started: datetime) -> float:
    return (datetime.now() - started).total_seconds() * 1000


async def _call(func: Callable, *args: Any) -> Any:
    """
    Call a collaborator that may be sync or async.

    Sync callables run in the default executor so they cannot block the
    event loop.
    """
    if asyncio.iscoroutinefunction(func):
        result = await func(*args)
    else:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, functools.partial(func, *args))
    if inspect.isawaitable(result):
        result = await result
    return result

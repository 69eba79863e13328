"""
Run Manager.

Owns the engines of all runs started through the API. Each run gets its
own Engine wired to the agent registry (agent invoker), the decision
broker (human-decision resolver) and per-run subscriber queues (state
observer), and executes as a background task on the server's event loop.

Runs are kept in memory; a database could replace the dict without
changing the interface.
"""

from typing import Any, Dict, List, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4
import asyncio
import logging

from agentgraph.agents.registry import AgentRegistry, agent_registry
from agentgraph.engine.engine import Engine, LOG_LEVELS
from agentgraph.engine.errors import RunNotFoundError
from agentgraph.engine.graph import DecisionOption, WorkflowGraph
from agentgraph.engine.state import ExecutionState
from agentgraph.runtime.decisions import DecisionBroker


logger = logging.getLogger(__name__)


@dataclass
class LogEntry:
    """A message the engine logged for a run."""
    level: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Run:
    """A workflow run and the engine driving it."""
    run_id: str
    workflow: WorkflowGraph
    engine: Engine
    template_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    task: Optional[asyncio.Task] = None
    messages: List[LogEntry] = field(default_factory=list)
    subscribers: Set[asyncio.Queue] = field(default_factory=set)

    @property
    def state(self) -> ExecutionState:
        return self.engine.get_state()

    def subscribe(self) -> asyncio.Queue:
        """Get a queue receiving every state change of the run."""
        queue: asyncio.Queue = asyncio.Queue()
        self.subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self.subscribers.discard(queue)

    def to_dict(self) -> Dict[str, Any]:
        state = self.state
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow.id,
            "workflow_name": self.workflow.name,
            "template_id": self.template_id,
            "status": state.status.value,
            "current_node_id": state.current_node_id,
            "created_at": self.created_at.isoformat(),
            "state": state.to_dict(),
        }


class RunManager:
    """
    In-memory registry of runs.

    Usage:
        run = await run_manager.create(graph)
        ...
        await run_manager.decide(run.run_id, "yes")
    """

    def __init__(
        self,
        registry: Optional[AgentRegistry] = None,
        broker: Optional[DecisionBroker] = None,
    ):
        self.registry = registry or agent_registry
        self.broker = broker or DecisionBroker()
        self._runs: Dict[str, Run] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        workflow: WorkflowGraph,
        template_id: Optional[str] = None,
        auto_start: bool = True,
    ) -> Run:
        """
        Create a run of a workflow.

        Args:
            workflow: Graph to run
            template_id: Template the graph was created from, if any
            auto_start: Start executing immediately in the background

        Returns:
            The new run
        """
        run_id = str(uuid4())
        run = Run(
            run_id=run_id,
            workflow=workflow,
            engine=None,
            template_id=template_id,
        )
        run.engine = self._build_engine(run)

        async with self._lock:
            self._runs[run_id] = run

        logger.info(f"Created run {run_id} of workflow '{workflow.name}'")
        if auto_start:
            await self.start(run_id)
        return run

    async def start(self, run_id: str) -> Run:
        """Start a run in the background."""
        run = await self.get(run_id)
        if run.task is not None and not run.task.done():
            logger.warning(f"Run {run_id} is already started")
            return run
        run.task = asyncio.create_task(self._execute(run))
        return run

    async def get(self, run_id: str) -> Run:
        """
        Get a run by id.

        Raises:
            RunNotFoundError: If the run does not exist
        """
        async with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def list_all(self) -> List[Run]:
        async with self._lock:
            return list(self._runs.values())

    async def pause(self, run_id: str) -> Run:
        run = await self.get(run_id)
        run.engine.pause()
        return run

    async def resume(self, run_id: str) -> Run:
        run = await self.get(run_id)
        run.engine.resume()
        return run

    async def stop(self, run_id: str) -> Run:
        run = await self.get(run_id)
        run.engine.stop()
        return run

    async def decide(self, run_id: str, option_id: str) -> Run:
        """
        Answer the pending human decision of a run.

        Raises:
            RunNotFoundError: If the run does not exist
            NoPendingDecisionError: If the run is not waiting for a decision
            ValueError: If the option is not offered
        """
        run = await self.get(run_id)
        self.broker.submit(run_id, option_id)
        return run

    async def shutdown(self) -> None:
        """Stop every run still executing on the current event loop."""
        loop = asyncio.get_running_loop()
        for run in await self.list_all():
            if run.task is None or run.task.done() or run.task.get_loop() is not loop:
                continue
            run.engine.stop()
            await asyncio.gather(run.task, return_exceptions=True)

    # ============================================================
    # Engine wiring
    # ============================================================

    def _build_engine(self, run: Run) -> Engine:
        async def resolve_decision(node_id: str, question: str, options: List[DecisionOption]) -> str:
            node = run.workflow.get_node(node_id)
            return await self.broker.request(
                run.run_id,
                node_id,
                question,
                options,
                timeout_seconds=node.data.timeout_seconds if node else None,
            )

        def on_state_change(state: ExecutionState) -> None:
            message = {"type": "state", "run_id": run.run_id, "state": state.to_dict()}
            for queue in list(run.subscribers):
                queue.put_nowait(message)

        def on_log(message: str, level: str) -> None:
            run.messages.append(LogEntry(level=level, message=message))
            logger.log(LOG_LEVELS.get(level, logging.INFO), f"[{run.run_id[:8]}] {message}")

        return Engine(
            run.workflow,
            on_state_change=on_state_change,
            on_agent_execute=self.registry.invoke,
            on_human_decision=resolve_decision,
            on_log=on_log,
        )

    async def _execute(self, run: Run) -> None:
        try:
            await run.engine.start()
        except asyncio.CancelledError:
            logger.info(f"Run {run.run_id} cancelled")
            raise
        except Exception as e:
            logger.exception(f"Run {run.run_id} crashed: {e}")


# Global run manager instance
run_manager = RunManager()

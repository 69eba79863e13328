"""
Decision Broker.

Bridges human-decision nodes to an outside answer. The engine awaits
``request``; an API call (or any other host code) answers it with
``submit``. Each run has at most one pending decision.
"""

from typing import Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
import asyncio
import logging

from agentgraph.config import settings
from agentgraph.engine.errors import NoPendingDecisionError, WorkflowError
from agentgraph.engine.graph import DecisionOption


logger = logging.getLogger(__name__)


@dataclass
class PendingDecision:
    """A question waiting for an answer."""
    run_id: str
    node_id: str
    question: str
    options: List[DecisionOption]
    future: asyncio.Future
    timeout_seconds: Optional[float] = None
    requested_at: datetime = field(default_factory=datetime.now)

    def option_ids(self) -> List[str]:
        return [option.id for option in self.options]


class DecisionBroker:
    """
    Pending human decisions, keyed by run id.

    Usage:
        option_id = await broker.request(run_id, node_id, question, options)

        # elsewhere
        broker.submit(run_id, "approve")
    """

    def __init__(self):
        self._pending: Dict[str, PendingDecision] = {}

    async def request(
        self,
        run_id: str,
        node_id: str,
        question: str,
        options: List[DecisionOption],
        timeout_seconds: Optional[float] = None,
    ) -> str:
        """
        Wait for the decision of a run.

        When ``timeout_seconds`` elapses first, the first option is chosen
        if ``settings.DECISION_TIMEOUT_FALLBACK`` is enabled; otherwise the
        wait fails.

        Returns:
            The id of the chosen option

        Raises:
            WorkflowError: If the decision timed out without a fallback
        """
        future = asyncio.get_running_loop().create_future()
        self._pending[run_id] = PendingDecision(
            run_id=run_id,
            node_id=node_id,
            question=question,
            options=list(options),
            future=future,
            timeout_seconds=timeout_seconds,
        )
        logger.info(f"Run {run_id} waiting for decision at {node_id}")

        try:
            if not timeout_seconds:
                return await future
            try:
                return await asyncio.wait_for(future, timeout_seconds)
            except asyncio.TimeoutError:
                if settings.DECISION_TIMEOUT_FALLBACK and options:
                    logger.warning(
                        f"Decision at {node_id} timed out after {timeout_seconds}s, "
                        f"choosing '{options[0].id}'"
                    )
                    return options[0].id
                raise WorkflowError(f"Decision timed out after {timeout_seconds}s")
        finally:
            self._pending.pop(run_id, None)

    def submit(self, run_id: str, option_id: str) -> PendingDecision:
        """
        Answer the pending decision of a run.

        Raises:
            NoPendingDecisionError: If the run is not waiting for a decision
            ValueError: If option_id is not one of the offered options
        """
        pending = self._pending.get(run_id)
        if pending is None or pending.future.done():
            raise NoPendingDecisionError(f"Run '{run_id}' is not waiting for a decision")
        if option_id not in pending.option_ids():
            raise ValueError(
                f"Unknown option '{option_id}', expected one of {pending.option_ids()}"
            )

        pending.future.set_result(option_id)
        logger.info(f"Run {run_id} decided '{option_id}' at {pending.node_id}")
        return pending

    def get_pending(self, run_id: str) -> Optional[PendingDecision]:
        return self._pending.get(run_id)

    def has_pending(self, run_id: str) -> bool:
        return run_id in self._pending

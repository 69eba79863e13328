"""
Workflow events.

The engine emits a WorkflowEvent at every notable point of a run. Hosts
subscribe to a single event type or to all of them with ``"*"``.
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging


logger = logging.getLogger(__name__)


class WorkflowEventType(str, Enum):
    WORKFLOW_STARTED = "workflow:started"
    WORKFLOW_COMPLETED = "workflow:completed"
    WORKFLOW_ERROR = "workflow:error"
    WORKFLOW_PAUSED = "workflow:paused"
    WORKFLOW_RESUMED = "workflow:resumed"
    WORKFLOW_STOPPED = "workflow:stopped"
    NODE_STARTED = "node:started"
    NODE_COMPLETED = "node:completed"
    NODE_FAILED = "node:failed"
    AGENT_STARTED = "agent:started"
    AGENT_COMPLETED = "agent:completed"
    HUMAN_WAITING = "human:waiting"
    HUMAN_DECIDED = "human:decided"


WILDCARD = "*"


@dataclass
class WorkflowEvent:
    type: WorkflowEventType
    workflow_id: str
    node_id: Optional[str] = None
    node_name: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "workflow_id": self.workflow_id,
            "node_id": self.node_id,
            "node_name": self.node_name,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


EventListener = Callable[[WorkflowEvent], None]


class EventBus:
    """Listener registry keyed by event type."""

    def __init__(self):
        self._listeners: Dict[str, List[EventListener]] = {}

    def on(self, event_type: str, listener: EventListener) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            event_type: A WorkflowEventType value, or "*" for all events

        Returns:
            A function that unregisters the listener
        """
        key = WorkflowEventType(event_type).value if event_type != WILDCARD else WILDCARD
        self._listeners.setdefault(key, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, event: WorkflowEvent) -> None:
        """Deliver an event to its specific listeners, then to wildcard ones."""
        listeners = self._listeners.get(event.type.value, []) + self._listeners.get(WILDCARD, [])
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener failed for {event.type.value}: {e}")

"""
WebSocket Routes for Real-time Run Streaming.

Streams every state change of a run to connected clients.
"""

from typing import Any, Dict, Set
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging

from agentgraph.engine.errors import RunNotFoundError
from agentgraph.engine.state import ExecutionStatus
from agentgraph.runtime.runs import run_manager


logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


class ConnectionManager:
    """Manages WebSocket connections per run."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, run_id: str):
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.setdefault(run_id, set()).add(websocket)
        logger.info(f"WebSocket connected for run: {run_id}")

    def disconnect(self, websocket: WebSocket, run_id: str):
        """Remove a WebSocket connection."""
        if run_id in self.active_connections:
            self.active_connections[run_id].discard(websocket)
            if not self.active_connections[run_id]:
                del self.active_connections[run_id]
        logger.info(f"WebSocket disconnected for run: {run_id}")

    def __len__(self) -> int:
        return sum(len(connections) for connections in self.active_connections.values())


# Global connection manager
manager = ConnectionManager()


def _is_final(state: Dict[str, Any]) -> bool:
    status = state["status"]
    if status in (ExecutionStatus.COMPLETED.value, ExecutionStatus.ERROR.value):
        return True
    # Idle after having started means the run was stopped
    return status == ExecutionStatus.IDLE.value and state.get("started_at") is not None


@router.websocket("/ws/runs/{run_id}")
async def websocket_run(websocket: WebSocket, run_id: str):
    """
    Subscribe to the state changes of a run.

    The current state is sent right away, then one message per change
    until the run completes, fails or is stopped.

    Message format (server -> client):
    ```json
    {"type": "state", "run_id": "...", "state": {...}}
    ```
    """
    try:
        run = await run_manager.get(run_id)
    except RunNotFoundError:
        await websocket.close(code=4004, reason=f"Run '{run_id}' not found")
        return

    await manager.connect(websocket, run_id)
    queue = run.subscribe()

    try:
        state = run.state.to_dict()
        await websocket.send_json({"type": "state", "run_id": run_id, "state": state})

        while not _is_final(state):
            message = await queue.get()
            state = message["state"]
            await websocket.send_json(message)

        await websocket.send_json({
            "type": "finished",
            "run_id": run_id,
            "status": state["status"],
            "error": state.get("error"),
        })
    except WebSocketDisconnect:
        logger.info(f"Subscriber disconnected from run {run_id}")
    finally:
        run.unsubscribe(queue)
        manager.disconnect(websocket, run_id)

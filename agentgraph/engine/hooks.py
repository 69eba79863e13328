"""
Workflow hooks.

Hooks are awaited at fixed points of a run, unlike event listeners,
which are fire-and-forget. A hook may be a plain function or a coroutine
function; it receives a HookContext. A failing hook is logged and the run
goes on.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from dataclasses import dataclass
from enum import Enum
import inspect

from agentgraph.engine.state import ExecutionState


class HookType(str, Enum):
    BEFORE_WORKFLOW_START = "beforeWorkflowStart"
    AFTER_WORKFLOW_COMPLETE = "afterWorkflowComplete"
    BEFORE_NODE_EXECUTE = "beforeNodeExecute"
    AFTER_NODE_EXECUTE = "afterNodeExecute"
    BEFORE_AGENT_CALL = "beforeAgentCall"
    AFTER_AGENT_CALL = "afterAgentCall"
    ON_ERROR = "onError"


@dataclass
class HookContext:
    """What a hook gets to see. ``state`` is a copy of the run state."""
    hook_type: HookType
    state: ExecutionState
    node_id: Optional[str] = None
    node_name: Optional[str] = None
    agent_id: Optional[str] = None
    input: Optional[str] = None
    output: Optional[str] = None
    error: Optional[BaseException] = None
    duration_ms: Optional[float] = None


Hook = Callable[[HookContext], Union[None, Awaitable[None]]]


class HookRegistry:
    """Hooks per hook type, run in registration order."""

    def __init__(self):
        self._hooks: Dict[HookType, List[Hook]] = {}

    def register(self, hook_type: Union[HookType, str], hook: Hook) -> Callable[[], None]:
        """
        Register a hook.

        Returns:
            A function that unregisters the hook

        Raises:
            ValueError: If hook_type is not a known hook type
        """
        key = HookType(hook_type)
        self._hooks.setdefault(key, []).append(hook)

        def unregister() -> None:
            hooks = self._hooks.get(key, [])
            if hook in hooks:
                hooks.remove(hook)

        return unregister

    def has(self, hook_type: HookType) -> bool:
        return bool(self._hooks.get(hook_type))

    async def run(
        self,
        context: HookContext,
        on_failure: Callable[[HookType, Exception], Any],
    ) -> None:
        """Await every hook registered for the context's hook type."""
        for hook in list(self._hooks.get(context.hook_type, [])):
            try:
                result = hook(context)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                on_failure(context.hook_type, e)

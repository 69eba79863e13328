"""
Agent Registry for the Workflow Engine.

The agent registry maps the ``agent_id`` of agent nodes to callables that
do the node's work. It is the host-side agent invoker: its ``invoke``
method has exactly the signature the engine expects for
``on_agent_execute``.

Agents are plain functions taking the previous node's output (or None)
and returning a string. They may be sync or async.
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
import asyncio
import functools
import inspect
import logging

from agentgraph.config import settings
from agentgraph.engine.errors import MissingAgentError


logger = logging.getLogger(__name__)


@dataclass
class Agent:
    """
    A registered agent.

    Attributes:
        id: Identifier referenced by agent nodes
        func: Callable taking the previous output and returning a string
        name: Human-readable name
        description: What the agent does
    """
    id: str
    func: Callable
    name: str = ""
    description: str = ""

    @property
    def is_async(self) -> bool:
        return asyncio.iscoroutinefunction(self.func)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize agent metadata."""
        return {
            "id": self.id,
            "name": self.name or self.id,
            "description": self.description,
            "is_async": self.is_async,
        }


class AgentRegistry:
    """
    Registry of workflow agents.

    Usage:
        registry = AgentRegistry()

        @registry.register("summarizer")
        def summarize(previous_output):
            return (previous_output or "")[:100]

        engine = Engine(graph, observer, registry.invoke, resolver)
    """

    def __init__(self):
        self._agents: Dict[str, Agent] = {}

    def register(
        self,
        agent_id: Optional[str] = None,
        name: str = "",
        description: str = "",
    ) -> Callable:
        """
        Decorator to register a function as an agent.

        Args:
            agent_id: Agent id (defaults to function name)
            name: Display name (defaults to the id, capitalized)
            description: Agent description (defaults to docstring)
        """
        def decorator(func: Callable) -> Callable:
            self.add(func, agent_id, name, description)
            return func

        return decorator

    def add(
        self,
        func: Callable,
        agent_id: Optional[str] = None,
        name: str = "",
        description: str = "",
    ) -> Agent:
        """Directly add a function as an agent (non-decorator version)."""
        agent_id = agent_id or func.__name__
        agent = Agent(
            id=agent_id,
            func=func,
            name=name or agent_id.capitalize(),
            description=(description or inspect.getdoc(func) or "").strip(),
        )
        self._agents[agent_id] = agent
        logger.debug(f"Registered agent: {agent_id}")
        return agent

    def get(self, agent_id: str) -> Optional[Agent]:
        """Get an agent by id."""
        return self._agents.get(agent_id)

    def remove(self, agent_id: str) -> bool:
        """Remove an agent from the registry."""
        if agent_id in self._agents:
            del self._agents[agent_id]
            return True
        return False

    async def invoke(self, agent_id: str, previous_output: Optional[str]) -> str:
        """
        Run an agent on the previous node's output.

        Sync agents run in the default executor. When
        ``settings.AGENT_LATENCY_SECONDS`` is set, every call is delayed by
        that much to simulate a remote model.

        Raises:
            MissingAgentError: If no agent is registered under agent_id
        """
        agent = self.get(agent_id)
        if agent is None:
            raise MissingAgentError(f"Agent '{agent_id}' is not registered", agent_id=agent_id)

        if settings.AGENT_LATENCY_SECONDS > 0:
            await asyncio.sleep(settings.AGENT_LATENCY_SECONDS)

        logger.debug(f"Invoking agent: {agent_id}")
        if agent.is_async:
            return await agent.func(previous_output)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(agent.func, previous_output))

    def list_agents(self) -> List[Dict[str, Any]]:
        """List all registered agents with their metadata."""
        return [agent.to_dict() for agent in self._agents.values()]

    def has(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def __contains__(self, agent_id: str) -> bool:
        return self.has(agent_id)

    def __len__(self) -> int:
        return len(self._agents)


# Global agent registry instance
agent_registry = AgentRegistry()


def register_agent(
    agent_id: Optional[str] = None,
    name: str = "",
    description: str = "",
) -> Callable:
    """
    Convenience decorator to register an agent in the global registry.

    Usage:
        @register_agent("translator", description="Translates text")
        def translate(previous_output):
            ...
    """
    return agent_registry.register(agent_id, name, description)

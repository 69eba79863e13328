"""
Agents package - Agent registry and built-in agents.
"""

from agentgraph.agents.registry import AgentRegistry, agent_registry, register_agent

# Importing registers the built-in agents in the global registry
from agentgraph.agents import builtin  # noqa: F401

__all__ = [
    "AgentRegistry",
    "agent_registry",
    "register_agent",
]

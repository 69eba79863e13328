"""
AgentGraph - An async execution engine for agent workflow graphs.

Walks a graph of typed nodes (agents, human decisions, conditions, loops,
parallel branches, delays) and keeps an inspectable, resumable run state.
"""

__version__ = "1.0.0"

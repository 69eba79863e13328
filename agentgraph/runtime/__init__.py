"""
Runtime package - Runs and human decisions behind the HTTP API.
"""

from agentgraph.runtime.decisions import DecisionBroker, PendingDecision
from agentgraph.runtime.runs import Run, RunManager, run_manager

__all__ = [
    "DecisionBroker",
    "PendingDecision",
    "Run",
    "RunManager",
    "run_manager",
]

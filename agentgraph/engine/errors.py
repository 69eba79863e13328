"""
Exceptions raised by the workflow engine and its host runtime.
"""


class WorkflowError(Exception):
    """Base class for all workflow errors."""


class MissingAgentError(WorkflowError):
    """An agent node has no agent id, or the agent is not registered."""

    def __init__(self, message: str, agent_id: str = ""):
        super().__init__(message)
        self.agent_id = agent_id


class WorkflowImportError(WorkflowError):
    """A serialized workflow could not be parsed or failed validation."""


class RunNotFoundError(WorkflowError):
    """No run with the given id is known to the run manager."""

    def __init__(self, run_id: str):
        super().__init__(f"Run '{run_id}' not found")
        self.run_id = run_id


class NoPendingDecisionError(WorkflowError):
    """A decision was submitted for a run that is not waiting for one."""

"""
Workflows package - Built-in workflow templates.
"""

from agentgraph.workflows.templates import (
    WORKFLOW_TEMPLATES,
    list_templates,
    get_template,
    create_from_template,
)

__all__ = [
    "WORKFLOW_TEMPLATES",
    "list_templates",
    "get_template",
    "create_from_template",
]

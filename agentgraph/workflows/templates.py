"""
Workflow Templates.

Ready-made graphs for the built-in agents (planner, coder, reviewer,
security, documenter). They double as the canonical fixtures of the test
suite:

1. simple-linear  - Planner -> Coder -> End
2. with-review    - adds a human decision whether to review the code
3. full-pipeline  - review/security choice with a "fix" cycle back to the coder
4. auto-fix       - condition node routes failed reviews to a bounded fix loop
5. review-loop    - parallel branches joined at a merge, repeated by a loop
                    node with a short delay between rounds
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from agentgraph.engine.graph import WorkflowGraph, clone_workflow


logger = logging.getLogger(__name__)


def _edges(*pairs: tuple) -> List[Dict[str, Any]]:
    """Build edges from (source, target[, label]) tuples, numbered e1, e2, ..."""
    edges = []
    for i, pair in enumerate(pairs, start=1):
        edge = {"id": f"e{i}", "source": pair[0], "target": pair[1]}
        if len(pair) > 2:
            edge["label"] = pair[2]
        edges.append(edge)
    return edges


def _agent(node_id: str, label: str, agent_id: str, x: float, y: float = 200) -> Dict[str, Any]:
    return {
        "id": node_id,
        "type": "agent",
        "position": {"x": x, "y": y},
        "data": {"label": label, "agent_id": agent_id},
    }


def _start(x: float = 50) -> Dict[str, Any]:
    return {"id": "start", "type": "start", "position": {"x": x, "y": 200}, "data": {"label": "Start"}}


def _end(x: float) -> Dict[str, Any]:
    return {"id": "end", "type": "end", "position": {"x": x, "y": 200}, "data": {"label": "End"}}


# ============================================================
# Templates
# ============================================================

def simple_linear() -> WorkflowGraph:
    return WorkflowGraph.model_validate({
        "id": "template-simple",
        "name": "Simple Workflow",
        "description": "Linear workflow: Planner -> Coder -> End",
        "nodes": [
            _start(100),
            _agent("planner", "Planner", "planner", 300),
            _agent("coder", "Coder", "coder", 500),
            _end(700),
        ],
        "edges": _edges(("start", "planner"), ("planner", "coder"), ("coder", "end")),
    })


def with_review() -> WorkflowGraph:
    return WorkflowGraph.model_validate({
        "id": "template-review",
        "name": "With Review Decision",
        "description": "Workflow with an optional, human-approved review step",
        "nodes": [
            _start(),
            _agent("planner", "Planner", "planner", 200),
            _agent("coder", "Coder", "coder", 400),
            {
                "id": "decision",
                "type": "human-decision",
                "position": {"x": 600, "y": 200},
                "data": {
                    "label": "Review needed?",
                    "question": "Should the generated code be reviewed?",
                    "options": [
                        {"id": "yes", "label": "Yes, run a review", "next_node_id": "reviewer"},
                        {"id": "no", "label": "No, finish now", "next_node_id": "end"},
                    ],
                },
            },
            _agent("reviewer", "Reviewer", "reviewer", 800, 100),
            _end(900),
        ],
        "edges": _edges(
            ("start", "planner"),
            ("planner", "coder"),
            ("coder", "decision"),
            ("decision", "reviewer", "Yes"),
            ("decision", "end", "No"),
            ("reviewer", "end"),
        ),
    })


def full_pipeline() -> WorkflowGraph:
    return WorkflowGraph.model_validate({
        "id": "template-full",
        "name": "Full Pipeline",
        "description": "Planner -> Coder -> review decision -> security check, with a fix cycle",
        "nodes": [
            _start(),
            _agent("planner", "Planner", "planner", 200),
            _agent("coder", "Coder", "coder", 400),
            {
                "id": "review-decision",
                "type": "human-decision",
                "position": {"x": 600, "y": 200},
                "data": {
                    "label": "Quality check?",
                    "question": "Which quality checks should run?",
                    "options": [
                        {"id": "both", "label": "Review + Security", "next_node_id": "reviewer"},
                        {"id": "review-only", "label": "Review only", "next_node_id": "reviewer"},
                        {"id": "security-only", "label": "Security only", "next_node_id": "security"},
                        {"id": "none", "label": "No checks", "next_node_id": "end"},
                    ],
                },
            },
            _agent("reviewer", "Reviewer", "reviewer", 800, 100),
            _agent("security", "Security", "security", 800, 300),
            {
                "id": "fix-decision",
                "type": "human-decision",
                "position": {"x": 1000, "y": 200},
                "data": {
                    "label": "Fixes needed?",
                    "question": "Should the reported issues be fixed?",
                    "options": [
                        {"id": "fix", "label": "Yes, fix them", "next_node_id": "coder"},
                        {"id": "accept", "label": "Accept", "next_node_id": "end"},
                    ],
                },
            },
            _end(1200),
        ],
        "edges": _edges(
            ("start", "planner"),
            ("planner", "coder"),
            ("coder", "review-decision"),
            ("review-decision", "reviewer", "Review"),
            ("review-decision", "security", "Security"),
            ("review-decision", "end", "None"),
            ("reviewer", "fix-decision"),
            ("security", "fix-decision"),
            ("fix-decision", "coder", "Fix"),
            ("fix-decision", "end", "OK"),
        ),
    })


def auto_fix() -> WorkflowGraph:
    return WorkflowGraph.model_validate({
        "id": "template-autofix",
        "name": "Auto-Fix Pipeline",
        "description": "Automatic development with review and up to two fix rounds for rejected code",
        "nodes": [
            _start(),
            _agent("planner", "Planner", "planner", 200),
            _agent("coder", "Coder", "coder", 400),
            _agent("reviewer", "Reviewer", "reviewer", 600),
            {
                "id": "quality-check",
                "type": "condition",
                "position": {"x": 800, "y": 200},
                "data": {
                    "label": "Quality OK?",
                    "conditions": [
                        {
                            "id": "changes-requested",
                            "type": "output-contains",
                            "value": "changes requested",
                            "next_node_id": "fix-attempts",
                            "label": "Issues",
                        },
                        {
                            "id": "approved",
                            "type": "output-matches",
                            "value": r"^REVIEW: approved",
                            "next_node_id": "security",
                            "label": "OK",
                        },
                    ],
                },
            },
            {
                "id": "fix-attempts",
                "type": "loop",
                "position": {"x": 800, "y": 50},
                "data": {"label": "Fix attempts left?", "max_iterations": 2},
            },
            _agent("fix-coder", "Fix-Coder", "coder", 1000, 50),
            _agent("security", "Security", "security", 1000),
            _end(1200),
        ],
        "edges": _edges(
            ("start", "planner"),
            ("planner", "coder"),
            ("coder", "reviewer"),
            ("reviewer", "quality-check"),
            ("quality-check", "security", "OK"),
            ("quality-check", "fix-attempts", "Issues"),
            ("fix-attempts", "fix-coder", "Retry"),
            ("fix-attempts", "security", "Give up"),
            ("fix-coder", "reviewer"),
            ("security", "end"),
        ),
    })


def review_loop() -> WorkflowGraph:
    return WorkflowGraph.model_validate({
        "id": "template-review-loop",
        "name": "Review Loop",
        "description": "Code and docs in parallel, repeated for a fixed number of rounds",
        "nodes": [
            _start(),
            _agent("planner", "Planner", "planner", 200),
            {"id": "fan-out", "type": "parallel", "position": {"x": 350, "y": 200}, "data": {"label": "Fan out"}},
            _agent("coder", "Coder", "coder", 500, 100),
            _agent("documenter", "Documenter", "documenter", 500, 300),
            {"id": "join", "type": "merge", "position": {"x": 650, "y": 200}, "data": {"label": "Join"}},
            {
                "id": "rounds",
                "type": "loop",
                "position": {"x": 800, "y": 200},
                "data": {"label": "Another round?", "max_iterations": 2},
            },
            {
                "id": "cooldown",
                "type": "delay",
                "position": {"x": 800, "y": 50},
                "data": {"label": "Cooldown", "delay_seconds": 0.1},
            },
            _end(1000),
        ],
        "edges": _edges(
            ("start", "planner"),
            ("planner", "fan-out"),
            ("fan-out", "coder"),
            ("fan-out", "documenter"),
            ("coder", "join"),
            ("documenter", "join"),
            ("join", "rounds"),
            ("rounds", "cooldown", "Again"),
            ("rounds", "end", "Done"),
            ("cooldown", "planner"),
        ),
    })


WORKFLOW_TEMPLATES: Dict[str, Callable[[], WorkflowGraph]] = {
    "simple-linear": simple_linear,
    "with-review": with_review,
    "full-pipeline": full_pipeline,
    "auto-fix": auto_fix,
    "review-loop": review_loop,
}


def list_templates() -> List[Dict[str, Any]]:
    """Summaries of all templates."""
    summaries = []
    for template_id, factory in WORKFLOW_TEMPLATES.items():
        graph = factory()
        summaries.append({
            "id": template_id,
            "name": graph.name,
            "description": graph.description,
            "node_count": len(graph.nodes),
        })
    return summaries


def get_template(template_id: str) -> Optional[WorkflowGraph]:
    """Get a fresh copy of a template graph, or None if unknown."""
    factory = WORKFLOW_TEMPLATES.get(template_id)
    return factory() if factory else None


def create_from_template(template_id: str, name: Optional[str] = None) -> Optional[WorkflowGraph]:
    """
    Create a new workflow from a template.

    The result gets its own id so runs of it never share the template's.
    """
    template = get_template(template_id)
    if template is None:
        logger.warning(f"Unknown template: {template_id}")
        return None
    return clone_workflow(template, name or template.name)

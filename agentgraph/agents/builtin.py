"""
Built-in Agents.

Deterministic stand-ins for the model-backed agents referenced by the
workflow templates. They let every template run end to end without a
network connection:

- planner:    turns a task description into a numbered plan
- coder:      writes a Python draft for the plan (or a fixed version of it)
- reviewer:   static review of Python code using the ast module
- security:   pattern scan for dangerous calls and hardcoded secrets
- documenter: Markdown API notes for the functions in the code
"""

from typing import Any, Dict, List, Optional
import ast
import re

from agentgraph.agents.registry import register_agent


DEFAULT_TASK = "Implement the requested feature"

REVIEW_APPROVED = "REVIEW: approved"
REVIEW_CHANGES_REQUESTED = "REVIEW: changes requested"

DRAFT_CODE = '''def solve(items):
    # TODO: handle empty input
    result = []
    for item in items:
        result.append(item)
    print(result)
    return result
'''

FIXED_CODE = '''import logging

logger = logging.getLogger(__name__)


def solve(items):
    """Return the given items as a list."""
    if not items:
        return []
    result = list(items)
    logger.debug("solved %d items", len(result))
    return result
'''

SECURITY_PATTERNS = {
    "eval_call": (r"\beval\s*\(", "Use of eval()"),
    "exec_call": (r"\bexec\s*\(", "Use of exec()"),
    "shell_true": (r"shell\s*=\s*True", "Subprocess call with shell=True"),
    "pickle_load": (r"\bpickle\.loads?\s*\(", "Unpickling untrusted data"),
    "hardcoded_secret": (
        r"(?i)\b(password|secret|api_key|token)\s*=\s*['\"][^'\"]+['\"]",
        "Hardcoded credential",
    ),
}


# ============================================================
# Analysis helpers
# ============================================================

def extract_functions(code: str) -> List[Dict[str, Any]]:
    """
    Extract function definitions from Python code.

    Raises:
        SyntaxError: If the code cannot be parsed
    """
    functions = []
    for node in ast.walk(ast.parse(code)):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            functions.append({
                "name": node.name,
                "lineno": node.lineno,
                "args": [arg.arg for arg in node.args.args],
                "docstring": ast.get_docstring(node),
                "is_async": isinstance(node, ast.AsyncFunctionDef),
            })
    return functions


def find_issues(code: str) -> List[str]:
    """Find code quality issues. A syntax error is reported as the only issue."""
    try:
        tree = ast.parse(code)
    except SyntaxError as e:
        return [f"Syntax error at line {e.lineno}: {e.msg}"]

    issues = []
    for func in extract_functions(code):
        if not func["docstring"]:
            issues.append(f"Function '{func['name']}' lacks a docstring (line {func['lineno']})")

    for node in ast.walk(tree):
        if isinstance(node, ast.ExceptHandler) and node.type is None:
            issues.append(f"Bare except clause (line {node.lineno})")
        elif (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == "print"
        ):
            issues.append(f"Print statement, consider logging (line {node.lineno})")

    for i, line in enumerate(code.split("\n"), 1):
        if "TODO" in line or "FIXME" in line:
            issues.append(f"Open TODO/FIXME comment (line {i})")

    return issues


# ============================================================
# Agents
# ============================================================

@register_agent("planner", description="Turns a task description into a numbered plan")
def planner(previous_output: Optional[str]) -> str:
    task = (previous_output or "").strip().split("\n")[0] or DEFAULT_TASK
    steps = [
        "Define the inputs and outputs",
        "Implement the core function",
        "Handle empty input",
        "Document the public API",
    ]
    lines = [f"PLAN: {task}"]
    lines.extend(f"{i}. {step}" for i, step in enumerate(steps, 1))
    return "\n".join(lines)


@register_agent("coder", description="Writes Python code for a plan, or fixes reviewed code")
def coder(previous_output: Optional[str]) -> str:
    if previous_output and REVIEW_CHANGES_REQUESTED in previous_output:
        return FIXED_CODE
    return DRAFT_CODE


@register_agent("reviewer", description="Reviews Python code for quality issues")
def reviewer(previous_output: Optional[str]) -> str:
    code = previous_output or ""
    if not code.strip():
        return f"{REVIEW_APPROVED}\nNothing to review."

    issues = find_issues(code)
    if not issues:
        return f"{REVIEW_APPROVED}\nNo issues found."

    lines = [REVIEW_CHANGES_REQUESTED, f"{len(issues)} issue(s):"]
    lines.extend(f"- {issue}" for issue in issues)
    return "\n".join(lines)


@register_agent("security", description="Scans code for dangerous calls and hardcoded secrets")
def security(previous_output: Optional[str]) -> str:
    code = previous_output or ""
    findings = []
    for i, line in enumerate(code.split("\n"), 1):
        for pattern, message in SECURITY_PATTERNS.values():
            if re.search(pattern, line):
                findings.append(f"- {message} (line {i})")

    if not findings:
        return "SECURITY: no findings"
    return "\n".join([f"SECURITY: {len(findings)} finding(s)"] + findings)


@register_agent("documenter", description="Writes Markdown API notes for the functions in the code")
def documenter(previous_output: Optional[str]) -> str:
    code = previous_output or ""
    try:
        functions = extract_functions(code)
    except SyntaxError:
        return "# API\n\nThe input is not valid Python; nothing to document."

    if not functions:
        return "# API\n\nNo functions found."

    lines = ["# API", ""]
    for func in functions:
        signature = f"{func['name']}({', '.join(func['args'])})"
        summary = (func["docstring"] or "Undocumented.").split("\n")[0]
        lines.append(f"- `{signature}`: {summary}")
    return "\n".join(lines)

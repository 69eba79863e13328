"""
API package - FastAPI routes and schemas.
"""

from agentgraph.api.routes import agents, runs, websocket, workflows

__all__ = ["agents", "runs", "websocket", "workflows"]

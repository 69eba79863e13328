#!/usr/bin/env python3
"""
Simple run script for the AgentGraph server.

Usage:
    python run.py

Or with custom settings:
    HOST=127.0.0.1 PORT=8080 python run.py
"""

import uvicorn
import os

from agentgraph.config import settings


def main():
    """Run the FastAPI application."""
    reload = os.getenv("RELOAD", "true").lower() == "true"

    print(f"""
+---------------------------------------------------------------+
|  {settings.APP_NAME} v{settings.APP_VERSION}
|  An async execution engine for agent workflow graphs
+---------------------------------------------------------------+
|  Server:    http://{settings.HOST}:{settings.PORT}
|  API Docs:  http://{settings.HOST}:{settings.PORT}/docs
|  Templates: http://{settings.HOST}:{settings.PORT}/workflows/templates
+---------------------------------------------------------------+
    """)

    uvicorn.run(
        "agentgraph.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()

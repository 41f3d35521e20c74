"""MCP server exposing CodeSensei tools to MCP clients."""

import os

import httpx
from mcp.server.fastmcp import FastMCP

mcp = FastMCP("codesensei")
BACKEND = os.environ.get("CODESENSEI_BACKEND", "http://localhost:8000")

# Synchronous agent tasks block for the whole remote generation
AGENT_TIMEOUT = 150.0


@mcp.tool()
async def project_tree(project_id: str) -> list:
    """Bounded file tree of a project (max depth 10, max 1000 files).

    Auto-excludes: node_modules, .git, build outputs, hidden files, binaries
    """
    async with httpx.AsyncClient(timeout=30.0) as client:
        r = await client.get(f"{BACKEND}/projects/{project_id}/files")
        return r.json()


@mcp.tool()
async def update_requirement(project_id: str, request: str) -> dict:
    """Create or update the project's requirement document with the agent."""
    async with httpx.AsyncClient(timeout=AGENT_TIMEOUT) as client:
        r = await client.post(
            f"{BACKEND}/projects/{project_id}/requirement",
            json={"user_input": request},
        )
        return r.json()


@mcp.tool()
async def generate_code(project_id: str, request: str, wait: bool = False) -> dict:
    """Have the agent create or modify files in a project.

    Args:
        project_id: Project to work on
        request: What to build or change
        wait: Block until the agent finishes; otherwise return a session id to poll

    Returns:
        The agent's change summary, or {"session_id": ...} when not waiting
    """
    path = "generate" if wait else "generate/async"
    async with httpx.AsyncClient(timeout=AGENT_TIMEOUT) as client:
        r = await client.post(
            f"{BACKEND}/projects/{project_id}/{path}",
            json={"user_input": request},
        )
        return r.json()


@mcp.tool()
async def session_messages(session_id: str, limit: int | None = None) -> list:
    """Poll the messages of a session started by generate_code."""
    params = {"limit": limit} if limit is not None else None
    async with httpx.AsyncClient(timeout=30.0) as client:
        r = await client.get(f"{BACKEND}/sessions/{session_id}/messages", params=params)
        return r.json()


if __name__ == "__main__":
    mcp.run()

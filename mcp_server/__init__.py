"""MCP server exposing meshforge build tools.

This module implements the Model Context Protocol (MCP) server that
exposes build requests, build status, plugin resolution and target
compatibility to AI tools and external systems.

MCP tools:
- Are idempotent where applicable
- Return structured errors with codes
- Map directly to core services
"""

from mcp_server.server import mcp

__all__ = ["mcp"]

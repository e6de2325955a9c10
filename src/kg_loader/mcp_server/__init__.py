"""MCP server exposing catalogue search and query tools."""

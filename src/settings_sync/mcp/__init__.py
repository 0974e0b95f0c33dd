"""MCP server exposing manual sync and status tools over stdio."""

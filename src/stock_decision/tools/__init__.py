"""MCP tools over the decision pipeline."""

"""MCP server surface for jjzettel."""

"""MCP tools for feed_sieve."""

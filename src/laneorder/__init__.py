"""
laneorder: Kanban project board with dense per-column ordering.

The SQLite store keeps every column at positions 0..n-1 through inserts,
moves and deletes; the reconciliation client shows each change instantly
and settles against the store. Served to agents over MCP (laneorder-mcp)
and to humans through the laneorder CLI.
"""

__version__ = "0.1.0"

"""Database access layer for agentmem."""

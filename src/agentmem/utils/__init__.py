"""Utility modules for agentmem."""

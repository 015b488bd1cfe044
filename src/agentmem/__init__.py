"""agentmem - episodic memory core for agent-assisted development."""

__version__ = "0.1.0"

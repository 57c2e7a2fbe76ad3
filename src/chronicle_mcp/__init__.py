"""Chronicle MCP: automation and sync control plane for note workspaces."""

__version__ = "0.1.0"

__all__ = ["__version__"]

"""Multi-project dispatcher for Claude Code tasks."""

__version__ = "0.3.0"

__all__ = ["__version__"]

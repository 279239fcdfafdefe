"""Knowledge-graph memory and sandboxed filesystem tool servers for LLM agents."""

__version__ = "0.1.0"

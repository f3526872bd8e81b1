"""Protocol-facing tool server with interactive elicitation."""

__version__ = "1.0.0"

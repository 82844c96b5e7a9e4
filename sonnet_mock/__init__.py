"""sonnet-mock — a mock OpenAI-compatible completion server."""

__version__ = "0.2.0"

"""testpilot: LLM-driven unit test generation for npm packages."""

__version__ = "0.1.0"

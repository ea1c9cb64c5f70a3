"""devassist - AI-assisted code analysis with static fallbacks."""

__version__ = "0.3.0"

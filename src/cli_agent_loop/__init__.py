"""CLI Agent Loop: normalize coding-agent CLI output and track live loop state."""

__version__ = "0.1.0"

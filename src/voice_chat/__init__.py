"""Push-to-talk voice chat client."""

__version__ = "0.1.0"

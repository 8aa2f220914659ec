"""Real-time chat relay with a durable message log."""

__version__ = "1.0.0"

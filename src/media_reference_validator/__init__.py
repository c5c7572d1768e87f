"""Media reference validation and recovery."""

__version__ = "0.1.0"

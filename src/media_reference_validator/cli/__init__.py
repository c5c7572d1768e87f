"""Command-line interface for the media reference validator."""

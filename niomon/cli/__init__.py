"""Command-line interface for niomon."""

"""Command-line interface for Browser Export."""

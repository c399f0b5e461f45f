"""Command line interface for bizdesk."""

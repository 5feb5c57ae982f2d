"""Command-line tools for guardian recovery."""

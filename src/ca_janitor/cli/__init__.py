"""Command-line interface for ca-janitor."""

"""Command-line interface for council deliberation (typer + rich)."""

"""Shared utilities: logging setup, console output and env expansion."""

"""Shared helpers: logging setup and time formatting."""

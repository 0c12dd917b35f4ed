"""Shared utilities: logging setup, token encryption and text sanitization."""

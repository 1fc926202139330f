"""Loader configuration: constants, settings and logging."""

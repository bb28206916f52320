"""Shared helpers: naming, errors, logging and console display."""

"""Shared utilities: logging and data-cleaning helpers."""

"""Sensitive-data detection and redaction for call recordings."""

__version__ = "0.1.0"

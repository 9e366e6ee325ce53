"""Core utilities: logging, exceptions, security helpers."""

"""Ordered build step runner with group filtering and layered hooks."""

__version__ = "0.1.0"

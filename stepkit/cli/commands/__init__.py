"""CLI command handlers."""

from .run import run_plan

__all__ = ['run_plan']

"""
Execution module for stepkit.
Handles invoking step scripts and reporting their outcome.
"""

from .step_executor import StepExecutor, InvocationResult, StepInvoker

__all__ = [
    "StepExecutor",
    "InvocationResult",
    "StepInvoker",
]

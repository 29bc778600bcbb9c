"""Step orchestration module."""

from .orchestrator import StepOrchestrator, StepOutcome

__all__ = ['StepOrchestrator', 'StepOutcome']

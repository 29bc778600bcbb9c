"""Stepkit exceptions."""

from typing import List
from dataclasses import dataclass


@dataclass
class ValidationError:
    """Single validation error."""
    message: str
    path: str = ""
    exit_code: int = 2


class PlanValidationError(Exception):
    """Raised when a step plan fails validation.

    The loader collects every problem it finds and raises this once, so the
    CLI can report all of them and map the failure to an exit code.
    """

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        self.exit_code = 2

        messages = []
        for error in errors:
            if error.path:
                messages.append(f"Validation error at {error.path}: {error.message}")
            else:
                messages.append(f"Validation error: {error.message}")

        super().__init__("\n".join(messages))


class PropertyParseError(ValueError):
    """Raised when a property string cannot be parsed."""

    def __init__(self, message: str, segment: str = ""):
        self.segment = segment
        super().__init__(message)

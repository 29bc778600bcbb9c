"""
Step executor module for running step scripts.
Implements the subprocess-backed step invoker used by the orchestrator.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..steps import StepDescriptor

logger = logging.getLogger(__name__)

# Exit codes reported for invocations that never produced one of their own
EXIT_MISSING_SCRIPT = 2
EXIT_EXECUTION_ERROR = 1
EXIT_TIMEOUT = 124


@dataclass
class InvocationResult:
    """Outcome of invoking a single step or hook."""
    success: bool
    exit_code: Optional[int] = None
    reason: Optional[str] = None
    duration_ms: int = 0

    @classmethod
    def ok(cls, exit_code: int = 0, duration_ms: int = 0) -> 'InvocationResult':
        return cls(success=True, exit_code=exit_code, duration_ms=duration_ms)

    @classmethod
    def failed(cls, reason: str, exit_code: Optional[int] = None, duration_ms: int = 0) -> 'InvocationResult':
        return cls(success=False, exit_code=exit_code, reason=reason, duration_ms=duration_ms)


# Invokes one step with its merged property bag
StepInvoker = Callable[[StepDescriptor, Dict[str, str]], InvocationResult]


class StepExecutor:
    """
    Runs step scripts as child processes.

    The merged properties of the step are exported as environment variables
    on top of the current environment. Scripts run with the workspace as
    their working directory.
    """

    def __init__(
        self,
        workspace: Path,
        runner: Optional[Sequence[str]] = None,
        timeout_sec: Optional[int] = None
    ):
        """
        Initialize step executor.

        Args:
            workspace: Base directory that relative step paths resolve against
            runner: Optional command prefix, e.g. ["bash"] or ["python3"]
            timeout_sec: Timeout per invocation in seconds
        """
        self.workspace = Path(workspace).resolve()
        self.runner: List[str] = list(runner or [])
        self.timeout_sec = timeout_sec

    def resolve_path(self, step_path: str) -> Path:
        """Resolve a step path relative to the workspace."""
        path = Path(step_path)
        if not path.is_absolute():
            path = self.workspace / path
        return path.resolve()

    def __call__(self, step: StepDescriptor, properties: Dict[str, str]) -> InvocationResult:
        script = self.resolve_path(step.path)
        if not script.is_file():
            message = f"Step script expected to be at '{script}' but could not be found"
            logger.error(message)
            return InvocationResult.failed(message, exit_code=EXIT_MISSING_SCRIPT)

        command_argv = self.runner + [str(script)]
        env = os.environ.copy()
        env.update(properties)

        logger.info(f"Invoking step at: {script}")
        start_time = time.time()

        try:
            result = subprocess.run(
                command_argv,
                cwd=str(self.workspace),
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout_sec,
            )
            exit_code = result.returncode
            stdout = result.stdout or ''
            stderr = result.stderr or ''
            reason = None if exit_code == 0 else f"'{script}' exited with code {exit_code}"

        except subprocess.TimeoutExpired as e:
            exit_code = EXIT_TIMEOUT
            stdout = self._decode(e.stdout)
            stderr = self._decode(e.stderr)
            reason = f"'{script}' timed out after {self.timeout_sec} seconds"

        except OSError as e:
            exit_code = EXIT_EXECUTION_ERROR
            stdout = ''
            stderr = str(e)
            reason = f"'{script}' could not be executed: {e}"

        duration_ms = int((time.time() - start_time) * 1000)

        for line in stdout.splitlines():
            logger.debug(f"[{step.file_name}] {line}")
        stderr_level = logging.DEBUG if exit_code == 0 else logging.WARNING
        for line in stderr.splitlines():
            logger.log(stderr_level, f"[{step.file_name}] {line}")

        if exit_code != 0:
            return InvocationResult.failed(reason or '', exit_code=exit_code, duration_ms=duration_ms)
        return InvocationResult.ok(exit_code=exit_code, duration_ms=duration_ms)

    @staticmethod
    def _decode(output) -> str:
        if output is None:
            return ''
        if isinstance(output, bytes):
            return output.decode('utf-8', errors='replace')
        return output

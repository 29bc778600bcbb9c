"""
Step orchestrator.
Runs ordered, group-filtered steps with global and local hooks and a
failure-step pass.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..deps.resolver import StepOrderResolver
from ..exec.step_executor import InvocationResult, StepInvoker
from ..properties import merge_properties
from ..steps import RunConfig, StepDescriptor, matches_groups

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """Result of running one step together with its hooks."""
    success: bool
    aborted: bool = False


class StepOrchestrator:
    """
    Main step execution engine.

    Steps run one at a time in resolved order. For each step the global
    pre-steps run first, then the local pre-steps, the step itself, the local
    post-steps and finally the global post-steps. The policy flags of the run
    decide whether a failure is an error or a warning and whether the run
    stops.
    """

    def __init__(self, invoker: StepInvoker, resolver: Optional[StepOrderResolver] = None):
        """
        Initialize the orchestrator.

        Args:
            invoker: Callable that executes a step with its merged properties
            resolver: Step ordering strategy (default: StepOrderResolver)
        """
        self.invoker = invoker
        self.resolver = resolver or StepOrderResolver()

    def plan(self, config: RunConfig) -> Optional[List[StepDescriptor]]:
        """
        Resolve the order of the configured steps and apply the group filter.

        Ordering runs over every configured step, so constraints naming a step
        that the filter excludes still shape the order of the others.

        Returns:
            The eligible steps in execution order, or None if ordering failed
        """
        plan = self.resolver.order(config.steps)
        if not plan.is_valid:
            return None
        return self.select(plan.steps, config.groups)

    def select(self, steps: Iterable[StepDescriptor], groups: Iterable[str]) -> List[StepDescriptor]:
        """Return the steps whose groups match the requested groups."""
        groups = sorted(groups)
        selected = []
        for step in steps:
            if not matches_groups(groups, step.groups):
                logger.debug(
                    f"Step {step.path} has tags {', '.join(sorted(step.groups))} none of which "
                    f"are included in execution list of {', '.join(groups)}."
                )
                continue
            selected.append(step)
        return selected

    def run(self, config: RunConfig, steps: Optional[List[StepDescriptor]] = None) -> bool:
        """
        Execute a run.

        Never raises: every failure is logged and folded into the verdict.

        Args:
            config: The run configuration
            steps: Eligible steps in execution order as returned by plan();
                resolved from the configuration when omitted

        Returns:
            True if no step or hook failed, False otherwise
        """
        if not config.steps:
            logger.info("No steps to execute")
            return True

        if steps is None:
            steps = self.plan(config)
            if steps is None:
                return False

        has_failed = False
        for index, step in enumerate(steps):
            logger.info(f"Executing step {index + 1}/{len(steps)}: {step.path}")
            outcome = self._execute_step(step, config, index == 0, index == len(steps) - 1)
            if outcome.success:
                continue

            has_failed = True
            if outcome.aborted or config.policy.stop_on_first_failure:
                remaining = len(steps) - index - 1
                if remaining:
                    logger.info(f"Stopping run, {remaining} step(s) not executed")
                break

        if has_failed:
            self._execute_failure_steps(config)

        return not has_failed

    def _execute_step(self, step: StepDescriptor, config: RunConfig, is_first: bool, is_last: bool) -> StepOutcome:
        policy = config.policy
        success = True

        step_metadata = config.metadata.describe(step, is_first, is_last)
        for hooks, description in ((config.pre_steps, 'global pre-step'),
                                   (step.pre_steps, 'step specific pre-step')):
            outcome = self._run_hooks(
                hooks,
                description,
                step_metadata,
                config,
                fail_on_failure=policy.fail_on_pre_step_failure,
                stop_on_failure=policy.stop_on_pre_step_failure,
            )
            if outcome.aborted:
                return outcome
            success = success and outcome.success

        # The step result does not stop the post-steps unless the run stops here
        result = self._invoke(step, merge_properties(config.properties, step.properties))
        if not result.success:
            success = False
            reason = f": {result.reason}" if result.reason else ''
            logger.error(f"Failed while executing step action from '{step.path}'{reason}")
            if policy.stop_on_first_failure:
                return StepOutcome(success=False, aborted=True)

        for hooks, description in ((step.post_steps, 'step specific post-step'),
                                   (config.post_steps, 'global post-step')):
            step_metadata = config.metadata.describe(step, is_first, is_last or not success)
            outcome = self._run_hooks(
                hooks,
                description,
                step_metadata,
                config,
                fail_on_failure=policy.fail_on_post_step_failure,
                stop_on_failure=policy.stop_on_post_step_failure,
            )
            if outcome.aborted:
                return outcome
            success = success and outcome.success

        return StepOutcome(success=success)

    def _run_hooks(
        self,
        hooks: Iterable[StepDescriptor],
        description: str,
        step_metadata: Dict[str, str],
        config: RunConfig,
        fail_on_failure: bool,
        stop_on_failure: bool
    ) -> StepOutcome:
        """
        Run a list of hooks for one step.

        A hook sees the global properties, overlaid by the metadata of the
        step it belongs to, overlaid by its own properties for keys the
        metadata does not define.
        """
        success = True
        for hook in hooks:
            if not hook.path.strip():
                continue

            local = merge_properties(hook.properties, step_metadata)
            result = self._invoke(hook, merge_properties(config.properties, local))
            if result.success:
                continue

            message = f"Failed while executing {description} action from '{hook.path}'"
            if fail_on_failure:
                success = False
                logger.error(message)
            else:
                logger.warning(message)

            if stop_on_failure:
                return StepOutcome(success=False, aborted=True)

        return StepOutcome(success=success)

    def _execute_failure_steps(self, config: RunConfig) -> None:
        """Run the failure steps. Their own failures never trigger another pass."""
        candidates = [step for step in config.failure_steps if step.path.strip()]
        steps = self.select(candidates, config.groups)
        if not steps:
            return

        logger.info(f"Executing {len(steps)} failure step(s)")
        for step in steps:
            result = self._invoke(step, merge_properties(config.properties, step.properties))
            if result.success:
                continue

            logger.error(f"Failed while executing failure step action from '{step.path}'")
            if config.policy.stop_on_first_failure:
                break

    def _invoke(self, step: StepDescriptor, properties: Dict[str, str]) -> InvocationResult:
        """Call the invoker, turning exceptions into failed results."""
        try:
            result = self.invoker(step, properties)
        except Exception as e:
            logger.error(f"Execution of step '{step.path}' failed with exception: {e}", exc_info=True)
            return InvocationResult.failed(str(e))

        if isinstance(result, bool):
            return InvocationResult(success=result)
        if not isinstance(result, InvocationResult):
            message = f"Execution of step '{step.path}' returned an unexpected result: {result!r}"
            logger.error(message)
            return InvocationResult.failed(message)
        return result

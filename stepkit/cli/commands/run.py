"""Run command implementation."""

import logging
from argparse import Namespace
from dataclasses import replace
from pathlib import Path
from typing import Dict

from stepkit.exceptions import PlanValidationError
from stepkit.exec.step_executor import StepExecutor
from stepkit.loader import PlanLoader
from stepkit.properties import merge_properties
from stepkit.steps import RunConfig, normalize_groups
from stepkit.workflow.orchestrator import StepOrchestrator


logger = logging.getLogger(__name__)


def parse_property_overrides(args: Namespace) -> Dict[str, str]:
    """Parse --property KEY=VALUE arguments."""
    properties: Dict[str, str] = {}
    for item in args.property or []:
        if '=' not in item:
            raise ValueError(f"Invalid property format: {item}. Expected KEY=VALUE")
        key, value = item.split('=', 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid property format: {item}. Property name is empty")
        properties = merge_properties(properties, {key: value.strip()})
    return properties


def apply_overrides(config: RunConfig, args: Namespace) -> RunConfig:
    """Apply command line overrides to a loaded plan."""
    if args.group:
        config.groups = normalize_groups(args.group)

    overrides = parse_property_overrides(args)
    if overrides:
        config.properties = merge_properties(config.properties, overrides)

    if args.continue_on_failure:
        config.policy = replace(config.policy, stop_on_first_failure=False)

    return config


def configure_logging(args: Namespace) -> None:
    log_level = getattr(logging, args.log_level.upper())
    if args.debug:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.ERROR
    elif args.verbose:
        log_level = logging.DEBUG

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def run_plan(args: Namespace) -> int:
    """
    Run a step plan.

    Returns:
        0 on success, 1 if the run failed, 2 if the plan is invalid or the
        steps cannot be ordered
    """
    configure_logging(args)

    try:
        plan_path = Path(args.plan).resolve()
        if not plan_path.exists():
            logger.error(f"Plan file not found: {plan_path}")
            return 1

        workspace = Path(args.workspace).resolve() if args.workspace else plan_path.parent

        logger.info(f"Loading plan: {plan_path}")
        loader = PlanLoader(workspace)
        try:
            config = loader.load(plan_path)
        except PlanValidationError as e:
            for error in e.errors:
                location = f" ({error.path})" if error.path else ''
                logger.error(f"Validation error{location}: {error.message}")
            return e.exit_code

        config = apply_overrides(config, args)

        executor = StepExecutor(workspace, runner=loader.runner, timeout_sec=loader.timeout_sec)
        orchestrator = StepOrchestrator(executor)

        steps = orchestrator.plan(config)
        if steps is None:
            return 2

        if args.dry_run:
            logger.info(f"[DRY RUN] {len(steps)} step(s) would be executed:")
            for index, step in enumerate(steps):
                logger.info(f"[DRY RUN]   {index + 1}. {step.path}")
            return 0

        result = orchestrator.run(config, steps)
        if result:
            logger.info("Run completed successfully")
        else:
            logger.error("Run failed")
        return 0 if result else 1

    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return 2
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1

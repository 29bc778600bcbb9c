"""Main CLI entry point for stepkit."""

import argparse
import sys
from typing import Optional

from .commands import run_plan


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the stepkit CLI."""
    parser = argparse.ArgumentParser(
        prog='stepkit',
        description='Ordered build step runner'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    run_parser = subparsers.add_parser('run', help='Run a step plan')
    run_parser.add_argument(
        'plan',
        type=str,
        help='Path to step plan YAML file'
    )
    run_parser.add_argument(
        '--group',
        action='append',
        metavar='GROUP',
        help='Only run steps tagged with GROUP (can be specified multiple times, "all" runs everything)'
    )
    run_parser.add_argument(
        '--property',
        action='append',
        metavar='KEY=VALUE',
        help='Global property passed to every step (can be specified multiple times)'
    )
    run_parser.add_argument(
        '--workspace',
        type=str,
        help='Directory step paths resolve against (default: directory of the plan)'
    )
    run_parser.add_argument(
        '--continue-on-failure',
        action='store_true',
        help='Keep running remaining steps after a step fails'
    )
    run_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate and order the plan without executing it'
    )
    run_parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    run_parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress non-error output'
    )
    run_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )
    run_parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warn', 'error'],
        default='info',
        help='Set log level'
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.command == 'run':
        return run_plan(parsed_args)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())

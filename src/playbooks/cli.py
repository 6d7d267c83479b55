"""Command line entry point: run a playbook against one or more environments."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .engine import PlaybookEngine
from .errors import PlaybookExecutionError
from .loader import EnvironmentLoader, PlaybookLoader, PlaybookLoadError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tutorial-compiler",
        description="Run a playbook against runner environments.",
    )
    parser.add_argument("playbook", help="Path to the playbook YAML")
    parser.add_argument(
        "--environments",
        "-e",
        default="environments.yaml",
        help="Path to the environments YAML (default: environments.yaml)",
    )
    parser.add_argument(
        "--environment",
        action="append",
        dest="selected",
        metavar="NAME",
        help="Environment to run; repeatable (default: all)",
    )
    parser.add_argument("--working-dir", help="Directory console runners execute in")
    parser.add_argument("--output-dir", help="Directory generated artifacts go to")
    parser.add_argument("--temp-dir", help="Scratch directory for runners")
    parser.add_argument("--trace", metavar="DIR", help="Write JSON execution traces here")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def build_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment, overridden by command line flags."""
    settings = Settings.from_env()
    overrides = {
        "working_directory": args.working_dir,
        "output_directory": args.output_dir,
        "temp_directory": args.temp_dir,
    }
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    updates = {key: value for key, value in overrides.items() if value}
    return Settings(**{**settings.model_dump(), **updates})


async def run_environments(args: argparse.Namespace, settings: Settings) -> int:
    """
    Run the playbook against each selected environment in turn.

    Returns:
        Process exit code: 0 if every environment succeeded or was skipped as
        incomplete, 1 otherwise
    """
    from ..runners.registry import RunnerRegistry

    playbook = PlaybookLoader().load_from_file(args.playbook)
    environments = EnvironmentLoader().load_from_file(args.environments)
    registry = RunnerRegistry.get_instance()

    names = args.selected or list(environments)
    unknown = [name for name in names if name not in environments]
    if unknown:
        logger.error("Unknown environment(s): %s", ", ".join(unknown))
        return 1

    for name in names:
        registry.validate_environment(environments[name], name)

    exit_code = 0
    for name in names:
        engine = PlaybookEngine(name, environments[name], playbook, registry, settings=settings)
        try:
            trace = await engine.run()
            logger.info("Environment %s finished: %s", name, trace.outcome.value)
        except PlaybookExecutionError as e:
            logger.error("Environment %s failed:\n%s", name, e)
            exit_code = 1
        except Exception:
            logger.exception("Environment %s failed unexpectedly", name)
            exit_code = 1

        if args.trace and engine.trace is not None:
            trace_dir = Path(args.trace)
            trace_dir.mkdir(parents=True, exist_ok=True)
            engine.trace.save_to_file(str(trace_dir / f"{playbook.name}-{name}.json"))

    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = build_settings(args)
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    try:
        return asyncio.run(run_environments(args, settings))
    except (PlaybookLoadError, PlaybookExecutionError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

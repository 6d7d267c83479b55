"""Playbook engine - core execution logic."""

from .config import Settings
from .context import ExecutionContext
from .engine import PlaybookEngine
from .errors import (
    AssertionFailedError,
    EnvironmentIncompleteError,
    MissingArgumentError,
    PlaybookExecutionError,
    RunnerNotFoundError,
    ServerNotReachableError,
    UnsupportedCommandError,
)
from .loader import (
    EnvironmentLoader,
    EnvironmentLoadError,
    PlaybookLoader,
    PlaybookLoadError,
)
from .models import (
    Command,
    Environment,
    Playbook,
    RunCommand,
    RunnerEnvironment,
    RunResult,
    Step,
)
from .tracer import CommandTrace, ExecutionOutcome, ExecutionTrace

__all__ = [
    "PlaybookLoader",
    "PlaybookLoadError",
    "EnvironmentLoader",
    "EnvironmentLoadError",
    "Playbook",
    "Step",
    "Command",
    "RunCommand",
    "RunResult",
    "Environment",
    "RunnerEnvironment",
    "PlaybookEngine",
    "ExecutionContext",
    "Settings",
    "PlaybookExecutionError",
    "EnvironmentIncompleteError",
    "RunnerNotFoundError",
    "UnsupportedCommandError",
    "MissingArgumentError",
    "AssertionFailedError",
    "ServerNotReachableError",
    "ExecutionTrace",
    "ExecutionOutcome",
    "CommandTrace",
]

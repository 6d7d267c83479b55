"""Runners - backends that execute or render playbook commands."""

from .base import EnvironmentAware, Runner, cleanup_on_failure
from .processes import AsyncProcess, CleanupOutcome, ProcessLifecycleManager
from .registry import RunnerRegistry, runner

__all__ = [
    "Runner",
    "EnvironmentAware",
    "cleanup_on_failure",
    "RunnerRegistry",
    "runner",
    "ProcessLifecycleManager",
    "AsyncProcess",
    "CleanupOutcome",
]

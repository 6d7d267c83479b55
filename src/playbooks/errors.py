"""Custom exceptions for playbook execution with enhanced error context."""

from difflib import get_close_matches
from typing import List, Optional


class PlaybookExecutionError(Exception):
    """Base exception for playbook execution errors."""

    pass


class EnvironmentIncompleteError(PlaybookExecutionError):
    """
    Raised when no configured runner supports one or more playbook commands
    and the environment is marked fail-on-incomplete.
    """

    def __init__(self, environment_name: str, unsupported_commands: List[str]):
        """
        Initialize EnvironmentIncompleteError.

        Args:
            environment_name: The environment being executed
            unsupported_commands: Command names no configured runner supports
        """
        self.environment_name = environment_name
        self.unsupported_commands = unsupported_commands

        message = f"Environment incomplete: {environment_name}\n"
        message += "No configured runner supports these commands:\n"
        for command_name in unsupported_commands:
            message += f"  - {command_name}\n"

        message += "\nTip: Add a runner supporting them to the environment, "
        message += "or set failOnIncomplete to false.\n"

        super().__init__(message)


class RunnerNotFoundError(PlaybookExecutionError):
    """
    Raised when an environment names a runner that is not registered.

    Provides suggestions for close matches and lists available runners.
    """

    def __init__(
        self,
        runner_name: str,
        environment_name: str,
        available_runners: List[str],
    ):
        """
        Initialize RunnerNotFoundError.

        Args:
            runner_name: The runner name that was not found
            environment_name: The environment referencing the runner
            available_runners: List of all registered runner names
        """
        self.runner_name = runner_name
        self.environment_name = environment_name
        self.available_runners = available_runners

        suggestions = get_close_matches(
            runner_name.lower(), available_runners, n=3, cutoff=0.6
        )

        message = f"Runner '{runner_name}' not found in registry\n"
        message += f"  Environment: {environment_name}\n\n"

        if suggestions:
            message += "Did you mean one of these?\n"
            for suggestion in suggestions:
                message += f"  - {suggestion}\n"
            message += "\n"

        message += f"Available runners ({len(available_runners)}):\n"
        for runner in sorted(available_runners):
            message += f"  - {runner}\n"

        message += "\nTip: Register your runner with:\n"
        message += "  registry = RunnerRegistry.get_instance()\n"
        message += "  registry.register(YourRunnerClass)\n"

        super().__init__(message)


class UnsupportedCommandError(PlaybookExecutionError):
    """Raised when a runner is asked to run a command it has no handler for."""

    def __init__(self, command_name: str, runner_name: str):
        self.command_name = command_name
        self.runner_name = runner_name
        super().__init__(
            f"Runner '{runner_name}' does not support command '{command_name}'"
        )


class MissingArgumentError(PlaybookExecutionError, ValueError):
    """
    Raised when a command is missing required parameters.

    Configuration errors are raised before any side effect takes place.
    """

    def __init__(self, command_name: str, missing: List[str], hint: Optional[str] = None):
        """
        Initialize MissingArgumentError.

        Args:
            command_name: The command whose parameters are incomplete
            missing: Names of the missing parameters
            hint: Optional extra explanation
        """
        self.command_name = command_name
        self.missing = missing
        self.hint = hint

        message = f"Missing arguments for command {command_name}. "
        message += f"You have to specify: {', '.join(missing)}."
        if hint:
            message += f" {hint}"

        super().__init__(message)


class AssertionFailedError(PlaybookExecutionError):
    """Raised when a runner's validation of a command's outcome fails."""

    def __init__(self, check: str, target: str, detail: Optional[str] = None):
        """
        Initialize AssertionFailedError.

        Args:
            check: The name of the failed check (e.g. directory_exists)
            target: What was checked (a path, a URL, a result)
            detail: Optional additional context
        """
        self.check = check
        self.target = target
        self.detail = detail

        message = f"Assertion '{check}' failed for {target}"
        if detail:
            message += f"\n  {detail}"

        super().__init__(message)


class ServerNotReachableError(PlaybookExecutionError):
    """Raised when a server does not become reachable within its startup time."""

    def __init__(self, url: str, startup_time: float, exit_code: Optional[int] = None):
        """
        Initialize ServerNotReachableError.

        Args:
            url: The URL that was probed
            startup_time: The startup budget in seconds
            exit_code: Exit code of the server process, if it died while starting
        """
        self.url = url
        self.startup_time = startup_time
        self.exit_code = exit_code
        if exit_code is not None:
            message = (
                f"The server process exited with code {exit_code} "
                f"before becoming reachable: {url}"
            )
        else:
            message = f"The server has not become reachable in {startup_time:g} seconds: {url}"
        super().__init__(message)

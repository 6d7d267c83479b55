"""PlaybookEngine - runs a playbook against the runners of one environment."""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from .config import Settings
from .context import ExecutionContext
from .errors import EnvironmentIncompleteError, RunnerNotFoundError
from .models import Environment, Playbook, RunCommand, RunnerEnvironment, RunResult
from .tracer import CommandTrace, ExecutionOutcome, ExecutionTrace

if TYPE_CHECKING:
    from ..runners.base import Runner
    from ..runners.registry import RunnerRegistry

logger = logging.getLogger(__name__)

RUNNERS_DIRECTORY = Path(__file__).resolve().parent.parent / "runners"


class PlaybookEngine:
    """
    Executes a playbook against the runners of one environment.

    The engine handles:
    - Checking that every command is supported by some configured runner
    - Initializing and destroying runners around the whole run
    - Dispatching each command to the first runner that supports it
    - Capturing run errors so the runner's assertions always see them
    - Producing an ExecutionTrace of what happened
    """

    def __init__(
        self,
        environment_name: str,
        environment: Environment,
        playbook: Playbook,
        registry: Optional["RunnerRegistry"] = None,
        context: Optional[ExecutionContext] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize the PlaybookEngine.

        Args:
            environment_name: Name of the environment (used in logs and by
                environment-aware runners)
            environment: Runners to use, in dispatch order
            playbook: The playbook to run
            registry: Optional RunnerRegistry. If not provided, uses the
                global instance with the built-in runners.
            context: Optional shared variable store
            settings: Optional directory settings passed to every runner
        """
        self.environment_name = environment_name
        self.environment = environment
        self.playbook = playbook
        if registry is None:
            from ..runners.registry import RunnerRegistry

            registry = RunnerRegistry.get_instance()
        self.registry = registry
        self.context = context or ExecutionContext()
        self.settings = settings or Settings()
        self.runners: Dict[str, "Runner"] = {}
        self.trace: Optional[ExecutionTrace] = None

    async def run(self) -> ExecutionTrace:
        """
        Run the playbook from start to finish.

        Returns:
            ExecutionTrace describing the run

        Raises:
            EnvironmentIncompleteError: If a command is unsupported and the
                environment is marked fail-on-incomplete
            PlaybookExecutionError: If a runner's assertion fails
            Exception: The first error raised by a runner's destroy, if the
                run itself succeeded
        """
        logger.info("Environment: %s", self.environment_name)
        trace = ExecutionTrace(self.playbook.name, self.environment_name)
        self.trace = trace

        unsupported = self.unsupported_commands()
        if unsupported:
            if self.environment.fail_on_incomplete:
                raise EnvironmentIncompleteError(self.environment_name, unsupported)
            logger.warning(
                "Environment incomplete: %s (unsupported: %s)",
                self.environment_name,
                ", ".join(unsupported),
            )
            trace.complete(ExecutionOutcome.INCOMPLETE_ENVIRONMENT)
            return trace

        initialized: List["Runner"] = []
        failed = True
        try:
            for runner_environment in self.environment.runners:
                runner = self.get_runner(runner_environment)
                await runner.init(self.playbook)
                initialized.append(runner)

            outcome = await self._dispatch_all(trace)
            trace.complete(outcome)
            failed = False
        except Exception as e:
            trace.error = str(e)
            trace.complete(ExecutionOutcome.FAILED)
            logger.error("Playbook %s failed: %s", self.playbook.name, e)
            raise
        finally:
            destroy_error = await self._destroy_all(initialized)
            # A pending run error takes precedence over teardown errors.
            if destroy_error is not None and not failed:
                trace.error = str(destroy_error)
                trace.complete(ExecutionOutcome.FAILED)
                raise destroy_error

        return trace

    def is_environment_complete(self) -> bool:
        """Return True if every playbook command is supported by some runner."""
        return not self.unsupported_commands()

    def unsupported_commands(self) -> List[str]:
        """List command names no configured runner supports, without duplicates."""
        unsupported: List[str] = []
        for command_name in self.playbook.command_names():
            if command_name in unsupported:
                continue
            if self._find_runner(command_name) is None:
                unsupported.append(command_name)
        return unsupported

    def get_runner(self, runner_environment: RunnerEnvironment) -> "Runner":
        """
        Get the runner for an environment entry, creating it on first use.

        Raises:
            RunnerNotFoundError: If the runner name is not registered
        """
        runner = self.runners.get(runner_environment.name)
        if runner is None:
            runner = self._load_runner(runner_environment)
            self.runners[runner_environment.name] = runner
        return runner

    def set_variable(self, name: str, value: object) -> None:
        """Set a variable in the shared context."""
        self.context.set_variable(name, value)

    def _load_runner(self, runner_environment: RunnerEnvironment) -> "Runner":
        from ..runners.base import EnvironmentAware

        factory = self.registry.get(runner_environment.name)
        if factory is None:
            raise RunnerNotFoundError(
                runner_name=runner_environment.name,
                environment_name=self.environment_name,
                available_runners=self.registry.list_runners(),
            )

        runner = factory(self.context, self.settings)
        runner.name = runner_environment.name
        runner.path = RUNNERS_DIRECTORY / runner_environment.load_path
        runner.playbook_name = self.playbook.name
        runner.playbook_path = self.playbook.path
        runner.playbook_title = self.playbook.title
        if isinstance(runner, EnvironmentAware):
            runner.set_environment(self.environment_name)

        logger.debug("Loaded runner %s", runner_environment.name)
        return runner

    async def _destroy_all(self, runners: List["Runner"]) -> Optional[Exception]:
        """
        Destroy every runner, even if some of them fail to tear down.

        Returns:
            The first exception raised by a runner's destroy, if any
        """
        first_error: Optional[Exception] = None
        for runner in runners:
            try:
                await runner.destroy(self.playbook)
            except Exception as e:
                logger.error("Destroying runner %s failed: %s", runner.name, e)
                if first_error is None:
                    first_error = e
        return first_error

    def _find_runner(self, command_name: str) -> Optional["Runner"]:
        for runner_environment in self.environment.runners:
            runner = self.get_runner(runner_environment)
            if runner.supports(command_name):
                return runner
        return None

    async def _dispatch_all(self, trace: ExecutionTrace) -> ExecutionOutcome:
        for step_index, step in enumerate(self.playbook.steps):
            for line_index, command in enumerate(step.lines):
                run_command = self._init_run_command(step_index, line_index)

                runner = self._find_runner(command.name)
                if runner is None:
                    logger.warning(
                        "No runner supports command %s (step %d, line %d); stopping",
                        command.name,
                        step_index,
                        line_index,
                    )
                    return ExecutionOutcome.UNSUPPORTED_COMMAND

                command_trace = CommandTrace(
                    command.name, runner.name, step_index, line_index
                )
                trace.commands.append(command_trace)

                if runner.command_is_skippable(command.name):
                    logger.info("Command %s will be skipped.", command.name)
                    command_trace.skipped = True
                    command_trace.complete()
                    continue

                await self._dispatch(runner, run_command, command_trace)

        return ExecutionOutcome.COMPLETED

    async def _dispatch(
        self, runner: "Runner", run_command: RunCommand, command_trace: CommandTrace
    ) -> None:
        result = RunResult()
        try:
            result = await runner.run(run_command)
        except Exception as e:
            logger.error(
                "Command %s raised in runner %s: %s",
                run_command.command.name,
                runner.name,
                e,
            )
            result.exceptions.append(e)

        command_trace.return_code = result.return_code
        command_trace.exceptions = [str(error) for error in result.exceptions]

        try:
            await runner.assert_command(run_command, result)
        except Exception as e:
            command_trace.error = str(e)
            raise
        finally:
            command_trace.complete()

    def _init_run_command(self, step_index: int, line_index: int) -> RunCommand:
        step = self.playbook.steps[step_index]
        return RunCommand(
            command=step.lines[line_index],
            step_index=step_index,
            line_index=line_index,
            text=step.text if line_index == 0 else None,
            text_after=step.text_after if line_index == len(step.lines) - 1 else None,
            step_title=step.title,
        )

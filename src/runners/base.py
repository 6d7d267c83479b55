"""Base Runner class - the contract every playbook backend implements."""

import inspect
import logging
import re
import shutil
from abc import ABC
from functools import wraps
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Callable,
    FrozenSet,
    Optional,
    Protocol,
    TypeVar,
    cast,
    runtime_checkable,
)

from ..playbooks.config import Settings
from ..playbooks.context import ExecutionContext
from ..playbooks.errors import UnsupportedCommandError
from ..playbooks.models import Playbook, RunCommand, RunResult

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def to_snake_case(command_name: str) -> str:
    """Convert a camelCase command name (runServerJava) to run_server_java."""
    return _CAMEL_BOUNDARY.sub("_", command_name).replace("-", "_").lower()


@runtime_checkable
class EnvironmentAware(Protocol):
    """Optional capability: runners that need the environment's name."""

    def set_environment(self, environment_name: str) -> None:
        ...


class Runner(ABC):
    """
    Base class for all runners.

    A Runner interprets playbook commands for one execution mode: actually
    executing them, or rendering them into tutorial or documentation
    artifacts. Commands map to methods by naming convention; the command
    ``createFile`` is handled by ``run_create_file`` and, optionally,
    validated by ``assert_create_file``.

    Example:
        class EchoRunner(Runner):
            name = "echo"

            def run_say_hello(self, run_command: RunCommand) -> RunResult:
                print("hello", run_command.parameter(0))
                return RunResult()
    """

    name: str = "base_runner"
    skippable_commands: FrozenSet[str] = frozenset()

    # Names of variables shared between runners through the context.
    workspace_directory = "workspace_directory"
    use_devon_command = "use_devon_command"

    def __init__(
        self,
        context: ExecutionContext,
        settings: Optional[Settings] = None,
    ) -> None:
        self.context = context
        self.settings = settings or Settings()
        self.path: Optional[Path] = None
        self.playbook_name = ""
        self.playbook_path = "."
        self.playbook_title = ""

    async def init(self, playbook: Playbook) -> None:
        """Set up before the first command of the playbook is dispatched."""

    async def destroy(self, playbook: Playbook) -> None:
        """Tear down after the last command of the playbook."""

    async def clean_up(self) -> None:
        """Release resources after a failed assertion. Defaults to a no-op."""

    def supports(self, command_name: str) -> bool:
        """Return True if this runner can handle the given command."""
        return (
            command_name in self.skippable_commands
            or self._handler("run", command_name) is not None
        )

    def command_is_skippable(self, command_name: str) -> bool:
        """Return True if the command is a no-op for this runner."""
        return command_name in self.skippable_commands

    async def run(self, run_command: RunCommand) -> RunResult:
        """
        Run a command by dispatching to its ``run_<command>`` handler.

        Args:
            run_command: The command and its step context

        Returns:
            The RunResult produced by the handler (a fresh one if it returned None)

        Raises:
            UnsupportedCommandError: If no handler exists for the command
        """
        handler = self._handler("run", run_command.command.name)
        if handler is None:
            raise UnsupportedCommandError(run_command.command.name, self.name)

        result = handler(run_command)
        if inspect.isawaitable(result):
            result = await result
        return result if result is not None else RunResult()

    async def assert_command(self, run_command: RunCommand, result: RunResult) -> None:
        """
        Validate a command's outcome via its ``assert_<command>`` handler, if any.

        Args:
            run_command: The command that was run
            result: The result of running it
        """
        handler = self._handler("assert", run_command.command.name)
        if handler is None:
            return

        outcome = handler(run_command, result)
        if inspect.isawaitable(outcome):
            await outcome

    def get_variable(self, name: str) -> Any:
        """Get a variable from the shared execution context."""
        return self.context.get_variable(name)

    def set_variable(self, name: str, value: Any) -> None:
        """Set a variable in the shared execution context."""
        self.context.set_variable(name, value)

    def get_working_directory(self) -> Path:
        return Path(self.settings.working_directory).resolve()

    def get_output_directory(self) -> Path:
        return Path(self.settings.output_directory).resolve()

    def get_temp_directory(self) -> Path:
        return Path(self.settings.temp_directory).resolve()

    def get_runner_directory(self) -> Path:
        """Directory holding this runner's resources (e.g. templates)."""
        if self.path is not None and self.path.is_dir():
            return self.path
        return Path(inspect.getfile(type(self))).parent

    def get_playbook_file(self, relative_path: str) -> Path:
        """Resolve a file referenced by the playbook."""
        return Path(self.playbook_path) / relative_path

    def create_folder(self, path: Path, delete_existing: bool) -> Path:
        """
        Create a folder, optionally wiping an existing one first.

        Args:
            path: Folder to create
            delete_existing: Remove the folder and its contents if present

        Returns:
            The created folder
        """
        path = Path(path)
        if delete_existing and path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _handler(self, prefix: str, command_name: str) -> Optional[Callable[..., Any]]:
        handler = getattr(self, f"{prefix}_{to_snake_case(command_name)}", None)
        return handler if callable(handler) else None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name='{self.name}'>"


def cleanup_on_failure(func: F) -> F:
    """
    Decorator for assert handlers: clean up the runner before re-raising.

    A failed assertion must not leave a half-provisioned environment (e.g.
    background servers) running.

    Example:
        class MyRunner(Runner):
            @cleanup_on_failure
            async def assert_run_server(self, run_command, result):
                ...
    """

    @wraps(func)
    async def wrapper(self: Runner, *args: Any, **kwargs: Any) -> Any:
        try:
            return await func(self, *args, **kwargs)
        except Exception:
            logger.error("Assertion failed in %s.%s", self.name, func.__name__)
            await self.clean_up()
            raise

    return cast(F, wrapper)

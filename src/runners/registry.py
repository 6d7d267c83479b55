"""Runner Registry - registration and lookup of runners by name."""

from typing import Callable, Dict, Optional, Type

from ..playbooks.config import Settings
from ..playbooks.context import ExecutionContext
from ..playbooks.errors import RunnerNotFoundError
from ..playbooks.models import Environment
from .base import Runner

RunnerFactory = Callable[[ExecutionContext, Optional[Settings]], Runner]


class RunnerRegistry:
    """
    Registry mapping runner names to factories.

    Names are case-insensitive. A runner class is its own factory.

    Example:
        registry = RunnerRegistry()

        @registry.register
        class MyRunner(Runner):
            name = "myRunner"
            ...

        # Later
        factory = registry.get("myrunner")
        runner = factory(ExecutionContext(), Settings())
    """

    _instance: Optional["RunnerRegistry"] = None

    def __init__(self) -> None:
        self._factories: Dict[str, RunnerFactory] = {}

    @classmethod
    def get_instance(cls) -> "RunnerRegistry":
        """Get the global registry instance, with the built-in runners registered."""
        if cls._instance is None:
            cls._instance = cls()
            _register_builtin_runners(cls._instance)
        return cls._instance

    def register(self, runner_class: Type[Runner]) -> Type[Runner]:
        """
        Register a runner class under its ``name`` attribute.

        Can be used as a decorator:
            @registry.register
            class MyRunner(Runner):
                ...

        Or called directly:
            registry.register(MyRunner)
        """
        if not isinstance(runner_class, type) or not issubclass(runner_class, Runner):
            raise TypeError(f"{runner_class} must be a subclass of Runner")

        self.register_factory(runner_class.name, runner_class)
        return runner_class

    def register_factory(self, name: str, factory: RunnerFactory) -> None:
        """Register a plain factory callable under ``name``."""
        key = name.lower()
        if key in self._factories:
            raise ValueError(f"Runner '{name}' is already registered")
        self._factories[key] = factory

    def get(self, name: str) -> Optional[RunnerFactory]:
        """Get a runner factory by name (case-insensitive)."""
        return self._factories.get(name.lower())

    def get_or_raise(self, name: str) -> RunnerFactory:
        """Get a runner factory by name, raising if not found."""
        factory = self.get(name)
        if factory is None:
            raise KeyError(f"Runner '{name}' not found in registry")
        return factory

    def list_runners(self) -> list[str]:
        """List all registered runner names (lower-cased)."""
        return list(self._factories.keys())

    def validate_environment(
        self, environment: Environment, environment_name: str = "unknown"
    ) -> None:
        """
        Check that every runner an environment names is registered.

        Raises:
            RunnerNotFoundError: For the first unknown runner name
        """
        for runner_environment in environment.runners:
            if runner_environment.name not in self:
                raise RunnerNotFoundError(
                    runner_name=runner_environment.name,
                    environment_name=environment_name,
                    available_runners=self.list_runners(),
                )

    def clear(self) -> None:
        """Clear all registered runners (mainly for testing)."""
        self._factories.clear()

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._factories

    def __len__(self) -> int:
        return len(self._factories)


def _register_builtin_runners(registry: RunnerRegistry) -> None:
    from .console import Console
    from .katacoda import Katacoda
    from .wiki_console import WikiConsole

    for runner_class in (Console, Katacoda, WikiConsole):
        if runner_class.name not in registry:
            registry.register(runner_class)


def runner(cls: Type[Runner]) -> Type[Runner]:
    """
    Decorator to register a runner with the global registry.

    Example:
        @runner
        class MyRunner(Runner):
            name = "myRunner"
            ...
    """
    return RunnerRegistry.get_instance().register(cls)

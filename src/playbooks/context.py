"""ExecutionContext - the variable store shared by all runners of one run."""

from typing import Any, Dict, Optional


class ExecutionContext:
    """
    Context for playbook execution.

    Holds the variables runners use to pass derived state (e.g. a resolved
    workspace directory) between commands without referencing each other.
    """

    def __init__(self, initial_variables: Optional[Dict[str, Any]] = None) -> None:
        """Initialize execution context with optional initial variables."""
        self.variables: Dict[str, Any] = dict(initial_variables or {})

    def set_variable(self, name: str, value: Any) -> None:
        """Set a variable in the context."""
        self.variables[name] = value

    def get_variable(self, name: str) -> Any:
        """Get a variable from the context, or None if it was never set."""
        return self.variables.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.variables

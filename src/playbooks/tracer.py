"""ExecutionTrace - captures and exports what happened during a playbook run."""

import json
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ExecutionOutcome(str, Enum):
    """How a playbook run ended."""

    COMPLETED = "completed"
    INCOMPLETE_ENVIRONMENT = "incomplete_environment"
    UNSUPPORTED_COMMAND = "unsupported_command"
    FAILED = "failed"


class CommandTrace:
    """
    Trace of a single dispatched command.

    Captures which runner handled the command, whether it was skipped, the
    resulting return code and any exceptions captured while running it.
    """

    def __init__(
        self,
        command_name: str,
        runner_name: str,
        step_index: int,
        line_index: int,
        started_at: Optional[datetime] = None,
    ) -> None:
        """
        Initialize command trace.

        Args:
            command_name: Name of the dispatched command
            runner_name: Runner that handled it
            step_index: Index of the step in the playbook
            line_index: Index of the command within the step
            started_at: When dispatch started (defaults to now)
        """
        self.command_name = command_name
        self.runner_name = runner_name
        self.step_index = step_index
        self.line_index = line_index
        self.started_at = started_at or datetime.utcnow()
        self.completed_at: Optional[datetime] = None
        self.duration_ms: Optional[int] = None
        self.skipped = False
        self.return_code: Optional[int] = None
        self.exceptions: List[str] = []
        self.error: Optional[str] = None

    def complete(self) -> None:
        """Stamp completion time and duration."""
        self.completed_at = datetime.utcnow()
        self.duration_ms = int(
            (self.completed_at - self.started_at).total_seconds() * 1000
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert command trace to dictionary for JSON serialization.

        Returns:
            Dictionary representation of command trace
        """
        return {
            "command_name": self.command_name,
            "runner_name": self.runner_name,
            "step_index": self.step_index,
            "line_index": self.line_index,
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "duration_ms": self.duration_ms,
            "skipped": self.skipped,
            "return_code": self.return_code,
            "exceptions": self.exceptions,
            "error": self.error,
        }


class ExecutionTrace:
    """
    Complete trace of one playbook run against one environment.
    """

    def __init__(
        self,
        playbook_name: str,
        environment_name: str,
        execution_id: Optional[str] = None,
    ) -> None:
        self.playbook_name = playbook_name
        self.environment_name = environment_name
        self.execution_id = execution_id or str(uuid.uuid4())
        self.started_at = datetime.utcnow()
        self.completed_at: Optional[datetime] = None
        self.duration_ms: Optional[int] = None
        self.outcome: Optional[ExecutionOutcome] = None
        self.commands: List[CommandTrace] = []
        self.error: Optional[str] = None

    @property
    def success(self) -> bool:
        """True if every command was dispatched and no assertion failed."""
        return self.outcome == ExecutionOutcome.COMPLETED

    def complete(self, outcome: ExecutionOutcome) -> None:
        """Record the outcome and stamp completion time."""
        self.outcome = outcome
        self.completed_at = datetime.utcnow()
        self.duration_ms = int(
            (self.completed_at - self.started_at).total_seconds() * 1000
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert execution trace to dictionary for JSON serialization.

        Returns:
            Dictionary representation of execution trace
        """
        return {
            "playbook_name": self.playbook_name,
            "environment_name": self.environment_name,
            "execution_id": self.execution_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "duration_ms": self.duration_ms,
            "outcome": self.outcome.value if self.outcome else None,
            "success": self.success,
            "error": self.error,
            "commands": [command.to_dict() for command in self.commands],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """
        Export execution trace as JSON string.

        Args:
            indent: Number of spaces for indentation (None for compact JSON)

        Returns:
            JSON string representation of execution trace
        """
        return json.dumps(self.to_dict(), indent=indent)

    def save_to_file(self, filepath: str, indent: Optional[int] = 2) -> None:
        """
        Save execution trace to a JSON file.

        Args:
            filepath: Path to save the JSON file
            indent: Number of spaces for indentation
        """
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.to_json(indent=indent))

"""Pydantic models for playbook structure and execution records."""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Command(BaseModel):
    """A single playbook instruction (one line of a step)."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Instruction type, e.g. createFile")
    parameters: List[Any] = Field(
        default_factory=list, description="Ordered, heterogeneous parameters"
    )

    @field_validator("name")
    @classmethod
    def validate_name_not_blank(cls, v: str) -> str:
        """Ensure the command has a name."""
        if not v.strip():
            raise ValueError("Command name must not be empty")
        return v


class Step(BaseModel):
    """A playbook step: a title, surrounding text and its commands."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: Optional[str] = Field(None, description="Title of this step")
    text: str = Field(default="", description="Text shown before the commands")
    text_after: str = Field(
        default="", alias="textAfter", description="Text shown after the commands"
    )
    lines: List[Command] = Field(default_factory=list, description="Commands")


class Playbook(BaseModel):
    """
    A complete playbook definition.

    A playbook is an ordered sequence of steps, each holding an ordered
    sequence of commands. It is read-only once execution starts.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique name of the playbook")
    title: str = Field(default="", description="Human-readable title")
    description: str = Field(default="", description="Introductory text")
    path: str = Field(
        default=".", description="Directory holding files the playbook references"
    )
    steps: List[Step] = Field(..., description="Sequential steps to execute")

    @field_validator("steps")
    @classmethod
    def validate_steps_not_empty(cls, v: List[Step]) -> List[Step]:
        """Ensure playbook has at least one step."""
        if not v:
            raise ValueError("Playbook must have at least one step")
        return v

    def command_names(self) -> List[str]:
        """Return every command name in playbook order."""
        return [command.name for step in self.steps for command in step.lines]

    def __repr__(self) -> str:
        return f"<Playbook name='{self.name}' steps={len(self.steps)}>"


class RunCommand(BaseModel):
    """
    One command together with its step context, prepared for a single dispatch.

    ``text`` is only set for the first line of a step and ``text_after`` only
    for the last one, so renderers emit the surrounding prose exactly once.
    """

    model_config = ConfigDict(frozen=True)

    command: Command
    step_index: int
    line_index: int
    text: Optional[str] = None
    text_after: Optional[str] = None
    step_title: Optional[str] = None

    @property
    def parameters(self) -> List[Any]:
        return self.command.parameters

    def parameter(self, index: int, default: Any = None) -> Any:
        """Return the parameter at ``index`` or ``default`` if absent."""
        if index < len(self.command.parameters):
            return self.command.parameters[index]
        return default


@dataclass
class RunResult:
    """Mutable outcome of one dispatched command."""

    return_code: int = 0
    exceptions: List[BaseException] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        """True once a nonzero return code has been recorded."""
        return self.return_code != 0


class RunnerEnvironment(BaseModel):
    """A runner entry of an environment: its name and load path."""

    name: str = Field(..., description="Registered runner name")
    path: Optional[str] = Field(
        None, description="Runner directory below src/runners (defaults to name)"
    )

    @property
    def load_path(self) -> str:
        return self.path or self.name


class Environment(BaseModel):
    """Which runners are active for a run, in dispatch order."""

    model_config = ConfigDict(populate_by_name=True)

    runners: List[RunnerEnvironment] = Field(..., description="Ordered runners")
    fail_on_incomplete: bool = Field(
        default=False,
        alias="failOnIncomplete",
        description="Raise instead of returning when a command is unsupported",
    )

    @field_validator("runners")
    @classmethod
    def validate_runners_not_empty(
        cls, v: List[RunnerEnvironment]
    ) -> List[RunnerEnvironment]:
        """Ensure the environment configures at least one runner."""
        if not v:
            raise ValueError("Environment must configure at least one runner")
        return v

"""Loaders for playbook and environment definitions stored as YAML."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from jinja2 import ChainableUndefined, Environment as TemplateEnvironment
from jinja2 import TemplateSyntaxError
from pydantic import ValidationError

from .models import Command, Environment, Playbook


class PlaybookLoadError(Exception):
    """Raised when a playbook cannot be loaded or validated."""

    pass


class EnvironmentLoadError(PlaybookLoadError):
    """Raised when an environment configuration cannot be loaded or validated."""

    pass


def _read_yaml_file(file_path: Path, error: type) -> str:
    if not file_path.exists():
        raise error(f"File not found: {file_path}")

    if not file_path.is_file():
        raise error(f"Path is not a file: {file_path}")

    try:
        return file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise error(f"Failed to read file {file_path}: {e}")


class PlaybookLoader:
    """
    Loads playbook definitions from YAML files.

    The loader handles:
    - YAML parsing
    - Jinja2 template variable substitution at load time
    - Normalization of the compact command form
    - Pydantic validation of playbook structure

    Commands may be written in full or compact form:

        lines:
          - name: createFolder
            parameters: ["my-project"]
          - cloneRepository: ["", "https://github.com/example/app.git"]

    Example:
        loader = PlaybookLoader()
        playbook = loader.load_from_file("playbooks/first-steps/playbook.yaml")

        # With custom variables
        playbook = loader.load_from_file(
            "playbooks/template.yaml",
            variables={"port": 8081}
        )
    """

    def __init__(self) -> None:
        """Initialize the PlaybookLoader with a Jinja2 environment."""
        self._jinja_env = TemplateEnvironment(
            autoescape=False,
            undefined=ChainableUndefined,
        )

    def load_from_file(
        self, file_path: Union[str, Path], variables: Optional[Dict[str, Any]] = None
    ) -> Playbook:
        """
        Load a playbook from a YAML file.

        Files the playbook references are resolved relative to the YAML
        file's directory unless the playbook sets ``path`` itself.

        Args:
            file_path: Path to the YAML file
            variables: Optional template variables to substitute

        Returns:
            Validated Playbook instance

        Raises:
            PlaybookLoadError: If file cannot be read, parsed, or validated
        """
        file_path = Path(file_path)
        content = _read_yaml_file(file_path, PlaybookLoadError)
        data = self._parse(content, variables)

        if "path" not in data:
            data["path"] = str(file_path.resolve().parent)
        else:
            data["path"] = str((file_path.resolve().parent / data["path"]).resolve())
        data.setdefault("name", file_path.stem)

        return self.load_from_dict(data)

    def load_from_string(
        self, yaml_content: str, variables: Optional[Dict[str, Any]] = None
    ) -> Playbook:
        """
        Load a playbook from a YAML string.

        Args:
            yaml_content: YAML content as string
            variables: Optional template variables to substitute

        Returns:
            Validated Playbook instance

        Raises:
            PlaybookLoadError: If YAML cannot be parsed or validated
        """
        return self.load_from_dict(self._parse(yaml_content, variables))

    def load_from_dict(self, data: Dict[str, Any]) -> Playbook:
        """
        Load a playbook from a dictionary.

        Args:
            data: Dictionary representation of playbook

        Returns:
            Validated Playbook instance

        Raises:
            PlaybookLoadError: If validation fails
        """
        if "steps" not in data:
            raise PlaybookLoadError("Playbook must have 'steps' section")

        if not isinstance(data["steps"], list):
            raise PlaybookLoadError("'steps' must be a list")

        steps = []
        for i, step_data in enumerate(data["steps"]):
            if not isinstance(step_data, dict):
                raise PlaybookLoadError(f"Step {i} must be a dictionary")
            step = dict(step_data)
            step["lines"] = self._parse_lines(step.get("lines", []), i)
            steps.append(step)

        try:
            return Playbook(**{**data, "steps": steps})
        except ValidationError as e:
            raise PlaybookLoadError(f"Playbook validation failed: {e}")

    def _parse(self, content: str, variables: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if variables:
            content = self._process_template(content, variables)

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise PlaybookLoadError(f"Failed to parse YAML: {e}")

        if not isinstance(data, dict):
            raise PlaybookLoadError("YAML content must be a dictionary")
        return data

    def _parse_lines(self, lines_data: Any, step_index: int) -> List[Command]:
        """
        Parse the commands of one step.

        Args:
            lines_data: Raw lines data from YAML
            step_index: Index of the step (for error messages)

        Returns:
            List of validated Command objects

        Raises:
            PlaybookLoadError: If a line cannot be parsed
        """
        if not isinstance(lines_data, list):
            raise PlaybookLoadError(f"Step {step_index}: 'lines' must be a list")

        commands: List[Command] = []
        for j, line in enumerate(lines_data):
            if isinstance(line, str):
                line = {"name": line}
            elif isinstance(line, dict) and "name" not in line and len(line) == 1:
                ((name, parameters),) = line.items()
                line = {"name": name, "parameters": parameters}

            if not isinstance(line, dict):
                raise PlaybookLoadError(
                    f"Step {step_index}, line {j} must be a command name or mapping"
                )

            parameters = line.get("parameters")
            if parameters is None:
                parameters = []
            elif not isinstance(parameters, list):
                parameters = [parameters]

            try:
                commands.append(Command(name=line.get("name", ""), parameters=parameters))
            except ValidationError as e:
                raise PlaybookLoadError(
                    f"Step {step_index}, line {j} validation failed: {e}"
                )

        return commands

    def _process_template(self, content: str, variables: Dict[str, Any]) -> str:
        try:
            template = self._jinja_env.from_string(content)
            return template.render(**variables)
        except TemplateSyntaxError as e:
            raise PlaybookLoadError(f"Template syntax error: {e}")


class EnvironmentLoader:
    """
    Loads environment configurations from YAML.

    The file maps environment names to their runners:

        console:
          failOnIncomplete: true
          runners:
            - name: console
        tutorial:
          runners:
            - katacoda
            - name: console
    """

    def load_from_file(self, file_path: Union[str, Path]) -> Dict[str, Environment]:
        """
        Load every environment defined in a YAML file.

        Raises:
            EnvironmentLoadError: If file cannot be read, parsed, or validated
        """
        content = _read_yaml_file(Path(file_path), EnvironmentLoadError)
        return self.load_from_string(content)

    def load_from_string(self, yaml_content: str) -> Dict[str, Environment]:
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise EnvironmentLoadError(f"Failed to parse YAML: {e}")

        if not isinstance(data, dict):
            raise EnvironmentLoadError("Environment configuration must be a dictionary")

        environments: Dict[str, Environment] = {}
        for name, config in data.items():
            if not isinstance(config, dict):
                raise EnvironmentLoadError(f"Environment '{name}' must be a dictionary")
            runners = [
                {"name": runner} if isinstance(runner, str) else runner
                for runner in config.get("runners") or []
            ]
            try:
                environments[str(name)] = Environment(**{**config, "runners": runners})
            except ValidationError as e:
                raise EnvironmentLoadError(f"Environment '{name}' validation failed: {e}")

        return environments

    def load_environment(self, file_path: Union[str, Path], name: str) -> Environment:
        """
        Load a single named environment.

        Raises:
            EnvironmentLoadError: If the environment is not defined in the file
        """
        environments = self.load_from_file(file_path)
        if name not in environments:
            raise EnvironmentLoadError(
                f"Environment '{name}' not defined. "
                f"Available: {', '.join(sorted(environments))}"
            )
        return environments[name]

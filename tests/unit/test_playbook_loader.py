"""Unit tests for PlaybookLoader and EnvironmentLoader."""

from pathlib import Path

import pytest

from src.playbooks.loader import (
    EnvironmentLoader,
    EnvironmentLoadError,
    PlaybookLoader,
    PlaybookLoadError,
)


@pytest.fixture
def loader() -> PlaybookLoader:
    """Create a PlaybookLoader instance."""
    return PlaybookLoader()


@pytest.fixture
def valid_playbook_yaml() -> str:
    """Return a valid playbook YAML string."""
    return """
name: first-steps
title: First steps
description: Build and start the sample application.
steps:
  - title: Create the project folder
    text: We start with an empty folder.
    lines:
      - name: createFolder
        parameters: ["my-thai-star"]
  - title: Clone and build
    textAfter: The build is done.
    lines:
      - cloneRepository: ["my-thai-star", "https://github.com/devonfw/my-thai-star.git"]
      - buildJava: ["my-thai-star/java/mtsj", true]
      - nextKatacodaStep
"""


class TestPlaybookLoader:
    """Test suite for PlaybookLoader."""

    def test_load_valid_playbook_from_string(self, loader, valid_playbook_yaml):
        playbook = loader.load_from_string(valid_playbook_yaml)

        assert playbook.name == "first-steps"
        assert playbook.title == "First steps"
        assert len(playbook.steps) == 2
        assert playbook.steps[0].text == "We start with an empty folder."
        assert playbook.steps[1].text_after == "The build is done."

    def test_full_and_compact_command_forms(self, loader, valid_playbook_yaml):
        playbook = loader.load_from_string(valid_playbook_yaml)

        first, second = playbook.steps
        assert first.lines[0].name == "createFolder"
        assert first.lines[0].parameters == ["my-thai-star"]
        assert second.lines[0].name == "cloneRepository"
        assert second.lines[0].parameters[1].endswith("my-thai-star.git")
        assert second.lines[1].parameters == ["my-thai-star/java/mtsj", True]
        assert second.lines[2].name == "nextKatacodaStep"
        assert second.lines[2].parameters == []

    def test_scalar_parameter_is_wrapped(self, loader):
        playbook = loader.load_from_string(
            """
name: p
steps:
  - lines:
      - createFolder: "folder"
"""
        )
        assert playbook.steps[0].lines[0].parameters == ["folder"]

    def test_template_variables(self, loader):
        playbook = loader.load_from_string(
            """
name: p
steps:
  - lines:
      - runServerJava: ["server", {port: {{ port }}}]
""",
            variables={"port": 8081},
        )
        assert playbook.steps[0].lines[0].parameters[1] == {"port": 8081}

    def test_load_from_file_sets_path(self, loader, valid_playbook_yaml, tmp_path: Path):
        playbook_file = tmp_path / "playbook.yaml"
        playbook_file.write_text(valid_playbook_yaml)

        playbook = loader.load_from_file(playbook_file)

        assert Path(playbook.path) == tmp_path.resolve()

    def test_load_from_file_relative_path(self, loader, tmp_path: Path):
        playbook_file = tmp_path / "playbook.yaml"
        playbook_file.write_text("path: files\nsteps:\n  - lines: [createFolder]\n")

        playbook = loader.load_from_file(playbook_file)

        assert Path(playbook.path) == (tmp_path / "files").resolve()
        assert playbook.name == "playbook"

    def test_missing_file(self, loader, tmp_path: Path):
        with pytest.raises(PlaybookLoadError, match="File not found"):
            loader.load_from_file(tmp_path / "missing.yaml")

    def test_directory_is_not_a_file(self, loader, tmp_path: Path):
        with pytest.raises(PlaybookLoadError, match="not a file"):
            loader.load_from_file(tmp_path)

    def test_invalid_yaml(self, loader):
        with pytest.raises(PlaybookLoadError, match="Failed to parse YAML"):
            loader.load_from_string("name: [unclosed")

    def test_yaml_must_be_mapping(self, loader):
        with pytest.raises(PlaybookLoadError, match="must be a dictionary"):
            loader.load_from_string("- just\n- a list\n")

    def test_missing_steps(self, loader):
        with pytest.raises(PlaybookLoadError, match="'steps' section"):
            loader.load_from_string("name: p\n")

    def test_empty_steps(self, loader):
        with pytest.raises(PlaybookLoadError, match="validation failed"):
            loader.load_from_string("name: p\nsteps: []\n")

    def test_invalid_line(self, loader):
        with pytest.raises(PlaybookLoadError, match="Step 0, line 0"):
            loader.load_from_string("name: p\nsteps:\n  - lines: [42]\n")


class TestEnvironmentLoader:
    """Test suite for EnvironmentLoader."""

    @pytest.fixture
    def environments_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "environments.yaml"
        path.write_text(
            """
console:
  failOnIncomplete: true
  runners:
    - name: console
tutorial:
  runners:
    - katacoda
    - name: console
      path: console
"""
        )
        return path

    def test_load_all(self, environments_file):
        environments = EnvironmentLoader().load_from_file(environments_file)

        assert set(environments) == {"console", "tutorial"}
        assert environments["console"].fail_on_incomplete is True
        assert environments["tutorial"].fail_on_incomplete is False
        assert [r.name for r in environments["tutorial"].runners] == ["katacoda", "console"]
        assert environments["tutorial"].runners[1].path == "console"

    def test_load_environment(self, environments_file):
        environment = EnvironmentLoader().load_environment(environments_file, "console")
        assert environment.runners[0].name == "console"

    def test_unknown_environment(self, environments_file):
        with pytest.raises(EnvironmentLoadError, match="Available: console, tutorial"):
            EnvironmentLoader().load_environment(environments_file, "nope")

    def test_environment_without_runners(self):
        with pytest.raises(EnvironmentLoadError, match="validation failed"):
            EnvironmentLoader().load_from_string("empty:\n  runners: []\n")

    def test_environment_load_error_is_playbook_load_error(self, tmp_path: Path):
        with pytest.raises(PlaybookLoadError):
            EnvironmentLoader().load_from_file(tmp_path / "missing.yaml")

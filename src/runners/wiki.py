"""WikiRunner - base class for runners that render AsciiDoc documentation."""

import logging
from pathlib import Path
from typing import Any, List, Optional

from jinja2 import Environment, FileSystemLoader

from ..playbooks.config import Settings
from ..playbooks.context import ExecutionContext
from ..playbooks.models import Playbook, RunCommand
from .base import Runner

logger = logging.getLogger(__name__)


class WikiRunner(Runner):
    """
    Renders each command as an AsciiDoc snippet and writes one page per playbook.

    Subclasses implement ``run_<command>`` handlers that call ``render_wiki``
    with a template from their ``templates`` directory. The page is written
    to ``<output>/wiki/<environment>/<playbook>.asciidoc`` on destroy.
    """

    skippable_commands = frozenset({"nextKatacodaStep"})

    def __init__(self, context: ExecutionContext, settings: Optional[Settings] = None) -> None:
        super().__init__(context, settings)
        self.environment_name = "default"
        self.output_directory = Path()
        self.sections: List[str] = []
        self._templates: Optional[Environment] = None

    def set_environment(self, environment_name: str) -> None:
        self.environment_name = environment_name

    async def init(self, playbook: Playbook) -> None:
        self.output_directory = self.create_folder(
            self.get_output_directory() / "wiki" / self.environment_name, False
        )
        self.sections = []

    async def destroy(self, playbook: Playbook) -> None:
        header = f"= {playbook.title or playbook.name}\n"
        if playbook.description:
            header += f"\n{playbook.description}\n"

        wiki_file = self.output_directory / f"{playbook.name}.asciidoc"
        wiki_file.write_text(header + "".join(self.sections), encoding="utf-8")
        logger.info("Wiki page written to %s", wiki_file)

    def render_wiki(self, run_command: RunCommand, template: str, **variables: Any) -> str:
        """
        Render a command template and append it to the page.

        The step title and text open the section on the step's first line;
        the step's trailing text closes it on the last line.

        Args:
            run_command: The command being rendered
            template: Template name relative to the runner's templates directory
            **variables: Template variables

        Returns:
            The rendered section
        """
        parts = []
        if run_command.line_index == 0:
            if run_command.step_title:
                parts.append(f"\n== {run_command.step_title}\n")
            if run_command.text:
                parts.append(f"\n{run_command.text}\n")

        parts.append(self._environment().get_template(template).render(**variables))

        if run_command.text_after:
            parts.append(f"\n{run_command.text_after}\n")

        section = "".join(parts)
        self.sections.append(section)
        return section

    def _environment(self) -> Environment:
        if self._templates is None:
            self._templates = Environment(
                loader=FileSystemLoader(str(self.get_runner_directory() / "templates")),
                autoescape=False,
                keep_trailing_newline=True,
            )
        return self._templates

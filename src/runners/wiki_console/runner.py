"""WikiConsole runner - documents console commands as AsciiDoc."""

from typing import Any, Dict

from ...playbooks.models import RunCommand
from ..wiki import WikiRunner


class WikiConsole(WikiRunner):
    """Writes the shell commands a reader would type to reproduce the playbook."""

    name = "wikiConsole"

    def run_install_devonfw_ide(self, run_command: RunCommand) -> None:
        self.render_wiki(
            run_command,
            "installDevonfwIde.asciidoc",
            tools=" ".join(run_command.parameter(0) or []),
            version=run_command.parameter(1),
        )

    def run_create_folder(self, run_command: RunCommand) -> None:
        self.render_wiki(run_command, "createFolder.asciidoc", path=run_command.parameter(0))

    def run_create_file(self, run_command: RunCommand) -> None:
        content = ""
        if run_command.parameter(1):
            content = self.get_playbook_file(run_command.parameter(1)).read_text(
                encoding="utf-8"
            )
        self.render_wiki(
            run_command,
            "createFile.asciidoc",
            path=run_command.parameter(0),
            content=content,
        )

    def run_clone_repository(self, run_command: RunCommand) -> None:
        self.render_wiki(
            run_command,
            "cloneRepository.asciidoc",
            path=run_command.parameter(0),
            url=run_command.parameter(1),
        )

    def run_npm_install(self, run_command: RunCommand) -> None:
        package: Dict[str, Any] = run_command.parameter(1) or {}
        self.render_wiki(
            run_command,
            "npmInstall.asciidoc",
            path=run_command.parameter(0),
            name=package.get("name"),
            is_global=bool(package.get("global")),
            args=" ".join(package.get("args", [])),
        )

    def run_build_java(self, run_command: RunCommand) -> None:
        self.render_wiki(
            run_command,
            "buildJava.asciidoc",
            path=run_command.parameter(0),
            skip_test=run_command.parameter(1) is not True,
        )

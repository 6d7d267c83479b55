"""Katacoda runner - renders playbook commands into a Katacoda scenario."""

import json
import logging
import posixpath
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader

from ...playbooks.config import Settings
from ...playbooks.context import ExecutionContext
from ...playbooks.errors import MissingArgumentError
from ...playbooks.models import Playbook, RunCommand
from ..base import Runner
from ..devonfw import ide_download_url, terminal_tools
from .assets import AssetManager

logger = logging.getLogger(__name__)

ROOT = "/root"
DEVON_SETTINGS_DIR = "/root/devonfw-settings/"
MINUTES_PER_STEP = 5


def execute_marker(terminal: str = "T1", interrupt: bool = False) -> str:
    """Katacoda's click-to-execute marker for a code block."""
    return "{{execute interrupt %s}}" % terminal if interrupt else "{{execute %s}}" % terminal


def get_cd_param(current_dir: str, target_dir: str) -> str:
    """Argument for ``cd`` to get from ``current_dir`` to ``target_dir``."""
    relative = posixpath.relpath(target_dir, current_dir)
    return target_dir if relative.startswith("..") else relative


def generate_index_json(
    title: str,
    minutes: int,
    steps: List[Dict[str, str]],
    assets: List[Dict[str, str]],
) -> Dict[str, Any]:
    """Build the ``index.json`` Katacoda needs to load a scenario."""
    return {
        "title": title,
        "difficulty": "Beginner",
        "time": f"{minutes} minutes",
        "details": {
            "steps": steps,
            "intro": {
                "text": "intro.md",
                "code": "intro_foreground.sh",
                "courseData": "intro_background.sh",
            },
            "finish": {"text": "finish.md"},
            "assets": {"client": assets},
        },
        "environment": {
            "uilayout": "editor-terminal",
            "uieditorpath": ROOT,
            "showdashboard": True,
        },
        "backend": {"imageid": "ubuntu:2004"},
    }


class Katacoda(Runner):
    """
    Generates a Katacoda tutorial instead of executing commands.

    Every playbook step becomes one ``stepN.md`` page. The runner tracks the
    directory the learner is in to emit ``cd`` hints, opens a new terminal
    for each kind of long-running process, and collects setup scripts and
    assets that are written out on destroy.
    """

    name = "katacoda"

    def __init__(self, context: ExecutionContext, settings: Optional[Settings] = None) -> None:
        super().__init__(context, settings)
        self.output_path_tutorial = Path()
        self.temp_path_tutorial = Path()
        self.setup_dir = Path()
        self.steps_count = 1
        self.steps: List[Dict[str, str]] = []
        self.setup_scripts: List[Dict[str, str]] = []
        self.current_dir = ROOT
        self.terminal_counter = 1
        self.terminals: Dict[str, int] = {"default": 1}
        self.foreground_lines: List[str] = []
        self.background_lines: List[str] = []
        self.asset_manager = AssetManager(Path("assets"))
        self._current_step_index: Optional[int] = None
        self._templates: Optional[Environment] = None

    async def init(self, playbook: Playbook) -> None:
        self.create_folder(self.get_output_directory() / "katacoda", False)
        self.output_path_tutorial = self.create_folder(
            self.get_output_directory() / "katacoda" / playbook.name, True
        )

        temp_path = self.create_folder(self.get_temp_directory() / "katacoda", False)
        self.temp_path_tutorial = self.create_folder(temp_path / playbook.name, True)
        self.setup_dir = self.create_folder(self.temp_path_tutorial / "setup", False)

        self.set_variable(self.workspace_directory, ROOT)
        self.asset_manager = AssetManager(self.output_path_tutorial / "assets")

    async def destroy(self, playbook: Playbook) -> None:
        (self.output_path_tutorial / "intro.md").write_text(
            playbook.description, encoding="utf-8"
        )
        (self.output_path_tutorial / "finish.md").write_text("", encoding="utf-8")

        self._render_template(
            "scripts/intro_foreground.sh",
            self.output_path_tutorial / "intro_foreground.sh",
            lines=self.foreground_lines,
        )
        self._render_template(
            "scripts/intro_background.sh",
            self.output_path_tutorial / "intro_background.sh",
            lines=self.background_lines,
        )
        self._render_template("scripts/setup.sh", self.setup_dir / "setup.sh")

        setup_assets = self.create_folder(self.output_path_tutorial / "assets" / "setup", True)
        self._write_setup_file(setup_assets / "setup.txt")

        self.asset_manager.register_directory(self.setup_dir, "setup", f"{ROOT}/setup", True)
        self.asset_manager.copy_assets()

        index = generate_index_json(
            playbook.title or playbook.name,
            len(self.steps) * MINUTES_PER_STEP,
            self.steps,
            self.asset_manager.get_katacoda_assets(),
        )
        (self.output_path_tutorial / "index.json").write_text(
            json.dumps(index, indent=2), encoding="utf-8"
        )
        logger.info("Katacoda tutorial written to %s", self.output_path_tutorial)

    def run_install_devonfw_ide(self, run_command: RunCommand) -> None:
        cd_command = self._change_current_dir(ROOT)
        self._add_setup_script(
            "Clone devonfw IDE settings",
            "cloneDevonfwIdeSettings.sh",
            tools=" ".join(terminal_tools(run_command.parameter(0) or [])),
            clone_dir=DEVON_SETTINGS_DIR,
        )

        page = self._page(run_command, "Install devonfw IDE")
        self._render_template(
            "installDevonfwIde.md",
            page,
            **self._text(run_command),
            cd_command=cd_command,
            download_url=ide_download_url(run_command.parameter(1)),
            settings_dir=DEVON_SETTINGS_DIR + "settings.git",
        )

        self.current_dir = posixpath.join(self.current_dir, "devonfw")
        self._use_devonfw_ide()

    def run_restore_devonfw_ide(self, run_command: RunCommand) -> None:
        """Install the IDE while the scenario boots instead of in a tutorial step."""
        self._add_setup_script(
            "Clone devonfw IDE settings",
            "cloneDevonfwIdeSettings.sh",
            tools=" ".join(terminal_tools(run_command.parameter(0) or [])),
            clone_dir=DEVON_SETTINGS_DIR,
        )
        self._add_setup_script(
            "Restore Devonfw IDE",
            "restoreDevonfwIde.sh",
            download_url=ide_download_url(run_command.parameter(1)),
            settings_dir=DEVON_SETTINGS_DIR + "settings.git",
        )
        self._add_intro_line(foreground=". ~/.bashrc")
        self._use_devonfw_ide()

    def run_create_folder(self, run_command: RunCommand) -> None:
        folder_path = get_cd_param(
            self.current_dir, self._workspace_path(run_command.parameter(0))
        )
        page = self._page(run_command, "Create a new folder")
        self._render_template(
            "createFolder.md", page, **self._text(run_command), folder_path=folder_path
        )

    def run_create_file(self, run_command: RunCommand) -> None:
        file_path = self._workspace_path(run_command.parameter(0))
        content = ""
        if run_command.parameter(1):
            content = self.get_playbook_file(run_command.parameter(1)).read_text(
                encoding="utf-8"
            )

        page = self._page(run_command, "Create a new file")
        self._render_template(
            "createFile.md",
            page,
            **self._text(run_command),
            file_path=file_path,
            file_dir=posixpath.dirname(file_path),
            file_name=posixpath.basename(file_path),
            editor_path=posixpath.relpath(file_path, ROOT),
            content=content,
        )

    def run_change_file(self, run_command: RunCommand) -> None:
        file_path = self._workspace_path(run_command.parameter(0))
        change: Dict[str, Any] = run_command.parameter(1) or {}

        content = change.get("contentKatacoda") or change.get("content")
        if content is None:
            source = change.get("fileKatacoda") or change.get("file")
            if not source:
                raise MissingArgumentError("changeFile", ["content or file"])
            content = self.get_playbook_file(source).read_text(encoding="utf-8")

        placeholder = change.get("placeholder", "")
        page = self._page(run_command, f"Change {posixpath.basename(file_path)}")
        self._render_template(
            "changeFile.md",
            page,
            **self._text(run_command),
            editor_path=posixpath.relpath(file_path, ROOT),
            content=content,
            placeholder=placeholder,
            data_target="insert" if placeholder else "replace",
        )

    def run_clone_repository(self, run_command: RunCommand) -> None:
        cd_command = self._change_current_dir(self._workspace_path(""))
        directory_path = (run_command.parameter(0) or "").strip()
        if directory_path:
            self.current_dir = posixpath.join(self.current_dir, directory_path)

        repository = run_command.parameter(1)
        page = self._page(run_command, f"Clone repository {repository}")
        self._render_template(
            "cloneRepository.md",
            page,
            **self._text(run_command),
            cd_command=cd_command,
            directory_path=directory_path,
            repository=repository,
        )

    def run_download_file(self, run_command: RunCommand) -> None:
        target_dir = self._workspace_path(run_command.parameter(2) or "")
        cd_command = self._change_current_dir(target_dir)
        page = self._page(run_command, "Download a file")
        self._render_template(
            "downloadFile.md",
            page,
            **self._text(run_command),
            cd_command=cd_command,
            url=run_command.parameter(0),
            file_name=run_command.parameter(1),
        )

    def run_npm_install(self, run_command: RunCommand) -> None:
        cd_command = self._change_current_dir(
            self._workspace_path(run_command.parameter(0))
        )
        package: Dict[str, Any] = run_command.parameter(1) or {}
        npm_command = {
            "name": package.get("name"),
            "global": bool(package.get("global")),
            "args": " ".join(package.get("args", [])) or None,
        }

        title = f"Install {package.get('name') or 'the dependencies'}"
        page = self._page(run_command, title)
        self._render_template(
            "npmInstall.md",
            page,
            **self._text(run_command),
            cd_command=cd_command,
            npm_command=npm_command,
            use_devon=self._uses_devon(),
        )

    def run_build_java(self, run_command: RunCommand) -> None:
        cd_command = self._change_current_dir(
            self._workspace_path(run_command.parameter(0))
        )
        page = self._page(run_command, "Build the java project")
        self._render_template(
            "buildJava.md",
            page,
            **self._text(run_command),
            cd_command=cd_command,
            skip_test=run_command.parameter(1) is not True,
            use_devon=self._uses_devon(),
        )

    def run_build_ng(self, run_command: RunCommand) -> None:
        self._disable_ng_analytics()
        cd_command = self._change_current_dir(
            self._workspace_path(run_command.parameter(0))
        )
        page = self._page(run_command, "Build the Angular project")
        self._render_template(
            "buildNg.md",
            page,
            **self._text(run_command),
            cd_command=cd_command,
            output_dir=run_command.parameter(1),
            use_devon=self._uses_devon(),
        )

    def run_run_server_java(self, run_command: RunCommand) -> None:
        self._render_server(run_command, "runServerJava", "Start the java server")

    def run_run_client_ng(self, run_command: RunCommand) -> None:
        self._disable_ng_analytics()
        self._add_intro_line(
            background="echo 'export NODE_OPTIONS=\"--max-old-space-size=16384\"' >> /root/.profile"
        )
        self._render_server(run_command, "runClientNg", "Start the Angular project")

    def run_docker_compose(self, run_command: RunCommand) -> None:
        self._render_server(run_command, "dockerCompose", "Execute Docker Compose")

    def run_next_katacoda_step(self, run_command: RunCommand) -> None:
        parts: List[str] = []
        for item in run_command.parameter(1) or []:
            if item.get("content"):
                parts.append(item["content"])
            elif item.get("file"):
                parts.append(
                    self.get_playbook_file(item["file"]).read_text(encoding="utf-8")
                )
            elif item.get("image"):
                image = self.get_playbook_file(item["image"])
                self.asset_manager.register_file(image, image.name, "", True)
                parts.append(f"![{image.name}](./assets/{image.name})")

        page = self._page(run_command, run_command.parameter(0))
        self._render_template(
            "nextKatacodaStep.md",
            page,
            **self._text(run_command),
            content="\n\n".join(parts),
        )

        if run_command.parameter(2):
            self.current_dir = self._workspace_path(run_command.parameter(2))

    def _render_server(self, run_command: RunCommand, function_name: str, title: str) -> None:
        server_dir = self._workspace_path(run_command.parameter(0))
        terminal_id, is_running = self._get_terminal(function_name)
        cd_command = self._change_current_dir(server_dir, terminal_id, is_running)
        options: Dict[str, Any] = run_command.parameter(1) or {}

        page = self._page(run_command, title)
        self._render_template(
            f"{function_name}.md",
            page,
            **self._text(run_command),
            cd_command=cd_command,
            terminal=f"T{terminal_id}",
            interrupt=is_running,
            port=options.get("port"),
            use_devon=self._uses_devon(),
        )

    def _use_devonfw_ide(self) -> None:
        self.set_variable(self.workspace_directory, f"{ROOT}/devonfw/workspaces/main")
        self.set_variable(self.use_devon_command, True)
        self._disable_ng_analytics()

    def _uses_devon(self) -> bool:
        return bool(self.get_variable(self.use_devon_command))

    def _add_setup_script(self, name: str, script: str, **variables: Any) -> None:
        """Render a script the scenario runs before the learner starts, once."""
        (self.setup_dir / script).write_text(
            self._render(f"scripts/{script}", **variables), encoding="utf-8"
        )
        if all(entry["script"] != script for entry in self.setup_scripts):
            self.setup_scripts.append({"name": name, "script": script})

    def _disable_ng_analytics(self) -> None:
        self._add_intro_line(
            foreground="export NG_CLI_ANALYTICS=CI",
            background="echo 'export NG_CLI_ANALYTICS=CI' >> /root/.profile",
        )

    def _add_intro_line(
        self, foreground: Optional[str] = None, background: Optional[str] = None
    ) -> None:
        """Add a line to the intro scripts, once."""
        if foreground and foreground not in self.foreground_lines:
            self.foreground_lines.append(foreground)
        if background and background not in self.background_lines:
            self.background_lines.append(background)

    def _workspace_path(self, relative: str) -> str:
        return posixpath.normpath(
            posixpath.join(self.get_variable(self.workspace_directory), relative)
        )

    def _text(self, run_command: RunCommand) -> Dict[str, str]:
        return {"text": run_command.text or "", "text_after": run_command.text_after or ""}

    def _page(self, run_command: RunCommand, title: str) -> Path:
        """Page for the command's step, opening a new one on a new step."""
        if self._current_step_index != run_command.step_index:
            if self._current_step_index is not None:
                self.steps_count += 1
            self._current_step_index = run_command.step_index
            self.steps.append(
                {
                    "title": run_command.step_title or title,
                    "text": f"step{self.steps_count}.md",
                }
            )
        return self.output_path_tutorial / f"step{self.steps_count}.md"

    def _change_current_dir(
        self,
        target_dir: str,
        terminal_id: Optional[int] = None,
        is_running: bool = False,
    ) -> str:
        """Render a ``cd`` hint, or nothing if no directory change is needed."""
        if is_running or (terminal_id is None and self.current_dir == target_dir):
            return ""

        base = ROOT if terminal_id is not None else self.current_dir
        if terminal_id is None:
            self.current_dir = target_dir

        return self._render(
            "cd.md",
            dir=get_cd_param(base, target_dir),
            terminal=f"T{terminal_id or 1}",
            terminal_id=terminal_id,
        )

    def _get_terminal(self, function_name: str) -> Tuple[int, bool]:
        """Terminal for a kind of long-running process, and whether it is busy."""
        if function_name in self.terminals:
            return self.terminals[function_name], True
        self.terminal_counter += 1
        self.terminals[function_name] = self.terminal_counter
        return self.terminal_counter, False

    def _write_setup_file(self, setup_file: Path) -> None:
        lines = [f"{len(self.setup_scripts)}", ""]
        for script in self.setup_scripts:
            lines.extend([script["name"], script["script"], "##########"])
        setup_file.write_text("\n".join(lines) + "\n", encoding="utf-8")

        self.asset_manager.register_file(setup_file, "setup/setup.txt", f"{ROOT}/setup", False)

    def _environment(self) -> Environment:
        if self._templates is None:
            self._templates = Environment(
                loader=FileSystemLoader(str(self.get_runner_directory() / "templates")),
                autoescape=False,
                keep_trailing_newline=True,
            )
            self._templates.globals["execute"] = execute_marker
        return self._templates

    def _render(self, name: str, **variables: Any) -> str:
        return self._environment().get_template(name).render(**variables)

    def _render_template(self, name: str, target: Path, **variables: Any) -> None:
        """Render a template and append it to ``target``."""
        with open(target, "a", encoding="utf-8") as f:
            f.write(self._render(name, **variables))

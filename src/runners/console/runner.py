"""Console runner - executes playbook commands as shell commands."""

import json
import logging
import os
import shutil
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ...assertions import Assertions, ReachabilityPoller, ServerOptions
from ...playbooks.config import Settings
from ...playbooks.context import ExecutionContext
from ...playbooks.errors import MissingArgumentError
from ...playbooks.models import Playbook, RunCommand, RunResult
from ..base import Runner, cleanup_on_failure
from ..devonfw import IDE_SETTINGS_REPOSITORY, ide_download_url, tool_directory
from ..processes import ProcessLifecycleManager
from .utils import (
    execute_command_async,
    execute_command_sync,
    execute_devon_command_async,
    execute_devon_command_sync,
)

logger = logging.getLogger(__name__)


class ConsolePlatform(str, Enum):
    """Operating system family the console runner executes on."""

    WINDOWS = "windows"
    LINUX = "linux"


class Console(Runner):
    """
    Executes playbook commands for real, inside the working directory.

    Long-running commands (servers, compose stacks) are started in the
    background and tracked so they can be torn down on destroy, or as soon
    as one of this runner's assertions fails.

    Once a playbook installs a devonfw IDE, tool commands run through its
    ``devon`` launcher. The user's own ``~/.devon`` configuration is moved
    aside for the run and restored on clean up.
    """

    name = "console"
    skippable_commands = frozenset({"nextKatacodaStep"})

    def __init__(
        self,
        context: ExecutionContext,
        settings: Optional[Settings] = None,
        processes: Optional[ProcessLifecycleManager] = None,
        poller: Optional[ReachabilityPoller] = None,
    ) -> None:
        super().__init__(context, settings)
        self.processes = processes or ProcessLifecycleManager()
        self.poller = poller or ReachabilityPoller()
        self.platform = ConsolePlatform.LINUX
        self.env: Dict[str, str] = {}
        self._server_process: Optional[subprocess.Popen] = None
        self._devon_home_restored = True

    async def init(self, playbook: Playbook) -> None:
        logger.info("Initializing console runner for %s", playbook.name)
        self.platform = (
            ConsolePlatform.WINDOWS if sys.platform == "win32" else ConsolePlatform.LINUX
        )
        self._back_up_devon_home()
        working_directory = self.create_folder(self.get_working_directory(), False)
        self.set_variable(self.workspace_directory, str(working_directory))
        self.env = dict(os.environ)

    async def destroy(self, playbook: Playbook) -> None:
        await self.clean_up()

    async def clean_up(self) -> None:
        """Terminate background processes and put the user's devonfw IDE config back."""
        await self.processes.clean_up()
        self._restore_devon_home()

    def workspace(self) -> Path:
        return Path(self.get_variable(self.workspace_directory))

    def devon_install_directory(self) -> Path:
        return self.get_working_directory() / "devonfw"

    def run_install_devonfw_ide(self, run_command: RunCommand) -> RunResult:
        """
        Install a devonfw IDE with the given tools into the working directory.

        Parameters are the list of tools and, optionally, the IDE version. Once
        installed, the workspace moves into the IDE and tool commands run
        through the ``devon`` launcher.
        """
        result = RunResult()
        tools: List[str] = list(run_command.parameter(0) or [])
        install_dir = self.devon_install_directory()

        if "npm" in tools or "ng" in tools:
            self.env["npm_config_prefix"] = str(install_dir / "software" / "node")
            self.env["npm_config_cache"] = ""

        settings_dir = self.create_folder(
            self.get_working_directory() / "devonfw-settings", True
        )
        execute_command_sync(
            f"git clone {IDE_SETTINGS_REPOSITORY} settings", settings_dir, result, self.env
        )
        if result.failed:
            return result

        settings = settings_dir / "settings"
        (settings / "devon.properties").write_text(
            f"DEVON_IDE_TOOLS=({' '.join(tools)})", encoding="utf-8"
        )
        npmrc = settings / "devon" / "conf" / "npm" / ".npmrc"
        npmrc.parent.mkdir(parents=True, exist_ok=True)
        with open(npmrc, "a", encoding="utf-8") as f:
            f.write("\nunsafe-perm=true")

        # The IDE setup only accepts settings from a git repository.
        settings_git = settings.rename(settings_dir / "settings.git")
        execute_command_sync(
            'git add -A && git config user.email "devonfw" '
            '&& git config user.name "devonfw" && git commit -m "devonfw"',
            settings_git,
            result,
            self.env,
        )

        self.create_folder(install_dir, True)
        download_url = ide_download_url(run_command.parameter(1))
        if self.platform == ConsolePlatform.WINDOWS:
            execute_command_sync(
                f"powershell.exe \"Invoke-WebRequest -OutFile devonfw.tar.gz '{download_url}'\"",
                install_dir,
                result,
                self.env,
            )
            execute_command_sync(
                "powershell.exe tar -xvzf devonfw.tar.gz", install_dir, result, self.env
            )
            setup = f"powershell.exe ./setup {settings_git.as_posix()}"
        else:
            execute_command_sync(
                f'wget -c "{download_url}" -O - | tar -xz', install_dir, result, self.env
            )
            setup = f"bash setup {settings_git.as_posix()}"
        execute_command_sync(setup, install_dir, result, self.env, input="yes")

        self.set_variable(self.workspace_directory, str(install_dir / "workspaces" / "main"))
        self.set_variable(self.use_devon_command, True)
        return result

    run_restore_devonfw_ide = run_install_devonfw_ide

    def run_create_folder(self, run_command: RunCommand) -> RunResult:
        result = RunResult()
        folder_path = self.workspace() / run_command.parameter(0)
        if not folder_path.exists():
            self.create_folder(folder_path, True)
        return result

    def run_create_file(self, run_command: RunCommand) -> RunResult:
        result = RunResult()
        file_path = self.workspace() / run_command.parameter(0)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        content = ""
        source = run_command.parameter(1)
        if source:
            content = self.get_playbook_file(source).read_text(encoding="utf-8")
        file_path.write_text(content, encoding="utf-8")
        return result

    def run_change_file(self, run_command: RunCommand) -> RunResult:
        result = RunResult()
        file_path = self.workspace() / run_command.parameter(0)
        change: Dict[str, Any] = run_command.parameter(1) or {}

        new_content = change.get("contentConsole") or change.get("content")
        if new_content is None:
            source = change.get("fileConsole") or change.get("file")
            if not source:
                raise MissingArgumentError("changeFile", ["content or file"])
            new_content = self.get_playbook_file(source).read_text(encoding="utf-8")

        placeholder = change.get("placeholder")
        if placeholder:
            content = file_path.read_text(encoding="utf-8")
            content = content.replace(placeholder, new_content, 1)
        else:
            content = new_content
        file_path.write_text(content, encoding="utf-8")
        return result

    def run_clone_repository(self, run_command: RunCommand) -> RunResult:
        result = RunResult()
        directory = self.workspace() / run_command.parameter(0, "")
        if run_command.parameter(0):
            self.create_folder(directory, True)
        execute_command_sync(
            f"git clone {run_command.parameter(1)}", directory, result, self.env
        )
        return result

    def run_download_file(self, run_command: RunCommand) -> RunResult:
        result = RunResult()
        url, file_name = run_command.parameter(0), run_command.parameter(1)

        directory = self.workspace()
        if run_command.parameter(2):
            directory = self.create_folder(directory / run_command.parameter(2), False)

        if self.platform == ConsolePlatform.WINDOWS:
            command = f"powershell.exe \"Invoke-WebRequest -OutFile {file_name} '{url}'\""
        else:
            command = f"wget -c {url} -O {file_name}"
        execute_command_sync(command, directory, result, self.env)
        return result

    def run_npm_install(self, run_command: RunCommand) -> RunResult:
        result = RunResult()
        project_dir = self.workspace() / run_command.parameter(0)
        package: Dict[str, Any] = run_command.parameter(1) or {}

        command = "npm install"
        if package.get("global"):
            command += " -g"
        if package.get("name"):
            command += f" {package['name']}"
        if package.get("args"):
            command += " " + " ".join(package["args"])
        self._execute(command, project_dir, result)
        return result

    def run_build_java(self, run_command: RunCommand) -> RunResult:
        result = RunResult()
        project_dir = self.workspace() / run_command.parameter(0)
        command = (
            "mvn clean install"
            if run_command.parameter(1) is True
            else "mvn clean install -Dmaven.test.skip=true"
        )
        self._execute(command, project_dir, result)
        return result

    def run_build_ng(self, run_command: RunCommand) -> RunResult:
        result = RunResult()
        project_dir = self.workspace() / run_command.parameter(0)
        command = "ng build"
        if run_command.parameter(1):
            command += f" --output-path {run_command.parameter(1)}"
        self._execute(command, project_dir, result)
        return result

    def run_run_server_java(self, run_command: RunCommand) -> RunResult:
        return self._start_server(
            run_command,
            "mvn spring-boot:run",
            kind="java",
            track_without_port=True,
            devon_aware=True,
        )

    def run_run_client_ng(self, run_command: RunCommand) -> RunResult:
        return self._start_server(
            run_command, "ng serve", kind="node", track_without_port=True, devon_aware=True
        )

    def run_docker_compose(self, run_command: RunCommand) -> RunResult:
        return self._start_server(
            run_command, "docker-compose up", kind="dockerCompose", track_without_port=False
        )

    @cleanup_on_failure
    async def assert_install_devonfw_ide(
        self, run_command: RunCommand, result: RunResult
    ) -> None:
        install_dir = self.devon_install_directory()
        assertions = (
            Assertions()
            .no_error_code(result)
            .no_exception(result)
            .directory_exists(install_dir / "software")
            .directory_exists(install_dir / "workspaces" / "main")
        )
        for tool in run_command.parameter(0) or []:
            assertions.directory_exists(
                install_dir / "software" / tool_directory(tool)
            )

    assert_restore_devonfw_ide = assert_install_devonfw_ide

    @cleanup_on_failure
    async def assert_create_folder(self, run_command: RunCommand, result: RunResult) -> None:
        Assertions().no_error_code(result).no_exception(result).directory_exists(
            self.workspace() / run_command.parameter(0)
        )

    @cleanup_on_failure
    async def assert_create_file(self, run_command: RunCommand, result: RunResult) -> None:
        Assertions().no_error_code(result).no_exception(result).file_exists(
            self.workspace() / run_command.parameter(0)
        )

    @cleanup_on_failure
    async def assert_change_file(self, run_command: RunCommand, result: RunResult) -> None:
        change: Dict[str, Any] = run_command.parameter(1) or {}
        content = change.get("contentConsole") or change.get("content")
        if content is None and (change.get("fileConsole") or change.get("file")):
            source = change.get("fileConsole") or change.get("file")
            content = self.get_playbook_file(source).read_text(encoding="utf-8")

        file_path = self.workspace() / run_command.parameter(0)
        Assertions().no_error_code(result).no_exception(result).file_exists(
            file_path
        ).file_contains(file_path, content or "")

    @cleanup_on_failure
    async def assert_clone_repository(
        self, run_command: RunCommand, result: RunResult
    ) -> None:
        repository: str = run_command.parameter(1, "")
        repo_name = repository.rstrip("/").rsplit("/", 1)[-1]
        if repo_name.endswith(".git"):
            repo_name = repo_name[: -len(".git")]

        directory = self.workspace() / run_command.parameter(0, "") / repo_name
        Assertions().no_error_code(result).no_exception(result).directory_exists(
            directory
        ).directory_not_empty(directory).repository_is_clean(directory)

    @cleanup_on_failure
    async def assert_download_file(self, run_command: RunCommand, result: RunResult) -> None:
        directory = self.workspace()
        if run_command.parameter(2):
            directory = directory / run_command.parameter(2)
        Assertions().no_error_code(result).no_exception(result).directory_exists(
            directory
        ).directory_not_empty(directory).file_exists(directory / run_command.parameter(1))

    @cleanup_on_failure
    async def assert_npm_install(self, run_command: RunCommand, result: RunResult) -> None:
        project_dir = self.workspace() / run_command.parameter(0)
        Assertions().no_error_code(result).no_exception(result).directory_exists(
            project_dir
        ).directory_exists(project_dir / "node_modules")

    @cleanup_on_failure
    async def assert_build_java(self, run_command: RunCommand, result: RunResult) -> None:
        project_dir = self.workspace() / run_command.parameter(0)
        assertions = Assertions().no_error_code(result).no_exception(result)
        for module in ("api", "core", "server"):
            assertions.directory_exists(project_dir / module / "target")

    @cleanup_on_failure
    async def assert_build_ng(self, run_command: RunCommand, result: RunResult) -> None:
        project_dir = self.workspace() / run_command.parameter(0)
        output_path = run_command.parameter(1)
        if output_path:
            output_path = output_path.strip()
        else:
            angular_json = json.loads(
                (project_dir / "angular.json").read_text(encoding="utf-8")
            )
            output_path = _lookup(angular_json, "outputPath") or "dist"

        Assertions().no_error_code(result).no_exception(result).directory_exists(
            project_dir / output_path
        ).directory_not_empty(project_dir / output_path)

    @cleanup_on_failure
    async def assert_run_server_java(
        self, run_command: RunCommand, result: RunResult
    ) -> None:
        await self._assert_server(run_command, result, require_path=True)

    @cleanup_on_failure
    async def assert_run_client_ng(self, run_command: RunCommand, result: RunResult) -> None:
        await self._assert_server(run_command, result)

    @cleanup_on_failure
    async def assert_docker_compose(
        self, run_command: RunCommand, result: RunResult
    ) -> None:
        await self._assert_server(run_command, result)

    def _start_server(
        self,
        run_command: RunCommand,
        command: str,
        kind: str,
        track_without_port: bool,
        devon_aware: bool = False,
    ) -> RunResult:
        result = RunResult()
        directory = self.workspace() / run_command.parameter(0)
        options = ServerOptions.from_parameter(run_command.parameter(1))

        if devon_aware and self.get_variable(self.use_devon_command):
            process = execute_devon_command_async(
                command, directory, self.devon_install_directory(), result, self.env
            )
        else:
            process = execute_command_async(command, directory, result, self.env)

        self._server_process = process
        if process is not None and process.pid:
            if options.port is not None or track_without_port:
                self.processes.register(process.pid, kind, options.port, handle=process)
        return result

    async def _assert_server(
        self, run_command: RunCommand, result: RunResult, require_path: bool = False
    ) -> None:
        command_name = run_command.command.name
        process = self._server_process
        self._server_process = None

        exit_code = _failure_exit_code(process)
        if exit_code is not None and not result.failed:
            logger.error("Command %s exited with code %s", command_name, exit_code)
            result.return_code = exit_code

        assertions = Assertions(self.poller).no_error_code(result).no_exception(result)

        if len(run_command.parameters) < 2:
            return

        options = ServerOptions.from_parameter(run_command.parameter(1))
        if require_path:
            options = options.model_copy(update={"require_path": True})
        if options.startup_time is None:
            logger.warning("No startup time for command %s has been set", command_name)

        await assertions.server_is_reachable(
            options, command_name, lambda: _failure_exit_code(process)
        )

    def _execute(self, command: str, directory: Path, result: RunResult) -> None:
        """Run a tool command, through the devonfw IDE once one is installed."""
        if self.get_variable(self.use_devon_command):
            execute_devon_command_sync(
                command, directory, self.devon_install_directory(), result, self.env
            )
        else:
            execute_command_sync(command, directory, result, self.env)

    def _back_up_devon_home(self) -> None:
        home = Path(self.settings.home_directory)
        devon, backup = home / ".devon", home / ".devon_backup"
        if backup.exists():
            logger.warning("Keeping existing devonfw IDE backup %s", backup)
        elif devon.exists():
            devon.rename(backup)
        self._devon_home_restored = False

    def _restore_devon_home(self) -> None:
        """Drop the IDE config a playbook created and bring back the user's own."""
        if self._devon_home_restored:
            return
        home = Path(self.settings.home_directory)
        devon, backup = home / ".devon", home / ".devon_backup"
        if devon.exists():
            shutil.rmtree(devon)
        if backup.exists():
            backup.rename(devon)
        self._devon_home_restored = True


def _failure_exit_code(process: Optional[subprocess.Popen]) -> Optional[int]:
    """Exit code of a background process that has already exited unsuccessfully."""
    if process is None:
        return None
    return process.poll() or None


def _lookup(data: Any, key: str) -> Optional[Any]:
    """Depth-first search for ``key`` in nested dicts and lists."""
    if isinstance(data, dict):
        if key in data:
            return data[key]
        values = list(data.values())
    elif isinstance(data, list):
        values = data
    else:
        return None

    for value in values:
        found = _lookup(value, key)
        if found is not None:
            return found
    return None

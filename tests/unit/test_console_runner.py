"""Tests for the console runner."""

import json
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import pytest

from src.assertions import ReachabilityPoller
from src.playbooks.config import Settings
from src.playbooks.context import ExecutionContext
from src.playbooks.errors import (
    AssertionFailedError,
    MissingArgumentError,
    ServerNotReachableError,
)
from src.playbooks.models import Command, Playbook, RunCommand, RunResult, Step
from src.runners.console import runner as console_module
from src.runners.console.runner import Console, ConsolePlatform
from src.runners.console.utils import execute_command_async, execute_command_sync
from src.runners.processes import ProcessInfo, ProcessLifecycleManager

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell")


class FakeProcessTable:
    """Process table that only records terminations."""

    def __init__(self) -> None:
        self.terminated: List[int] = []

    def list_processes(self) -> List[ProcessInfo]:
        return []

    def processes_on_port(self, port: int) -> List[ProcessInfo]:
        return []

    def terminate(self, pid: int) -> bool:
        self.terminated.append(pid)
        return True

    def wait_for_exit(self, pids, timeout: float) -> List[int]:
        return []


class FakePopen:
    """Started process whose exit codes are reported by successive polls."""

    def __init__(self, pid: int, *exit_codes: Optional[int]) -> None:
        self.pid = pid
        self.exit_codes = list(exit_codes)
        self.returncode: Optional[int] = None

    def poll(self) -> Optional[int]:
        if self.exit_codes:
            self.returncode = self.exit_codes.pop(0)
        return self.returncode


def command(name: str, *parameters) -> RunCommand:
    return RunCommand(
        command=Command(name=name, parameters=list(parameters)), step_index=0, line_index=0
    )


@pytest.fixture
def playbook(tmp_path: Path) -> Playbook:
    files = tmp_path / "playbook"
    files.mkdir()
    (files / "app.component.ts").write_text("export class AppComponent {}\n")
    (files / "snippet.ts").write_text("title = 'demo';")
    return Playbook(name="demo", path=str(files), steps=[Step()])


@pytest.fixture
def table() -> FakeProcessTable:
    return FakeProcessTable()


@pytest.fixture
def probed() -> List[str]:
    return []


@pytest.fixture
def console(tmp_path: Path, playbook: Playbook, table, probed) -> Console:
    async def probe(url: str) -> bool:
        probed.append(url)
        return True

    settings = Settings(
        working_directory=tmp_path / "working",
        output_directory=tmp_path / "output",
        temp_directory=tmp_path / "temp",
        home_directory=tmp_path / "home",
    )
    runner = Console(
        ExecutionContext(),
        settings,
        processes=ProcessLifecycleManager(table=table),
        poller=ReachabilityPoller(probe=probe),
    )
    runner.playbook_path = playbook.path
    return runner


@pytest.fixture
def captured(monkeypatch) -> List[str]:
    """Capture synchronous shell commands instead of running them."""
    commands: List[str] = []

    def fake_sync(cmd, directory, result, env=None, input=None):
        commands.append(cmd)

    monkeypatch.setattr(console_module, "execute_command_sync", fake_sync)

    def fake_devon_sync(cmd, directory, install_directory, result, env=None, input=None):
        commands.append(f"devon {cmd}")

    monkeypatch.setattr(console_module, "execute_devon_command_sync", fake_devon_sync)
    return commands


class TestInit:
    """Tests for console set-up."""

    @pytest.mark.asyncio
    async def test_init_creates_working_directory(self, console, playbook, tmp_path):
        await console.init(playbook)

        workspace = (tmp_path / "working").resolve()
        assert workspace.is_dir()
        assert console.get_variable(Console.workspace_directory) == str(workspace)
        assert console.workspace() == workspace

    def test_next_katacoda_step_is_skippable(self, console):
        assert console.command_is_skippable("nextKatacodaStep") is True


class TestFileCommands:
    """Tests for folder and file commands."""

    @pytest.mark.asyncio
    async def test_create_folder(self, console, playbook):
        await console.init(playbook)
        run_command = command("createFolder", "project/src")

        result = await console.run(run_command)
        await console.assert_command(run_command, result)

        assert (console.workspace() / "project" / "src").is_dir()

    @pytest.mark.asyncio
    async def test_create_empty_file(self, console, playbook):
        await console.init(playbook)
        run_command = command("createFile", "project/README.md")

        result = await console.run(run_command)
        await console.assert_command(run_command, result)

        assert (console.workspace() / "project" / "README.md").read_text() == ""

    @pytest.mark.asyncio
    async def test_create_file_from_playbook(self, console, playbook):
        await console.init(playbook)

        await console.run(command("createFile", "app/app.component.ts", "app.component.ts"))

        content = (console.workspace() / "app" / "app.component.ts").read_text()
        assert content == "export class AppComponent {}\n"

    @pytest.mark.asyncio
    async def test_change_file_at_placeholder(self, console, playbook):
        await console.init(playbook)
        target = console.workspace() / "app.ts"
        target.write_text("class App {\n  // TODO\n}\n")
        run_command = command(
            "changeFile", "app.ts", {"placeholder": "// TODO", "file": "snippet.ts"}
        )

        result = await console.run(run_command)
        await console.assert_command(run_command, result)

        assert target.read_text() == "class App {\n  title = 'demo';\n}\n"

    @pytest.mark.asyncio
    async def test_change_file_prefers_console_content(self, console, playbook):
        await console.init(playbook)
        target = console.workspace() / "config.txt"
        target.write_text("old")

        await console.run(
            command("changeFile", "config.txt", {"content": "a", "contentConsole": "b"})
        )

        assert target.read_text() == "b"

    @pytest.mark.asyncio
    async def test_change_file_without_content(self, console, playbook):
        await console.init(playbook)

        with pytest.raises(MissingArgumentError):
            console.run_change_file(command("changeFile", "config.txt", {}))

    @pytest.mark.asyncio
    async def test_failed_assert_cleans_up(self, console, playbook, table):
        await console.init(playbook)
        console.processes.register(4242, "java", 8081)

        with pytest.raises(AssertionFailedError):
            await console.assert_command(command("createFolder", "missing"), RunResult())

        assert table.terminated == [4242]
        assert console.processes.processes == []


class TestShellCommands:
    """Tests for commands that shell out."""

    @pytest.mark.asyncio
    async def test_npm_install_command(self, console, playbook, captured):
        await console.init(playbook)

        await console.run(command("npmInstall", "client"))
        await console.run(
            command("npmInstall", "client", {"global": True, "name": "@angular/cli", "args": ["--save"]})
        )

        assert captured == ["npm install", "npm install -g @angular/cli --save"]

    @pytest.mark.asyncio
    async def test_build_java_skips_tests_by_default(self, console, playbook, captured):
        await console.init(playbook)

        await console.run(command("buildJava", "server"))
        await console.run(command("buildJava", "server", True))

        assert captured == [
            "mvn clean install -Dmaven.test.skip=true",
            "mvn clean install",
        ]

    @pytest.mark.asyncio
    async def test_build_ng_output_path(self, console, playbook, captured):
        await console.init(playbook)

        await console.run(command("buildNg", "client", "out"))

        assert captured == ["ng build --output-path out"]

    @pytest.mark.asyncio
    async def test_download_file_per_platform(self, console, playbook, captured):
        await console.init(playbook)

        await console.run(command("downloadFile", "https://example.com/a.zip", "a.zip"))
        console.platform = ConsolePlatform.WINDOWS
        await console.run(command("downloadFile", "https://example.com/a.zip", "a.zip", "dl"))

        assert captured[0] == "wget -c https://example.com/a.zip -O a.zip"
        assert captured[1].startswith("powershell.exe")
        assert (console.workspace() / "dl").is_dir()

    @pytest.mark.asyncio
    async def test_clone_repository_directory(self, console, playbook, captured):
        await console.init(playbook)

        await console.run(command("cloneRepository", "repos", "https://github.com/x/app.git"))

        assert captured == ["git clone https://github.com/x/app.git"]
        assert (console.workspace() / "repos").is_dir()

    @pytest.mark.asyncio
    async def test_assert_build_ng_reads_angular_json(self, console, playbook):
        await console.init(playbook)
        project = console.workspace() / "client"
        (project / "build" / "app").mkdir(parents=True)
        (project / "build" / "app" / "index.html").write_text("<html></html>")
        (project / "angular.json").write_text(
            json.dumps({"projects": {"app": {"architect": {"build": {"options": {"outputPath": "build/app"}}}}}})
        )

        await console.assert_command(command("buildNg", "client"), RunResult())

    @pytest.mark.asyncio
    async def test_assert_build_java_modules(self, console, playbook):
        await console.init(playbook)
        for module in ("api", "core", "server"):
            (console.workspace() / "mtsj" / module / "target").mkdir(parents=True)

        await console.assert_command(command("buildJava", "mtsj"), RunResult())


class TestServers:
    """Tests for background server commands."""

    @pytest.fixture
    def started(self, monkeypatch) -> List[str]:
        commands: List[str] = []

        def fake_async(cmd, directory, result, env=None):
            commands.append(cmd)
            return FakePopen(1000 + len(commands))

        monkeypatch.setattr(console_module, "execute_command_async", fake_async)
        return commands

    @pytest.mark.asyncio
    async def test_run_server_java_is_tracked(self, console, playbook, started):
        await console.init(playbook)

        await console.run(command("runServerJava", "server", {"port": 8081, "path": "api"}))

        assert started == ["mvn spring-boot:run"]
        tracked = console.processes.processes[0]
        assert (tracked.pid, tracked.name, tracked.port) == (1001, "java", 8081)

    @pytest.mark.asyncio
    async def test_docker_compose_without_port_is_not_tracked(self, console, playbook, started):
        await console.init(playbook)

        await console.run(command("dockerCompose", "."))

        assert started == ["docker-compose up"]
        assert console.processes.processes == []

    @pytest.mark.asyncio
    async def test_assert_server_polls(self, console, playbook, probed):
        await console.init(playbook)

        await console.assert_command(
            command("runClientNg", "client", {"port": 4200, "startupTime": 60}), RunResult()
        )

        assert probed == ["http://localhost:4200/"]

    @pytest.mark.asyncio
    async def test_assert_server_java_requires_path(self, console, playbook, table):
        await console.init(playbook)
        console.processes.register(77, "java", 8081)

        with pytest.raises(MissingArgumentError, match="path"):
            await console.assert_command(
                command("runServerJava", "server", {"port": 8081}), RunResult()
            )

        assert table.terminated == [77]

    @pytest.mark.asyncio
    async def test_unreachable_server_cleans_up(self, tmp_path, playbook, table):
        async def probe(url: str) -> bool:
            return False

        async def no_sleep(seconds: float) -> None:
            return None

        console = Console(
            ExecutionContext(),
            Settings(working_directory=tmp_path / "w", home_directory=tmp_path / "home"),
            processes=ProcessLifecycleManager(table=table),
            poller=ReachabilityPoller(probe=probe, sleep=no_sleep),
        )
        await console.init(playbook)
        console.processes.register(99, "node", 4200)

        with pytest.raises(ServerNotReachableError):
            await console.assert_command(
                command("runClientNg", "client", {"port": 4200, "startupTime": 0}),
                RunResult(),
            )

        assert table.terminated == [99]

    @pytest.mark.asyncio
    async def test_tracked_server_keeps_its_handle(self, console, playbook, started):
        await console.init(playbook)

        await console.run(command("runServerJava", "server", {"port": 8081}))

        assert isinstance(console.processes.processes[0].handle, FakePopen)

    @pytest.mark.asyncio
    async def test_server_started_through_devon(self, console, playbook, started, monkeypatch):
        devon_started: List[str] = []

        def fake_devon_async(cmd, directory, install_directory, result, env=None):
            devon_started.append(f"{Path(install_directory).name}: {cmd}")
            return FakePopen(1500)

        monkeypatch.setattr(console_module, "execute_devon_command_async", fake_devon_async)
        await console.init(playbook)
        console.set_variable(Console.use_devon_command, True)

        await console.run(command("runClientNg", "client", {"port": 4200}))
        await console.run(command("dockerCompose", ".", {"port": 8080}))

        assert devon_started == ["devonfw: ng serve"]
        assert started == ["docker-compose up"]

    @pytest.mark.asyncio
    async def test_exited_server_fails_without_polling(
        self, console, playbook, table, probed, monkeypatch
    ):
        monkeypatch.setattr(
            console_module,
            "execute_command_async",
            lambda cmd, directory, result, env=None: FakePopen(2001, 1),
        )
        await console.init(playbook)
        run_command = command("dockerCompose", ".", {"port": 8080, "startupTime": 600})

        result = await console.run(run_command)
        with pytest.raises(AssertionFailedError, match="no_error_code"):
            await console.assert_command(run_command, result)

        assert result.return_code == 1
        assert probed == []
        assert table.terminated == [2001]

    @pytest.mark.asyncio
    async def test_polling_stops_when_server_dies(self, tmp_path, playbook, table, monkeypatch):
        probed: List[str] = []

        async def probe(url: str) -> bool:
            probed.append(url)
            return False

        async def no_sleep(seconds: float) -> None:
            return None

        monkeypatch.setattr(
            console_module,
            "execute_command_async",
            lambda cmd, directory, result, env=None: FakePopen(3001, None, None, 2),
        )
        console = Console(
            ExecutionContext(),
            Settings(working_directory=tmp_path / "w", home_directory=tmp_path / "home"),
            processes=ProcessLifecycleManager(table=table),
            poller=ReachabilityPoller(probe=probe, sleep=no_sleep),
        )
        await console.init(playbook)
        run_command = command("runClientNg", "client", {"port": 4200, "startupTime": 600})

        result = await console.run(run_command)
        with pytest.raises(ServerNotReachableError) as exc_info:
            await console.assert_command(run_command, result)

        assert exc_info.value.exit_code == 2
        assert len(probed) == 2
        assert table.terminated == [3001]

    @pytest.mark.asyncio
    async def test_destroy_terminates_processes(self, console, playbook, table):
        await console.init(playbook)
        console.processes.register(5, "dockerCompose", 8080)

        await console.destroy(playbook)

        assert table.terminated == [5]


class TestDevonfwIde:
    """Tests for installing and using a devonfw IDE."""

    @pytest.fixture
    def installer(self, monkeypatch) -> List[tuple]:
        """Record install commands; the settings clone creates its folder."""
        calls: List[tuple] = []

        def fake_sync(cmd, directory, result, env=None, input=None):
            calls.append((cmd, Path(directory).name, input))
            if cmd.endswith("ide-settings.git settings"):
                (Path(directory) / "settings").mkdir()

        monkeypatch.setattr(console_module, "execute_command_sync", fake_sync)
        return calls

    @pytest.mark.asyncio
    async def test_install_prepares_settings_and_runs_setup(self, console, playbook, installer):
        await console.init(playbook)
        console.platform = ConsolePlatform.LINUX

        result = await console.run(command("installDevonfwIde", ["java", "mvn", "ng"]))

        assert result.return_code == 0
        working = console.get_working_directory()
        settings = working / "devonfw-settings" / "settings.git"
        assert (settings / "devon.properties").read_text() == "DEVON_IDE_TOOLS=(java mvn ng)"
        assert (settings / "devon" / "conf" / "npm" / ".npmrc").read_text() == (
            "\nunsafe-perm=true"
        )
        assert [directory for _, directory, _ in installer] == [
            "devonfw-settings",
            "settings.git",
            "devonfw",
            "devonfw",
        ]
        assert installer[2][0] == 'wget -c "https://bit.ly/2BCkFa9" -O - | tar -xz'
        assert installer[3] == (f"bash setup {settings.as_posix()}", "devonfw", "yes")
        assert console.workspace() == working / "devonfw" / "workspaces" / "main"
        assert console.get_variable(Console.use_devon_command) is True
        assert console.env["npm_config_prefix"] == str(working / "devonfw" / "software" / "node")

    @pytest.mark.asyncio
    async def test_restore_installs_requested_version(self, console, playbook, installer):
        await console.init(playbook)
        console.platform = ConsolePlatform.LINUX

        await console.run(command("restoreDevonfwIde", ["java"], "2021.04.001"))

        assert "&v=2021.04.001" in installer[2][0]
        assert installer[2][0].startswith('wget -c "https://repository.sonatype.org/')

    @pytest.mark.asyncio
    async def test_failed_settings_clone_stops_install(self, console, playbook, monkeypatch):
        calls: List[str] = []

        def failing_sync(cmd, directory, result, env=None, input=None):
            calls.append(cmd)
            result.return_code = 128

        monkeypatch.setattr(console_module, "execute_command_sync", failing_sync)
        await console.init(playbook)

        result = await console.run(command("installDevonfwIde", ["java"]))

        assert result.return_code == 128
        assert len(calls) == 1
        assert console.get_variable(Console.use_devon_command) is None

    @pytest.mark.asyncio
    async def test_tool_commands_use_devon_once_installed(self, console, playbook, captured):
        await console.init(playbook)
        console.set_variable(Console.use_devon_command, True)

        await console.run(command("buildJava", "server"))
        await console.run(command("npmInstall", "client"))
        await console.run(command("cloneRepository", "", "https://github.com/x/app.git"))

        assert captured == [
            "devon mvn clean install -Dmaven.test.skip=true",
            "devon npm install",
            "git clone https://github.com/x/app.git",
        ]

    @pytest.mark.asyncio
    async def test_assert_checks_tool_directories(self, console, playbook, table):
        await console.init(playbook)
        install = console.devon_install_directory()
        for folder in ("software/java", "software/maven", "workspaces/main"):
            (install / folder).mkdir(parents=True)
        console.processes.register(61, "node", 4200)

        await console.assert_command(
            command("installDevonfwIde", ["java", "mvn"]), RunResult()
        )
        with pytest.raises(AssertionFailedError, match=r"software.node"):
            await console.assert_command(
                command("restoreDevonfwIde", ["java", "ng"]), RunResult()
            )

        assert table.terminated == [61]


class TestDevonHome:
    """Tests for protecting the user's own devonfw IDE configuration."""

    @pytest.fixture
    def home(self, tmp_path: Path) -> Path:
        home = tmp_path / "home"
        (home / ".devon").mkdir(parents=True)
        (home / ".devon" / "user.txt").write_text("mine")
        return home

    @pytest.mark.asyncio
    async def test_user_config_is_restored_on_destroy(self, console, playbook, home):
        await console.init(playbook)

        assert not (home / ".devon").exists()
        assert (home / ".devon_backup" / "user.txt").read_text() == "mine"

        (home / ".devon").mkdir()
        (home / ".devon" / "ide.txt").write_text("created by the IDE")
        await console.destroy(playbook)

        assert (home / ".devon" / "user.txt").read_text() == "mine"
        assert not (home / ".devon" / "ide.txt").exists()
        assert not (home / ".devon_backup").exists()

    @pytest.mark.asyncio
    async def test_repeated_clean_up_keeps_restored_config(self, console, playbook, home):
        await console.init(playbook)

        await console.clean_up()
        await console.destroy(playbook)

        assert (home / ".devon" / "user.txt").read_text() == "mine"

    @pytest.mark.asyncio
    async def test_ide_config_removed_without_user_config(self, console, playbook, tmp_path):
        home = tmp_path / "home"
        home.mkdir()
        await console.init(playbook)
        (home / ".devon").mkdir()

        await console.destroy(playbook)

        assert not (home / ".devon").exists()


@posix_only
class TestExecuteCommand:
    """Tests for the shell helpers."""

    def test_success_keeps_return_code(self, tmp_path):
        result = RunResult()
        execute_command_sync("true", tmp_path, result)
        assert result.return_code == 0

    def test_failure_records_return_code(self, tmp_path):
        result = RunResult()
        execute_command_sync("exit 3", tmp_path, result)
        assert result.return_code == 3

    def test_noop_after_failure(self, tmp_path):
        result = RunResult(return_code=1)
        execute_command_sync("touch created.txt", tmp_path, result)
        assert not (tmp_path / "created.txt").exists()

    def test_runs_in_directory(self, tmp_path):
        execute_command_sync("touch created.txt", tmp_path, RunResult())
        assert (tmp_path / "created.txt").exists()

    def test_async_returns_process(self, tmp_path):
        result = RunResult()
        process = execute_command_async("exit 0", tmp_path, result)
        assert isinstance(process, subprocess.Popen)
        assert process.pid > 0
        process.wait(timeout=10)

    def test_async_noop_after_failure(self, tmp_path):
        assert execute_command_async("exit 0", tmp_path, RunResult(return_code=2)) is None

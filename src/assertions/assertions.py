"""Assertions - fluent checks runners use to validate a command's outcome."""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Union

from ..playbooks.errors import AssertionFailedError
from ..playbooks.models import RunResult
from .reachability import ExitCode, ReachabilityPoller, ServerOptions

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class Assertions:
    """
    Chainable assertions over results and the filesystem.

    Each check raises AssertionFailedError on failure and returns self
    otherwise, so checks read as one expression.

    Example:
        Assertions() \\
            .no_error_code(result) \\
            .no_exception(result) \\
            .directory_exists(project_dir / "node_modules")
    """

    def __init__(self, poller: Optional[ReachabilityPoller] = None) -> None:
        self.poller = poller or ReachabilityPoller()

    def no_error_code(self, result: RunResult) -> "Assertions":
        if result.return_code != 0:
            raise AssertionFailedError(
                "no_error_code", "run result", f"Return code: {result.return_code}"
            )
        return self

    def no_exception(self, result: RunResult) -> "Assertions":
        if result.exceptions:
            details = "; ".join(
                f"{type(error).__name__}: {error}" for error in result.exceptions
            )
            raise AssertionFailedError("no_exception", "run result", details)
        return self

    def directory_exists(self, path: PathLike) -> "Assertions":
        if not Path(path).is_dir():
            raise AssertionFailedError("directory_exists", str(path))
        return self

    def directory_not_empty(self, path: PathLike) -> "Assertions":
        directory = Path(path)
        if not directory.is_dir() or not any(directory.iterdir()):
            raise AssertionFailedError("directory_not_empty", str(path))
        return self

    def file_exists(self, path: PathLike) -> "Assertions":
        if not Path(path).is_file():
            raise AssertionFailedError("file_exists", str(path))
        return self

    def file_contains(self, path: PathLike, content: str) -> "Assertions":
        """Check that a file contains ``content`` verbatim."""
        file_path = Path(path)
        if not file_path.is_file():
            raise AssertionFailedError("file_contains", str(path), "File does not exist")
        if content not in file_path.read_text(encoding="utf-8"):
            raise AssertionFailedError(
                "file_contains", str(path), "Expected content not found"
            )
        return self

    def repository_is_clean(self, path: PathLike) -> "Assertions":
        """Check that a git working tree has no uncommitted changes."""
        process = subprocess.run(
            ["git", "status", "--porcelain"],
            cwd=str(path),
            capture_output=True,
            text=True,
        )
        if process.returncode != 0:
            raise AssertionFailedError(
                "repository_is_clean", str(path), process.stderr.strip()
            )
        if process.stdout.strip():
            raise AssertionFailedError(
                "repository_is_clean", str(path), "Working tree has changes"
            )
        return self

    async def server_is_reachable(
        self,
        options: ServerOptions,
        command_name: str = "serverIsReachable",
        exit_code: Optional[ExitCode] = None,
    ) -> "Assertions":
        """Poll the server described by ``options`` until it responds or its process dies."""
        await self.poller.wait_for(options, command_name, exit_code)
        return self

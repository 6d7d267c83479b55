"""Shell helpers for the console runner."""

import logging
import subprocess
from pathlib import Path
from typing import Dict, Optional, Union

from ...playbooks.models import RunResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def execute_command_sync(
    command: str,
    directory: PathLike,
    result: RunResult,
    env: Optional[Dict[str, str]] = None,
    input: Optional[str] = None,
) -> None:
    """
    Run a shell command to completion, recording a failure in ``result``.

    Does nothing if ``result`` already failed, so a chain of commands stops
    at the first failure.
    """
    if result.failed:
        return

    process = subprocess.run(
        command,
        shell=True,
        cwd=str(directory),
        input=input,
        env=env,
        capture_output=True,
        text=True,
    )
    if process.returncode != 0:
        logger.error(
            "Error executing command: %s (exit code: %s)\n%s\n%s",
            command,
            process.returncode,
            process.stderr,
            process.stdout,
        )
        result.return_code = process.returncode


def execute_command_async(
    command: str,
    directory: PathLike,
    result: RunResult,
    env: Optional[Dict[str, str]] = None,
) -> Optional[subprocess.Popen]:
    """
    Start a shell command in the background.

    Returns:
        The started process, or None if ``result`` had already failed
    """
    if result.failed:
        return None

    try:
        process = subprocess.Popen(
            command,
            shell=True,
            cwd=str(directory),
            env=env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        logger.error("Could not start command %s: %s", command, e)
        result.return_code = 1
        return None

    if not process.pid:
        result.return_code = 1
    return process


def devon_script(devon_install_directory: PathLike) -> Path:
    """The ``devon`` launcher inside a devonfw IDE installation."""
    return Path(devon_install_directory) / "scripts" / "devon"


def execute_devon_command_sync(
    devon_command: str,
    directory: PathLike,
    devon_install_directory: PathLike,
    result: RunResult,
    env: Optional[Dict[str, str]] = None,
    input: Optional[str] = None,
) -> None:
    """Run ``devon <devon_command>`` to completion with the IDE's tool versions."""
    execute_command_sync(
        f"{devon_script(devon_install_directory)} {devon_command}",
        directory,
        result,
        env,
        input,
    )


def execute_devon_command_async(
    devon_command: str,
    directory: PathLike,
    devon_install_directory: PathLike,
    result: RunResult,
    env: Optional[Dict[str, str]] = None,
) -> Optional[subprocess.Popen]:
    """Start ``devon <devon_command>`` in the background."""
    return execute_command_async(
        f"{devon_script(devon_install_directory)} {devon_command}",
        directory,
        result,
        env,
    )

"""Reachability polling - wait for a local HTTP endpoint to come up."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..playbooks.errors import MissingArgumentError, ServerNotReachableError

logger = logging.getLogger(__name__)

Probe = Callable[[str], Awaitable[bool]]
ExitCode = Callable[[], Optional[int]]

DEFAULT_INTERVAL = 5.0
DEFAULT_STARTUP_TIME = 600.0


class ServerOptions(BaseModel):
    """Server parameters of a command that starts a background service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    port: Optional[int] = Field(None, description="Port the server listens on")
    path: str = Field(default="", description="Path to probe below the root")
    interval: float = Field(
        default=DEFAULT_INTERVAL, alias="intervall", description="Seconds between probes"
    )
    startup_time: Optional[float] = Field(
        None, alias="startupTime", description="Seconds the server may take to start"
    )
    require_path: bool = Field(default=False, alias="requirePath")

    @classmethod
    def from_parameter(cls, parameter: Any) -> "ServerOptions":
        """Build options from a command parameter (a mapping, or nothing)."""
        if isinstance(parameter, dict):
            return cls.model_validate(parameter)
        return cls()


def build_url(port: int, path: str = "") -> str:
    return f"http://localhost:{port}/{path.lstrip('/')}"


async def is_reachable(url: str, timeout: float = 5.0) -> bool:
    """
    Probe an HTTP endpoint once.

    Any HTTP response counts as reachable; connection errors and timeouts do not.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            await client.get(url)
        return True
    except httpx.HTTPError:
        return False


class ReachabilityPoller:
    """
    Polls an endpoint until it responds or a startup budget runs out.

    The loop is bounded by a wall-clock deadline rather than a retry count,
    so a slow probe eats into the budget instead of extending it.

    Example:
        poller = ReachabilityPoller()
        await poller.wait(8080, "api/health", startup_time=120)
    """

    def __init__(
        self,
        probe: Optional[Probe] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.probe = probe or is_reachable
        self.clock = clock
        self.sleep = sleep

    async def wait(
        self,
        port: Optional[int],
        path: Optional[str] = "",
        interval: float = DEFAULT_INTERVAL,
        startup_time: float = DEFAULT_STARTUP_TIME,
        require_path: bool = False,
        command_name: str = "serverIsReachable",
        exit_code: Optional[ExitCode] = None,
    ) -> int:
        """
        Wait until ``http://localhost:<port>/<path>`` is reachable.

        Args:
            port: Port to probe
            path: Path to probe
            interval: Seconds to wait between probes
            startup_time: Total seconds the endpoint may take to come up
            require_path: Whether a path must be given
            command_name: Command name used in error messages
            exit_code: Reports the exit code of the server process, or None
                while it is still running. Polling stops early on a nonzero
                code; a clean exit may mean the server detached.

        Returns:
            Number of probes performed

        Raises:
            MissingArgumentError: If port (or a required path) is missing
            ServerNotReachableError: If the deadline passes first, or the
                server process exits
        """
        if not port or (require_path and not path):
            missing = ["port"] if not port else []
            if require_path and not path:
                missing.append("path")
            raise MissingArgumentError(
                command_name,
                missing,
                "For further information read the command documentation.",
            )

        url = build_url(port, path or "")
        deadline = self.clock() + startup_time
        probes = 0

        while True:
            probes += 1
            if await self.probe(url):
                logger.info("Reached %s after %d probe(s)", url, probes)
                return probes
            code = exit_code() if exit_code is not None else None
            if code:
                raise ServerNotReachableError(url, startup_time, exit_code=code)
            if self.clock() >= deadline:
                raise ServerNotReachableError(url, startup_time)
            logger.debug("%s not reachable yet, retrying in %ss", url, interval)
            await self.sleep(interval)

    async def wait_for(
        self,
        options: ServerOptions,
        command_name: str,
        exit_code: Optional[ExitCode] = None,
    ) -> int:
        """Wait using parsed ServerOptions."""
        return await self.wait(
            port=options.port,
            path=options.path,
            interval=options.interval,
            startup_time=(
                options.startup_time
                if options.startup_time is not None
                else DEFAULT_STARTUP_TIME
            ),
            require_path=options.require_path,
            command_name=command_name,
            exit_code=exit_code,
        )

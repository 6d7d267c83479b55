"""Process lifecycle management - tracking and terminating background processes."""

import asyncio
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Set

import psutil

logger = logging.getLogger(__name__)


@dataclass
class AsyncProcess:
    """A background process started by a runner."""

    pid: int
    name: str
    port: Optional[int] = None
    handle: Optional[subprocess.Popen] = field(default=None, repr=False, compare=False)

    def exit_code(self) -> Optional[int]:
        """Exit code if the process has already exited, else None."""
        return self.handle.poll() if self.handle is not None else None


@dataclass(frozen=True)
class ProcessInfo:
    """A running process with its parent link."""

    pid: int
    ppid: int
    name: str


@dataclass
class CleanupOutcome:
    """Result of terminating all tracked process trees."""

    terminated: List[int] = field(default_factory=list)
    survivors: List[int] = field(default_factory=list)

    @property
    def all_terminated(self) -> bool:
        return not self.survivors


class ProcessTable(Protocol):
    """Enumerates processes with parent links and terminates them."""

    def list_processes(self) -> List[ProcessInfo]:
        ...

    def processes_on_port(self, port: int) -> List[ProcessInfo]:
        ...

    def terminate(self, pid: int) -> bool:
        ...

    def wait_for_exit(self, pids: Iterable[int], timeout: float) -> List[int]:
        ...


class PsutilProcessTable:
    """ProcessTable backed by the operating system via psutil."""

    def list_processes(self) -> List[ProcessInfo]:
        processes = []
        for proc in psutil.process_iter(["pid", "ppid", "name"]):
            info = proc.info
            processes.append(
                ProcessInfo(
                    pid=info["pid"], ppid=info["ppid"] or 0, name=info["name"] or ""
                )
            )
        return processes

    def processes_on_port(self, port: int) -> List[ProcessInfo]:
        try:
            connections = psutil.net_connections(kind="inet")
        except psutil.AccessDenied:
            logger.warning("Not allowed to list connections on port %s", port)
            return []

        processes = []
        seen: Set[int] = set()
        for conn in connections:
            if not conn.pid or conn.pid in seen:
                continue
            if not conn.laddr or conn.laddr.port != port:
                continue
            seen.add(conn.pid)
            try:
                proc = psutil.Process(conn.pid)
                processes.append(ProcessInfo(conn.pid, proc.ppid(), proc.name()))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return processes

    def terminate(self, pid: int) -> bool:
        try:
            psutil.Process(pid).terminate()
            return True
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            logger.warning("Not allowed to terminate process %s", pid)
            return False

    def wait_for_exit(self, pids: Iterable[int], timeout: float) -> List[int]:
        procs = []
        for pid in pids:
            try:
                procs.append(psutil.Process(pid))
            except psutil.NoSuchProcess:
                continue

        _, alive = psutil.wait_procs(procs, timeout=timeout)
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue
        _, still_alive = psutil.wait_procs(alive, timeout=1)
        return [proc.pid for proc in still_alive]


class ProcessLifecycleManager:
    """
    Tracks background processes a runner starts and guarantees their termination.

    Every tracked process is killed together with its whole process tree,
    children before parents, so no child is orphaned. A second pass kills
    processes bound to a tracked port whose name matches the tracked kind,
    which catches servers that detached from the process that spawned them.

    The manager does not decide when to clean up; the owning runner does
    (on destroy or after a failed assertion).
    """

    def __init__(self, table: Optional[ProcessTable] = None, timeout: float = 10.0) -> None:
        """
        Initialize the manager.

        Args:
            table: Process table to query (defaults to psutil)
            timeout: Seconds to wait for terminated processes to exit
        """
        self.table: ProcessTable = table or PsutilProcessTable()
        self.timeout = timeout
        self.processes: List[AsyncProcess] = []

    def register(
        self,
        pid: int,
        name: str,
        port: Optional[int] = None,
        handle: Optional[subprocess.Popen] = None,
    ) -> AsyncProcess:
        """Track a background process, optionally with the handle that started it."""
        process = AsyncProcess(pid=pid, name=name, port=port, handle=handle)
        self.processes.append(process)
        logger.debug("Tracking %s process %s on port %s", name, pid, port)
        return process

    @staticmethod
    def descendants(pid: int, processes: List[ProcessInfo]) -> List[int]:
        """
        List ``pid`` and all of its descendants in post-order.

        Leaves come first and ``pid`` itself last, which is the order in
        which they must be terminated.
        """
        children: Dict[int, List[int]] = {}
        for proc in processes:
            if proc.pid != proc.ppid:
                children.setdefault(proc.ppid, []).append(proc.pid)

        order: List[int] = []
        visited: Set[int] = set()

        def visit(current: int) -> None:
            if current in visited:
                return
            visited.add(current)
            for child in children.get(current, []):
                visit(child)
            order.append(current)

        visit(pid)
        return order

    async def clean_up(self) -> CleanupOutcome:
        """
        Terminate every tracked process tree and wait for them to exit.

        Returns:
            CleanupOutcome listing terminated pids and any survivors
        """
        if not self.processes:
            return CleanupOutcome()

        tracked = list(self.processes)
        self.processes.clear()
        outcome = await asyncio.to_thread(self._terminate_all, tracked)

        if outcome.all_terminated:
            logger.info("Terminated %d background process(es)", len(outcome.terminated))
        else:
            logger.warning("Processes survived cleanup: %s", outcome.survivors)
        return outcome

    def _terminate_all(self, tracked: List[AsyncProcess]) -> CleanupOutcome:
        snapshot = self.table.list_processes()
        terminated: List[int] = []

        for process in tracked:
            for pid in self.descendants(process.pid, snapshot):
                if pid not in terminated and self.table.terminate(pid):
                    logger.debug("Terminated process %s", pid)
                    terminated.append(pid)

        for process in tracked:
            if process.port is None:
                continue
            names = {process.name, process.name + ".exe"}
            for proc in self.table.processes_on_port(process.port):
                if proc.name in names and proc.pid not in terminated:
                    if self.table.terminate(proc.pid):
                        logger.debug(
                            "Terminated %s process %s on port %s",
                            proc.name,
                            proc.pid,
                            process.port,
                        )
                        terminated.append(proc.pid)

        survivors = self.table.wait_for_exit(terminated, self.timeout)
        for process in tracked:
            # Reap the processes this interpreter started.
            process.exit_code()
        return CleanupOutcome(terminated=terminated, survivors=survivors)

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import aiofiles
import psutil

from .disk import BlockDevice
from .errors import ExecutableNotFoundError, ReadinessTimeoutError
from .logging_config import get_logger
from .shell import ShellExecutor, decode_output

SOCKET_NAME = "mysql.sock"
PID_FILE_NAME = "mysql.pid"
CONFIG_NAME = "my.cnf"

INSTALL_CANDIDATES = ["mysql_install_db5", "mysql_install_db"]
LAUNCH_CANDIDATES = ["mysqld_safe5", "mysqld_safe"]

# Seconds the launcher gets to exit after SIGTERM before it is killed
LAUNCH_TERM_TIMEOUT = 5.0

CONFIG_TEMPLATE = """\
[client]
socket = {socket}

[mysqld]
socket = {socket}
thread_concurrency = 4
innodb_file_per_table
innodb_data_file_path = ibdata1:10M:autoextend
ft_min_word_len = 3
"""


def render_config(socket_path: str) -> str:
    return CONFIG_TEMPLATE.format(socket=socket_path)


@dataclass(frozen=True)
class PollPolicy:
    retries: int = 10
    delay: float = 1.0


@dataclass(frozen=True)
class ServerCandidates:
    install: List[str] = field(default_factory=lambda: list(INSTALL_CANDIDATES))
    launch: List[str] = field(default_factory=lambda: list(LAUNCH_CANDIDATES))


async def wait_for(
    condition: Callable[[], bool],
    *,
    message: str,
    policy: Optional[PollPolicy] = None,
    logger: Optional[logging.Logger] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> bool:
    """Poll `condition` up to `policy.retries` times, then check once more.

    Returns the result of the last check.
    """
    policy = policy or PollPolicy()
    logger = logger or get_logger(__name__)
    for _ in range(policy.retries):
        if condition():
            return True
        logger.info(message)
        await sleep(policy.delay)
    return condition()


async def resolve_executable(
    shell: ShellExecutor,
    candidates: Sequence[str],
    *,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Return the path of the first candidate `which` can find."""
    logger = logger or get_logger(__name__)
    for name in candidates:
        path = await shell.which(name)
        if path:
            logger.debug("Resolved %s -> %s", name, path)
            return path
    raise ExecutableNotFoundError(candidates)


class ServerProcess:
    """A MySQL server whose data directory, socket and pid file live on a RAM disk.

    The mountpoint is borrowed from the owning `BlockDevice`; the server must
    be stopped before that device is unmounted.
    """

    def __init__(
        self,
        mountpoint: str,
        *,
        install_command: str,
        launch_command: str,
        shell: Optional[ShellExecutor] = None,
        poll: Optional[PollPolicy] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.mountpoint = mountpoint
        root = Path(mountpoint)
        self.socket_path = str(root / SOCKET_NAME)
        self.pid_file_path = str(root / PID_FILE_NAME)
        self.config_path = str(root / CONFIG_NAME)
        self.install_command = install_command
        self.launch_command = launch_command
        self.logger = logger or get_logger(__name__)
        self.shell = shell or ShellExecutor(logger=self.logger)
        self.poll = poll or PollPolicy()
        self._sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
        self.term_timeout = LAUNCH_TERM_TIMEOUT
        self._launch: Optional[asyncio.subprocess.Process] = None
        self._launch_task: Optional[asyncio.Task] = None
        self._process: Optional[psutil.Process] = None
        self._started = False

    @classmethod
    async def create(
        cls,
        disk: BlockDevice,
        *,
        shell: Optional[ShellExecutor] = None,
        candidates: Optional[ServerCandidates] = None,
        poll: Optional[PollPolicy] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "ServerProcess":
        """Build a server against a mounted `disk`, resolving its executables.

        Exits the process if no install or launch executable can be found.
        """
        logger = logger or get_logger(__name__)
        shell = shell or disk.shell
        candidates = candidates or ServerCandidates()
        mountpoint = await disk.mountpoint()

        commands: Dict[str, str] = {}
        for role, names in (("install", candidates.install), ("launch", candidates.launch)):
            try:
                commands[role] = await resolve_executable(shell, names, logger=logger)
            except ExecutableNotFoundError as exc:
                logger.error("Could not find a MySQL %s executable; tried: %s", role, ", ".join(exc.candidates))
                raise SystemExit(1) from exc

        return cls(
            mountpoint,
            install_command=commands["install"],
            launch_command=commands["launch"],
            shell=shell,
            poll=poll,
            logger=logger,
        )

    @property
    def started(self) -> bool:
        return self._started

    def launch_arguments(self) -> List[str]:
        # --defaults-file must come first so no other option files are read
        return [
            self.launch_command,
            f"--defaults-file={self.config_path}",
            f"--socket={self.socket_path}",
            f"--datadir={self.mountpoint}",
            f"--pid-file={self.pid_file_path}",
            "--skip-networking",
        ]

    async def _write_config(self) -> None:
        async with aiofiles.open(self.config_path, "w", encoding="utf-8") as fh:
            await fh.write(render_config(self.socket_path))

    def _pid_file_exists(self) -> bool:
        return os.path.exists(self.pid_file_path)

    async def start(self) -> None:
        await self._write_config()
        self.logger.debug("Wrote %s", self.config_path)

        await self.shell.run_checked([self.install_command, f"--datadir={self.mountpoint}"])
        self.logger.info("Initialized MySQL data directory in %s", self.mountpoint)

        self._launch = await self.shell.spawn(self.launch_arguments(), new_session=True)
        self._launch_task = asyncio.create_task(self._watch_launch(self._launch))
        self._started = True

        ready = await wait_for(
            self._pid_file_exists,
            message=f"Waiting for MySQL to start ({self.pid_file_path})",
            policy=self.poll,
            logger=self.logger,
            sleep=self._sleep,
        )
        if not ready:
            raise ReadinessTimeoutError(self.pid_file_path, self.poll.retries + 1)
        self.logger.info("MySQL started")
        await self._track_process()

    async def _watch_launch(self, proc: asyncio.subprocess.Process) -> None:
        out, _ = await proc.communicate()
        self.logger.debug("MySQL launcher exited with %s: %s", proc.returncode, decode_output(out).strip())

    async def _track_process(self) -> None:
        pid = await self.read_pid()
        if pid is None:
            return
        try:
            await self._tracked_process(pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            self.logger.debug("Cannot inspect MySQL process %s", pid)

    async def _tracked_process(self, pid: int) -> psutil.Process:
        proc = self._process
        if proc is None or proc.pid != pid:
            proc = await asyncio.to_thread(psutil.Process, pid)
            # The first cpu_percent call only sets the baseline
            proc.cpu_percent(interval=None)
            self._process = proc
        return proc

    async def read_pid(self) -> Optional[int]:
        try:
            async with aiofiles.open(self.pid_file_path, "r", encoding="utf-8") as fh:
                content = (await fh.read()).strip()
        except FileNotFoundError:
            return None
        if not content.isdigit():
            self.logger.warning("Ignoring malformed pid file %s: %r", self.pid_file_path, content)
            return None
        return int(content)

    def _send_signal(self, pid: int, sig: int) -> None:
        os.kill(pid, sig)

    async def stop(self) -> bool:
        """Ask the server to exit and wait for its pid file to go away.

        Returns False if the pid file is still there after polling gives up.
        """
        if not self._started:
            return True
        self._started = False

        pid = await self.read_pid()
        if pid is not None:
            try:
                self._send_signal(pid, signal.SIGTERM)
            except ProcessLookupError:
                self.logger.debug("MySQL process %s already gone", pid)
            self.logger.info("Sent SIGTERM to MySQL (pid %s)", pid)

        stopped = await wait_for(
            lambda: not self._pid_file_exists(),
            message="Waiting for MySQL to stop",
            policy=self.poll,
            logger=self.logger,
            sleep=self._sleep,
        )
        if stopped:
            self.logger.info("MySQL stopped")
        else:
            self.logger.warning("MySQL pid file %s still present after stop", self.pid_file_path)

        self._process = None
        await self._reap_launch()
        return stopped

    def _signal_launch(self, pid: int, sig: int) -> None:
        # The launcher leads its own process group; this reaches mysqld too
        os.killpg(pid, sig)

    async def _terminate_launch(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the launcher's group, escalating to SIGKILL after `term_timeout`."""
        for sig in (signal.SIGTERM, signal.SIGKILL):
            self.logger.info("Sending %s to MySQL launcher (pid %s)", signal.Signals(sig).name, proc.pid)
            try:
                self._signal_launch(proc.pid, sig)
            except ProcessLookupError:
                return
            try:
                await asyncio.wait_for(proc.wait(), timeout=self.term_timeout)
                return
            except asyncio.TimeoutError:
                self.logger.warning("MySQL launcher %s still running after %s", proc.pid, signal.Signals(sig).name)

    async def _reap_launch(self) -> None:
        proc, task = self._launch, self._launch_task
        self._launch = None
        self._launch_task = None
        if proc is not None and proc.returncode is None:
            await self._terminate_launch(proc)
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def stats(self) -> Dict[str, Any]:
        """Best-effort liveness and resource usage of the running server."""
        stats: Dict[str, Any] = {"alive": False, "pid": None}
        pid = await self.read_pid()
        if pid is None:
            return stats
        stats["pid"] = pid
        try:
            proc = await self._tracked_process(pid)
            with proc.oneshot():
                stats["alive"] = proc.is_running()
                stats["cpu_percent"] = proc.cpu_percent(interval=None)
                stats["memory_rss"] = proc.memory_info().rss
                stats["num_threads"] = proc.num_threads()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
        return stats

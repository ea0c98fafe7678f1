from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from ramdb.config import Profile
from ramdb.server import PollPolicy
from ramdb.shell import ShellExecutor, normalize_command

Handler = Callable[[List[str]], Tuple[int, str]]

DEVICE = "/dev/disk9"


class FakeProcess:
    """Stand-in for an asyncio subprocess that has already exited."""

    def __init__(self, pid: int, returncode: int, output: str = ""):
        self.pid = pid
        self.returncode = returncode
        self.output = output

    async def communicate(self):
        return self.output.encode(), None

    async def wait(self) -> int:
        return self.returncode


class FakeShell(ShellExecutor):
    """ShellExecutor that dispatches on the executable name instead of spawning."""

    def __init__(self, handlers: Optional[Dict[str, Handler]] = None, events: Optional[List[str]] = None):
        super().__init__()
        self.handlers: Dict[str, Handler] = dict(handlers or {})
        self.calls: List[List[str]] = []
        self.events = events if events is not None else []

    def on(self, name: str, handler: Handler) -> None:
        self.handlers[name] = handler

    def reply(self, name: str, returncode: int = 0, output: str = "") -> None:
        self.handlers[name] = lambda cmd: (returncode, output)

    def _dispatch(self, command) -> Tuple[List[str], int, str]:
        cmd = normalize_command(command)
        self.calls.append(cmd)
        key = " ".join(cmd[:2]) if " ".join(cmd[:2]) in self.handlers else cmd[0]
        self.events.append(key)
        handler = self.handlers.get(key)
        if handler is None:
            return cmd, 127, ""
        returncode, output = handler(cmd)
        return cmd, returncode, output

    async def _execute(self, command):
        return self._dispatch(command)

    async def spawn(self, command, *, new_session: bool = False):
        _, returncode, output = self._dispatch(command)
        return FakeProcess(pid=-1, returncode=returncode, output=output)

    def called(self, name: str) -> List[List[str]]:
        return [c for c in self.calls if c[0] == name or " ".join(c[:2]) == name]


def mount_table(mountpoint: Path, device: str = DEVICE) -> str:
    return "\n".join(
        [
            "/dev/disk1s1 on / (apfs, local, journaled)",
            f"{device} on {mountpoint} (hfs, local, nodev, nosuid, noowners, mounted by tester)",
            "map auto_home on /System/Volumes/Data/home (autofs, automounted)",
        ]
    )


def disk_shell(mountpoint: Path, events: Optional[List[str]] = None) -> FakeShell:
    shell = FakeShell(events=events)
    shell.reply("hdiutil attach", output=f"{DEVICE}          \n")
    shell.reply("diskutil")
    shell.reply("mount", output=mount_table(mountpoint))
    shell.reply("hdiutil detach")
    return shell


def server_shell(mountpoint: Path, events: Optional[List[str]] = None, pid: int = 4242) -> FakeShell:
    """A disk shell that also knows `which`, the installer and a launcher writing the pid file."""
    shell = disk_shell(mountpoint, events=events)
    paths = {
        "mysql_install_db": "/opt/local/bin/mysql_install_db",
        "mysqld_safe": "/opt/local/bin/mysqld_safe",
    }
    shell.on("which", lambda cmd: (0, paths[cmd[1]]) if cmd[1] in paths else (1, ""))
    shell.reply("/opt/local/bin/mysql_install_db")

    def launch(cmd: Sequence[str]) -> Tuple[int, str]:
        (mountpoint / "mysql.pid").write_text(f"{pid}\n")
        return 0, ""

    shell.on("/opt/local/bin/mysqld_safe", launch)
    return shell


@pytest.fixture
def mountpoint(tmp_path: Path) -> Path:
    path = tmp_path / "Volumes" / "ramdb"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def fast_profile() -> Profile:
    return Profile(poll=PollPolicy(retries=5, delay=0))

from __future__ import annotations

import asyncio
import logging
import shlex
from typing import Iterable, List, Optional, Tuple, Union

from .errors import CommandError
from .logging_config import get_logger

Command = Union[str, Iterable[str]]


def normalize_command(command: Command) -> List[str]:
    if isinstance(command, str):
        command = shlex.split(command)
    cmd_list = [str(part) for part in command]
    if not cmd_list:
        raise ValueError("command must contain at least one argument")
    return cmd_list


def decode_output(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


class ShellExecutor:
    """Runs external commands and captures their combined, trimmed output.

    `run` and `run_checked` block the caller until the command exits;
    long-running commands go through `spawn`, which hands back the process.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or get_logger(__name__)

    def _log_command(self, cmd: List[str]) -> None:
        self.logger.debug("$ %s", " ".join(shlex.quote(part) for part in cmd))

    async def _execute(self, command: Command) -> Tuple[List[str], int, str]:
        """Run `command` to completion and return (argv, exit status, raw output)."""
        cmd = normalize_command(command)
        self._log_command(cmd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError:
            # Mirror a shell: unknown executables exit 127 with no output
            self.logger.debug("executable not found: %s", cmd[0])
            return cmd, 127, ""
        out, _ = await proc.communicate()
        return cmd, proc.returncode if proc.returncode is not None else -1, decode_output(out)

    async def run(self, command: Command) -> str:
        """Run `command` and return its trimmed output; exit status is ignored."""
        _, _, output = await self._execute(command)
        return output.strip()

    async def run_checked(self, command: Command) -> str:
        """Run `command`, raising `CommandError` on a non-zero exit status."""
        cmd, returncode, output = await self._execute(command)
        output = output.strip()
        if returncode != 0:
            raise CommandError(cmd, returncode, output)
        return output

    async def spawn(self, command: Command, *, new_session: bool = False) -> asyncio.subprocess.Process:
        """Start `command` without waiting for it and return the process handle.

        With `new_session` the child leads its own process group, so the
        whole group can be signalled through its pid.
        """
        cmd = normalize_command(command)
        self._log_command(cmd)
        return await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=new_session,
        )

    async def which(self, name: str) -> str:
        return await self.run(["which", name])

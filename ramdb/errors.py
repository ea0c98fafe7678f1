from __future__ import annotations

from typing import List, Optional, Sequence


class RamdbError(Exception):
    """Base class for ramdb failures."""


class CommandError(RamdbError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, output: str = "") -> None:
        self.command: List[str] = [str(part) for part in command]
        self.returncode = returncode
        self.output = output
        super().__init__(f"command {' '.join(self.command)!r} exited with status {returncode}")


class MountpointNotFoundError(RamdbError):
    def __init__(self, device: Optional[str]) -> None:
        self.device = device
        super().__init__(f"no mountpoint found for device {device!r}")


class ExecutableNotFoundError(RamdbError):
    def __init__(self, candidates: Sequence[str]) -> None:
        self.candidates = list(candidates)
        super().__init__(f"none of {', '.join(self.candidates)} could be found")


class ReadinessTimeoutError(RamdbError, TimeoutError):
    def __init__(self, path: str, attempts: int) -> None:
        self.path = path
        self.attempts = attempts
        super().__init__(f"{path} did not appear after {attempts} attempts")

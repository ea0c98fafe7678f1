from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import CommandError, MountpointNotFoundError
from .logging_config import get_logger
from .shell import ShellExecutor

SECTOR_SIZE = 512


def sectors_for(size_mb: int) -> int:
    return size_mb * 1024 * 1024 // SECTOR_SIZE


@dataclass(frozen=True)
class DiskCommands:
    """Argument templates for the memory-backed device tooling.

    Elements are formatted with `{sectors}`, `{label}` and `{device}`.
    """

    create: List[str] = field(default_factory=lambda: ["hdiutil", "attach", "-nomount", "ram://{sectors}"])
    format: List[str] = field(default_factory=lambda: ["diskutil", "erasevolume", "HFS+", "{label}", "{device}"])
    list_mounts: List[str] = field(default_factory=lambda: ["mount"])
    eject: List[str] = field(default_factory=lambda: ["hdiutil", "detach", "{device}"])
    force_eject: List[str] = field(default_factory=lambda: ["hdiutil", "detach", "-force", "{device}"])

    def render(self, name: str, **values: object) -> List[str]:
        template = getattr(self, name)
        return [part.format(**values) for part in template]


@dataclass(frozen=True)
class MountResult:
    device: Optional[str] = None
    mountpoint: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.mountpoint is not None


class BlockDevice:
    """A volatile memory-backed disk, created on `mount` and ejected on `unmount`."""

    def __init__(
        self,
        size_mb: int,
        *,
        shell: Optional[ShellExecutor] = None,
        label: str = "ramdb",
        commands: Optional[DiskCommands] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if int(size_mb) <= 0:
            raise ValueError(f"size must be a positive number of megabytes, got {size_mb!r}")
        self.size_mb = int(size_mb)
        self.label = label
        self.commands = commands or DiskCommands()
        self.logger = logger or get_logger(__name__)
        self.shell = shell or ShellExecutor(logger=self.logger)
        self.device: Optional[str] = None
        self._mountpoint: Optional[str] = None
        self._mounted_once = False

    @property
    def sectors(self) -> int:
        return sectors_for(self.size_mb)

    @property
    def is_mounted(self) -> bool:
        return self.device is not None

    async def mount(self) -> MountResult:
        """Create, format and resolve the device.

        On a command or lookup failure the partial state is torn down before
        returning; the failure is carried in the result rather than raised.
        """
        if self._mounted_once:
            raise RuntimeError("a BlockDevice can only be mounted once")
        self._mounted_once = True

        try:
            self.device = await self.shell.run_checked(
                self.commands.render("create", sectors=self.sectors)
            )
            self.logger.info("Created %dMB RAM disk at %s", self.size_mb, self.device)

            await self.shell.run_checked(
                self.commands.render("format", label=self.label, device=self.device)
            )
            self.logger.info("Formatted %s as %r", self.device, self.label)

            path = await self.mountpoint()
            self.logger.info("Mounted %s at %s", self.device, path)
        except (CommandError, MountpointNotFoundError) as exc:
            self.logger.error("Mount failed: %s: %s", type(exc).__name__, exc)
            device = self.device
            await self.unmount()
            return MountResult(device=device, error=exc)

        return MountResult(device=self.device, mountpoint=path)

    async def mountpoint(self) -> str:
        if self._mountpoint is not None:
            return self._mountpoint
        if not self.device:
            raise MountpointNotFoundError(self.device)

        output = await self.shell.run(self.commands.render("list_mounts"))
        pattern = re.compile(rf"^{re.escape(self.device)} on (.+?) \(", re.MULTILINE)
        match = pattern.search(output)
        if not match:
            raise MountpointNotFoundError(self.device)
        self._mountpoint = match.group(1)
        return self._mountpoint

    async def unmount(self) -> None:
        if not self.device:
            return

        device = self.device
        self.logger.info("Ejecting %s", device)
        try:
            await self.shell.run_checked(self.commands.render("eject", device=device))
        except CommandError as exc:
            self.logger.warning("Eject of %s failed (status %s), forcing", device, exc.returncode)
            try:
                await self.shell.run_checked(self.commands.render("force_eject", device=device))
            except CommandError as force_exc:
                self.logger.error("Forced eject of %s failed: %s", device, force_exc)

        self.device = None
        self._mountpoint = None

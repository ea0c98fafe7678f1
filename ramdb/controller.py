from __future__ import annotations

import asyncio
import logging
import signal
from typing import Awaitable, Callable, Optional

from .config import Profile, Session
from .disk import BlockDevice
from .logging_config import get_logger
from .server import ServerProcess
from .shell import ShellExecutor

ServerFactory = Callable[[BlockDevice], Awaitable[ServerProcess]]

STOP_SIGNALS = (signal.SIGHUP, signal.SIGTERM)


class LifecycleController:
    """Owns the RAM disk and the MySQL server for one session.

    Acquisition order is disk, then server; teardown runs in reverse and is
    safe to repeat.
    """

    def __init__(
        self,
        session: Session,
        *,
        profile: Optional[Profile] = None,
        shell: Optional[ShellExecutor] = None,
        disk: Optional[BlockDevice] = None,
        server_factory: Optional[ServerFactory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session
        self.profile = profile or Profile()
        self.logger = logger or get_logger(__name__)
        self.shell = shell or ShellExecutor(logger=self.logger)
        self.disk = disk or BlockDevice(
            session.size,
            shell=self.shell,
            label=self.profile.label,
            commands=self.profile.disk_commands,
            logger=self.logger,
        )
        self._server_factory = server_factory or self._default_server_factory
        self.server: Optional[ServerProcess] = None
        self._stop_event = asyncio.Event()
        self._cleanup_lock = asyncio.Lock()
        self._installed_signals: list = []

    async def _default_server_factory(self, disk: BlockDevice) -> ServerProcess:
        return await ServerProcess.create(
            disk,
            shell=self.shell,
            candidates=self.profile.candidates,
            poll=self.profile.poll,
            logger=self.logger,
        )

    def request_stop(self) -> None:
        """Release `run()` from its wait; cleanup follows."""
        self._stop_event.set()

    def _on_stop_signal(self, sig: signal.Signals) -> None:
        self.logger.info("Received %s, cleaning up", sig.name)
        self.request_stop()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_stop_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not on the main thread, or the platform lacks the signal
                self.logger.debug("Cannot install handler for %s", sig.name)
                continue
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals = []

    async def start(self) -> bool:
        result = await self.disk.mount()
        if not result.ok:
            return False

        self.server = await self._server_factory(self.disk)
        await self.server.start()
        self._install_signal_handlers()

        self.logger.info("MySQL is running on a %dMB RAM disk at %s", self.session.size, result.mountpoint)
        self.logger.info("Connect with: mysql -uroot --socket=%s", self.server.socket_path)
        self.logger.info("Press Ctrl+C to stop and discard the database")
        self.logger.debug("Server stats: %s", await self.server.stats())
        return True

    async def run(self) -> int:
        """Bring everything up, wait for a stop request, then tear down."""
        try:
            if not await self.start():
                self.logger.error("Could not set up the RAM disk; not starting MySQL")
                return 1
            await self._stop_event.wait()
            return 0
        except asyncio.CancelledError:
            self.logger.info("Interrupted, shutting down")
            raise
        finally:
            await self.cleanup()

    async def cleanup(self) -> None:
        async with self._cleanup_lock:
            if self._installed_signals:
                self._remove_signal_handlers()
            try:
                if self.server is not None:
                    await self.server.stop()
            finally:
                await self.disk.unmount()

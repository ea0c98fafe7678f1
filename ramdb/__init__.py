"""ramdb - a throwaway MySQL server on a RAM disk."""

from .errors import (
    RamdbError,
    CommandError,
    MountpointNotFoundError,
    ExecutableNotFoundError,
    ReadinessTimeoutError,
)
from .shell import ShellExecutor
from .disk import BlockDevice, DiskCommands, MountResult, sectors_for
from .server import ServerProcess, ServerCandidates, PollPolicy, render_config, wait_for
from .config import Session, Profile, load_profile, parse_profile_data
from .controller import LifecycleController
from .supervisor import SessionSupervisor
from .worker import run_worker

__all__ = [
    "RamdbError",
    "CommandError",
    "MountpointNotFoundError",
    "ExecutableNotFoundError",
    "ReadinessTimeoutError",
    "ShellExecutor",
    "BlockDevice",
    "DiskCommands",
    "MountResult",
    "sectors_for",
    "ServerProcess",
    "ServerCandidates",
    "PollPolicy",
    "render_config",
    "wait_for",
    "Session",
    "Profile",
    "load_profile",
    "parse_profile_data",
    "LifecycleController",
    "SessionSupervisor",
    "run_worker",
]

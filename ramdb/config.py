from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .disk import DiskCommands
from .server import PollPolicy, ServerCandidates

DEFAULT_SIZE_MB = 1024


def _env_size(default: int = DEFAULT_SIZE_MB) -> int:
    raw = os.environ.get("RAMDB_SIZE")
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"RAMDB_SIZE must be an integer number of megabytes, got {raw!r}") from None


@dataclass(frozen=True)
class Session:
    verbose: bool = False
    size: int = DEFAULT_SIZE_MB

    def __post_init__(self) -> None:
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size <= 0:
            raise ValueError(f"size must be a positive integer, got {self.size!r}")

    @classmethod
    def from_args(cls, *, verbose: bool = False, size: Optional[int] = None) -> "Session":
        return cls(verbose=bool(verbose), size=size if size is not None else _env_size())

    def to_args(self) -> List[str]:
        """Command-line flags that reproduce this session."""
        args = ["-s", str(self.size)]
        if self.verbose:
            args.append("-v")
        return args


@dataclass(frozen=True)
class Profile:
    """Host-specific overrides for the disk tooling, server executables and polling."""

    label: str = "ramdb"
    disk_commands: DiskCommands = field(default_factory=DiskCommands)
    candidates: ServerCandidates = field(default_factory=ServerCandidates)
    poll: PollPolicy = field(default_factory=PollPolicy)


def _string_list(raw: Any, key: str) -> List[str]:
    if not isinstance(raw, list) or not raw:
        raise ValueError(f"profile key '{key}' must be a non-empty list")
    if not all(isinstance(x, (str, int, float)) for x in raw):
        raise ValueError(f"profile key '{key}' must contain only scalars")
    return [str(x) for x in raw]


def _mapping(raw: Any, key: str) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"profile key '{key}' must be a mapping")
    return raw


def _parse_disk_commands(raw: Mapping[str, Any]) -> DiskCommands:
    known = {f.name for f in fields(DiskCommands)}
    overrides: Dict[str, List[str]] = {}
    for name, value in raw.items():
        if name not in known:
            raise ValueError(f"unknown disk command '{name}' (expected one of {', '.join(sorted(known))})")
        overrides[name] = _string_list(value, f"disk.commands.{name}")
    return DiskCommands(**overrides)


def _parse_poll(raw: Mapping[str, Any]) -> PollPolicy:
    retries = raw.get("retries", PollPolicy.retries)
    delay = raw.get("delay", PollPolicy.delay)
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise ValueError("profile key 'poll.retries' must be a non-negative integer")
    if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
        raise ValueError("profile key 'poll.delay' must be a non-negative number")
    return PollPolicy(retries=retries, delay=float(delay))


def parse_profile_data(raw: Any) -> Profile:
    """Parse an in-memory profile document; missing sections keep their defaults."""
    if raw is None:
        return Profile()
    if not isinstance(raw, dict):
        raise ValueError("profile must be a mapping")

    disk = _mapping(raw.get("disk"), "disk")
    server = _mapping(raw.get("server"), "server")
    poll = _mapping(raw.get("poll"), "poll")

    defaults = ServerCandidates()
    candidates = ServerCandidates(
        install=_string_list(server["install_candidates"], "server.install_candidates")
        if "install_candidates" in server
        else defaults.install,
        launch=_string_list(server["launch_candidates"], "server.launch_candidates")
        if "launch_candidates" in server
        else defaults.launch,
    )

    return Profile(
        label=str(disk.get("label") or Profile.label),
        disk_commands=_parse_disk_commands(_mapping(disk.get("commands"), "disk.commands")),
        candidates=candidates,
        poll=_parse_poll(poll),
    )


def load_profile(path: Optional[Union[str, Path]] = None) -> Profile:
    """Load the profile at `path`, or at `RAMDB_PROFILE` when no path is given."""
    if path is None:
        env_path = os.environ.get("RAMDB_PROFILE")
        if not env_path:
            return Profile()
        path = Path(os.path.expanduser(env_path))

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"profile not found: {p}")
    with p.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return parse_profile_data(raw)

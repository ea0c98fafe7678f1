from pathlib import Path

import pytest

from ramdb.config import DEFAULT_SIZE_MB, Profile, Session, load_profile, parse_profile_data
from ramdb.disk import DiskCommands
from ramdb.server import INSTALL_CANDIDATES, LAUNCH_CANDIDATES, PollPolicy


class TestSession:
    """Tests for Session construction."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("RAMDB_SIZE", raising=False)
        session = Session.from_args()
        assert session.size == DEFAULT_SIZE_MB == 1024
        assert session.verbose is False

    def test_explicit_size_beats_environment(self, monkeypatch):
        monkeypatch.setenv("RAMDB_SIZE", "2048")
        assert Session.from_args(size=256).size == 256

    def test_environment_size(self, monkeypatch):
        monkeypatch.setenv("RAMDB_SIZE", "2048")
        assert Session.from_args().size == 2048

    def test_bad_environment_size(self, monkeypatch):
        monkeypatch.setenv("RAMDB_SIZE", "lots")
        with pytest.raises(ValueError, match="RAMDB_SIZE"):
            Session.from_args()

    @pytest.mark.parametrize("size", [0, -1, True, "512"])
    def test_invalid_size(self, size):
        with pytest.raises(ValueError):
            Session(size=size)

    def test_immutable(self):
        session = Session()
        with pytest.raises(AttributeError):
            session.size = 10

    def test_to_args(self):
        assert Session(size=300).to_args() == ["-s", "300"]
        assert Session(verbose=True, size=300).to_args() == ["-s", "300", "-v"]


class TestProfile:
    """Tests for YAML profile parsing."""

    def test_empty_document_gives_defaults(self):
        profile = parse_profile_data(None)
        assert profile == Profile()
        assert profile.candidates.install == INSTALL_CANDIDATES
        assert profile.candidates.launch == LAUNCH_CANDIDATES
        assert profile.poll == PollPolicy(retries=10, delay=1.0)

    def test_full_document(self):
        profile = parse_profile_data(
            {
                "disk": {
                    "label": "scratch",
                    "commands": {"create": ["mkram", "{sectors}"], "eject": ["rmram", "{device}"]},
                },
                "server": {"install_candidates": ["mysql_install_db"], "launch_candidates": ["mysqld_safe"]},
                "poll": {"retries": 3, "delay": 0.25},
            }
        )
        assert profile.label == "scratch"
        assert profile.disk_commands.create == ["mkram", "{sectors}"]
        assert profile.disk_commands.eject == ["rmram", "{device}"]
        assert profile.disk_commands.format == DiskCommands().format
        assert profile.candidates.install == ["mysql_install_db"]
        assert profile.candidates.launch == ["mysqld_safe"]
        assert profile.poll == PollPolicy(retries=3, delay=0.25)

    @pytest.mark.parametrize(
        "raw, key",
        [
            (["not", "a", "mapping"], "mapping"),
            ({"disk": "nope"}, "disk"),
            ({"disk": {"commands": {"create": []}}}, "disk.commands.create"),
            ({"disk": {"commands": {"explode": ["x"]}}}, "explode"),
            ({"server": {"launch_candidates": "mysqld"}}, "server.launch_candidates"),
            ({"poll": {"retries": -1}}, "poll.retries"),
            ({"poll": {"delay": "soon"}}, "poll.delay"),
        ],
    )
    def test_invalid_documents(self, raw, key):
        with pytest.raises(ValueError, match=key):
            parse_profile_data(raw)

    def test_load_from_file(self, tmp_path: Path):
        path = tmp_path / "linux.yaml"
        path.write_text(
            "disk:\n"
            "  commands:\n"
            "    list_mounts: [cat, /proc/mounts]\n"
            "poll:\n"
            "  retries: 4\n"
        )
        profile = load_profile(path)
        assert profile.disk_commands.list_mounts == ["cat", "/proc/mounts"]
        assert profile.poll.retries == 4

    def test_load_from_environment(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "profile.yml"
        path.write_text("disk:\n  label: envlabel\n")
        monkeypatch.setenv("RAMDB_PROFILE", str(path))
        assert load_profile().label == "envlabel"

    def test_no_profile_configured(self, monkeypatch):
        monkeypatch.delenv("RAMDB_PROFILE", raising=False)
        assert load_profile() == Profile()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_profile(tmp_path / "absent.yaml")

import os
from pathlib import Path

import pytest

from cursor_installer.artifacts import (
    ArtifactSpec,
    make_executable,
    write_desktop_entry,
    write_launcher_script,
)
from cursor_installer.config import InstallerConfig
from cursor_installer.download import DownloadManager
from cursor_installer.engine import ReconciliationEngine
from cursor_installer.prompts import ConflictChoice


class FakeNetworkClient:
    """Network client replaying scripted outcomes: bytes are written, exceptions raised"""

    connect_timeout = 30

    def __init__(self, outcomes=None, default=b"payload"):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.calls = []

    def download(self, url, output_path, on_progress=None):
        self.calls.append(url)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        output_path.write_bytes(outcome)
        if on_progress is not None:
            on_progress(50)
            on_progress(100)


class FakeHost:
    def __init__(self, free=10 * 1024**3, online=True):
        self.free = free
        self.online = online
        self.refreshes = 0

    def free_bytes(self, path):
        return self.free

    def is_online(self, host, timeout):
        return self.online

    def refresh_caches(self, desktop_dir, icon_root):
        self.refreshes += 1


class ScriptedDecisions:
    """Decision provider answering from lists set up by each test"""

    def __init__(self):
        self.conflict = ConflictChoice.CANCEL
        self.selections = []
        self.again = []
        self.proceed = True
        self.install_dir = None
        self.no_sandbox = True
        self.uninstall = True
        self.asked = []

    def conflict_action(self, installations):
        self.asked.append("conflict")
        self.offered = list(installations)
        return self.conflict

    def select_installation(self, installations, purpose):
        self.asked.append(f"select:{purpose}")
        return self.selections.pop(0)

    def choose_again(self):
        self.asked.append("again")
        return self.again.pop(0) if self.again else False

    def continue_install(self):
        self.asked.append("continue")
        return self.proceed

    def install_directory(self, default):
        return self.install_dir or default

    def disable_sandbox(self):
        return self.no_sandbox

    def confirm_uninstall(self):
        self.asked.append("uninstall")
        return self.uninstall


@pytest.fixture
def config(tmp_path):
    """Installer layout rooted in a temporary home, system paths included"""
    return InstallerConfig.for_home(
        tmp_path / "home",
        temp_dir=tmp_path / "scratch",
        extra_candidates=(
            tmp_path / "usr" / "local" / "bin" / "cursor",
            tmp_path / "opt" / "cursor" / "cursor.AppImage",
        ),
    )


@pytest.fixture
def network():
    return FakeNetworkClient()


@pytest.fixture
def sleeps():
    """Delays requested by the download manager"""
    return []


@pytest.fixture
def downloader(config, network, sleeps):
    return DownloadManager(network, config.temp_dir, sleep=sleeps.append)


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def decisions():
    return ScriptedDecisions()


@pytest.fixture
def engine(config, decisions, downloader, host):
    return ReconciliationEngine(config, decisions, downloader, host)


@pytest.fixture
def make_file():
    """Create a file with content, optionally executable"""

    def _make(path: Path, content: bytes = b"data", executable: bool = False) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        if executable:
            make_executable(path)
        return path

    return _make


@pytest.fixture
def make_installation(config, make_file):
    """Lay down a complete, valid installation in the default layout"""

    def _make(no_sandbox: bool = True, bundle: bytes = b"old") -> ArtifactSpec:
        spec = ArtifactSpec.from_config(config, no_sandbox)
        make_file(spec.bundle_path, bundle, executable=True)
        make_file(spec.icon_path, b"<svg/>")
        spec.desktop_entry_path.parent.mkdir(parents=True, exist_ok=True)
        spec.launcher_path.parent.mkdir(parents=True, exist_ok=True)
        write_desktop_entry(spec)
        write_launcher_script(spec)
        make_file(spec.log_file, b"log line\n")
        return spec

    return _make


@pytest.fixture
def fail_removal(mocker):
    """Make os.remove raise PermissionError for the registered paths"""
    failing = set()
    real_remove = os.remove

    def _remove(path, *args, **kwargs):
        if Path(path) in failing:
            raise PermissionError(13, "Permission denied", str(path))
        return real_remove(path, *args, **kwargs)

    mocker.patch("cursor_installer.engine.os.remove", side_effect=_remove)
    return failing.add

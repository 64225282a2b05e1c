"""Immutable installer configuration."""

from __future__ import annotations

import dataclasses
import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_DOWNLOAD_URL = "https://downloader.cursor.sh/linux/appImage/x64"
DEFAULT_ICON_URL = "https://www.cursor.com/assets/images/logo.svg"

BUNDLE_NAME = "cursor.AppImage"
ICON_NAME = "cursor-icon.svg"
DESKTOP_ENTRY_NAME = "cursor.desktop"
LAUNCHER_NAME = "cursor"
LOG_NAME = ".cursor_log"

MAX_RETRIES = 3
BACKOFF_STEP = 5
CONNECT_TIMEOUT = 30
MIN_FREE_BYTES = 500 * 1024 * 1024
PROBE_HOST = "8.8.8.8"

# System-wide locations checked in addition to the per-user ones
SYSTEM_CANDIDATES: tuple[Path, ...] = (
    Path("/usr/local/bin") / LAUNCHER_NAME,
    Path("/opt/cursor") / BUNDLE_NAME,
)


@dataclasses.dataclass(frozen=True)
class InstallerConfig:
    home: Path
    app_dir: Path
    icon_dir: Path
    desktop_dir: Path
    bin_dir: Path
    log_file: Path
    temp_dir: Path
    download_url: str = DEFAULT_DOWNLOAD_URL
    icon_url: str = DEFAULT_ICON_URL
    bundle_name: str = BUNDLE_NAME
    max_retries: int = MAX_RETRIES
    backoff_step: int = BACKOFF_STEP
    connect_timeout: int = CONNECT_TIMEOUT
    min_free_bytes: int = MIN_FREE_BYTES
    probe_host: str = PROBE_HOST
    extra_candidates: tuple[Path, ...] = SYSTEM_CANDIDATES

    @classmethod
    def for_home(
        cls,
        home: Path,
        app_dir: Optional[Path] = None,
        temp_dir: Optional[Path] = None,
        **overrides: object,
    ) -> "InstallerConfig":
        """Build the default per-user layout rooted at ``home``."""
        return cls(
            home=home,
            app_dir=app_dir or home / "Applications",
            icon_dir=home / ".local" / "share" / "icons",
            desktop_dir=home / ".local" / "share" / "applications",
            bin_dir=home / ".local" / "bin",
            log_file=home / LOG_NAME,
            temp_dir=temp_dir or Path(tempfile.gettempdir()) / "cursor_installer",
            **overrides,  # type: ignore[arg-type]
        )

    @classmethod
    def from_environment(
        cls, environ: Mapping[str, str] = os.environ
    ) -> "InstallerConfig":
        """
        Read the process environment once and freeze it into a config.

        Recognised variables: HOME, CURSOR_APP_DIR, CURSOR_DOWNLOAD_URL and
        CURSOR_ICON_URL.
        """
        home = Path(environ.get("HOME") or Path.home())
        overrides: dict[str, object] = {}
        if environ.get("CURSOR_DOWNLOAD_URL"):
            overrides["download_url"] = environ["CURSOR_DOWNLOAD_URL"]
        if environ.get("CURSOR_ICON_URL"):
            overrides["icon_url"] = environ["CURSOR_ICON_URL"]
        app_dir = environ.get("CURSOR_APP_DIR")
        return cls.for_home(
            home,
            app_dir=Path(app_dir).expanduser() if app_dir else None,
            **overrides,
        )

    def with_app_dir(self, app_dir: Path) -> "InstallerConfig":
        return dataclasses.replace(self, app_dir=app_dir)

    @property
    def bundle_path(self) -> Path:
        return self.app_dir / self.bundle_name

    @property
    def icon_path(self) -> Path:
        return self.icon_dir / ICON_NAME

    @property
    def desktop_entry_path(self) -> Path:
        return self.desktop_dir / DESKTOP_ENTRY_NAME

    @property
    def launcher_path(self) -> Path:
        return self.bin_dir / LAUNCHER_NAME

    @property
    def candidate_paths(self) -> tuple[Path, ...]:
        """Known install locations, in the order they are reported to the user."""
        return (self.bundle_path, self.launcher_path, *self.extra_candidates)

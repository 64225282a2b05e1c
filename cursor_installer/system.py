"""Host queries and best-effort desktop integration commands."""

from __future__ import annotations

import logging
import shutil
import socket
import subprocess
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class HostClientProtocol(Protocol):
    def free_bytes(self, path: Path) -> int: ...
    def is_online(self, host: str, timeout: int) -> bool: ...
    def refresh_caches(self, desktop_dir: Path, icon_root: Path) -> None: ...


def nearest_existing(path: Path) -> Path:
    """Walk up from ``path`` to the first ancestor that exists."""
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return Path("/")


class HostClient:
    """Concrete host operations backed by shutil, ping and the XDG cache tools."""

    def free_bytes(self, path: Path) -> int:
        return shutil.disk_usage(nearest_existing(path)).free

    def is_online(self, host: str, timeout: int) -> bool:
        try:
            result = subprocess.run(
                ["ping", "-c", "1", "-W", str(timeout), host],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            return result.returncode == 0
        except FileNotFoundError:
            logger.debug("ping not available, probing DNS port instead")

        try:
            with socket.create_connection((host, 53), timeout=timeout):
                return True
        except OSError:
            return False

    def refresh_caches(self, desktop_dir: Path, icon_root: Path) -> None:
        """Refresh the desktop database and icon cache; failures are discarded."""
        for cmd in (
            ["update-desktop-database", str(desktop_dir)],
            ["gtk-update-icon-cache", "-f", "-t", str(icon_root)],
        ):
            try:
                subprocess.run(
                    cmd,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as e:
                logger.debug(f"Skipped {cmd[0]}: {e}")

"""
Artifact writer.

Generates the desktop entry and the launcher script. Both are rendered from
templates whose substitution points are typed (paths and a boolean), then
written with a full overwrite and marked executable.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import shlex
import stat
from pathlib import Path
from string import Template

from .config import InstallerConfig

logger = logging.getLogger(__name__)

SANDBOX_FLAG = "--no-sandbox"

DESKTOP_ENTRY_TEMPLATE = Template(
    """[Desktop Entry]
Name=Cursor
Exec=$exec_command %F
Terminal=false
Type=Application
Icon=$icon
StartupWMClass=Cursor
X-AppImage-Version=latest
Comment=Cursor is an AI-first coding environment.
MimeType=x-scheme-handler/cursor;
Categories=Utility;Development;
"""
)

LAUNCHER_TEMPLATE = Template(
    """#!/bin/bash
# Generated by cursor-installer; rerun it with --repair to regenerate.

CURSOR_APP=$bundle
LOG_FILE=$log_file
SANDBOX_FLAGS=($sandbox_flags)

log_msg() {
    echo "$$(date '+%Y-%m-%d %H:%M:%S') - $$1" >> "$$LOG_FILE"
}

if [ "$$#" -eq 0 ] || { [ "$$#" -eq 1 ] && [ "$$1" = "." ]; }; then
    log_msg "Starting Cursor in current directory: $$(pwd)"
    nohup "$$CURSOR_APP" "$${SANDBOX_FLAGS[@]}" "$$(pwd)" >> "$$LOG_FILE" 2>&1 &
else
    log_msg "Starting Cursor with arguments: $$*"
    nohup "$$CURSOR_APP" "$${SANDBOX_FLAGS[@]}" "$$@" >> "$$LOG_FILE" 2>&1 &
fi
disown 2>/dev/null || true
"""
)


@dataclasses.dataclass(frozen=True)
class ArtifactSpec:
    install_dir: Path
    no_sandbox: bool
    bundle_path: Path
    icon_path: Path
    desktop_entry_path: Path
    launcher_path: Path
    log_file: Path

    @classmethod
    def from_config(cls, config: InstallerConfig, no_sandbox: bool) -> "ArtifactSpec":
        return cls(
            install_dir=config.app_dir,
            no_sandbox=no_sandbox,
            bundle_path=config.bundle_path,
            icon_path=config.icon_path,
            desktop_entry_path=config.desktop_entry_path,
            launcher_path=config.launcher_path,
            log_file=config.log_file,
        )

    @property
    def required_files(self) -> tuple[Path, ...]:
        return (
            self.bundle_path,
            self.icon_path,
            self.desktop_entry_path,
            self.launcher_path,
        )

    @property
    def directories(self) -> tuple[Path, ...]:
        return tuple(dict.fromkeys(path.parent for path in self.required_files))


def desktop_exec_quote(path: Path) -> str:
    """Quote an argument for a desktop entry ``Exec`` key."""
    value = str(path)
    if not any(ch in value for ch in ' \t\n"\'\\><~|&;$*?#()`'):
        return value
    for ch in ("\\", '"', "`", "$"):
        value = value.replace(ch, "\\" + ch)
    # The desktop file format unescapes backslashes once more before Exec parsing
    return '"' + value.replace("\\", "\\\\") + '"'


def render_desktop_entry(spec: ArtifactSpec) -> str:
    return DESKTOP_ENTRY_TEMPLATE.substitute(
        exec_command=desktop_exec_quote(spec.launcher_path),
        icon=str(spec.icon_path),
    )


def render_launcher_script(spec: ArtifactSpec) -> str:
    return LAUNCHER_TEMPLATE.substitute(
        bundle=shlex.quote(str(spec.bundle_path)),
        log_file=shlex.quote(str(spec.log_file)),
        sandbox_flags=SANDBOX_FLAG if spec.no_sandbox else "",
    )


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _write_executable(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    make_executable(path)


def write_desktop_entry(spec: ArtifactSpec) -> Path:
    logger.info("Creating .desktop file...")
    _write_executable(spec.desktop_entry_path, render_desktop_entry(spec))
    logger.info(f"Desktop file created in: {spec.desktop_entry_path}")
    return spec.desktop_entry_path


def write_launcher_script(spec: ArtifactSpec) -> Path:
    logger.info("Creating launcher script...")
    _write_executable(spec.launcher_path, render_launcher_script(spec))
    logger.info(f"Launcher script created in: {spec.launcher_path}")
    return spec.launcher_path


def launcher_disables_sandbox(launcher_path: Path, default: bool = True) -> bool:
    """Read the sandbox choice baked into an existing launcher, if any."""
    try:
        content = launcher_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return default
    for line in content.splitlines():
        if line.startswith("SANDBOX_FLAGS="):
            return SANDBOX_FLAG in line
        # Launchers written by the shell installer
        if line.startswith("SANDBOX_FLAG="):
            return SANDBOX_FLAG in line
    return default


def is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)

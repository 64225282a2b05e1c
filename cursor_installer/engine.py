"""
Reconciliation engine.

Compares the requested action with what is on disk and performs the file
operations needed to converge: install, update with rollback, repair,
removal and uninstall.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from enum import StrEnum
from pathlib import Path
from typing import Optional, Sequence

from .artifacts import (
    ArtifactSpec,
    is_executable,
    launcher_disables_sandbox,
    make_executable,
    write_desktop_entry,
    write_launcher_script,
)
from .config import InstallerConfig
from .download import DownloadManager, NetworkClient
from .errors import (
    DirectoryCreationError,
    DownloadError,
    PreflightError,
    RemovalError,
    UpdateError,
    VerificationError,
)
from .inventory import (
    FilesystemInventory,
    InstallationKind,
    InstallationRecord,
    InstallationSet,
    classify,
)
from .prompts import ConflictChoice, DecisionProvider
from .system import HostClient, HostClientProtocol
from .verify import FailedCheck, verify

logger = logging.getLogger(__name__)

MEGABYTE = 1024 * 1024


class InstallStatus(StrEnum):
    INSTALLED = "installed"
    UPDATED = "updated"
    CANCELLED = "cancelled"


class Resolution(StrEnum):
    PROCEED = "proceed"
    UPDATED = "updated"
    CANCELLED = "cancelled"


@dataclasses.dataclass
class ActionOutcome:
    removed: list[Path] = dataclasses.field(default_factory=list)
    errors: list[tuple[Path, str]] = dataclasses.field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclasses.dataclass(frozen=True)
class BackupHandle:
    original_path: Path
    backup_path: Path

    @classmethod
    def create(cls, path: Path) -> "BackupHandle":
        """Rename ``path`` aside; raises OSError when the rename fails."""
        handle = cls(path, path.with_name(path.name + ".backup"))
        os.replace(handle.original_path, handle.backup_path)
        return handle

    def discard(self) -> bool:
        try:
            self.backup_path.unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.error(f"Failed to delete backup {self.backup_path}: {e}")
            return False

    def restore(self) -> bool:
        try:
            os.replace(self.backup_path, self.original_path)
            return True
        except OSError as e:
            logger.error(f"Failed to restore {self.original_path}: {e}")
            return False


@dataclasses.dataclass(frozen=True)
class InstallResult:
    status: InstallStatus
    spec: Optional[ArtifactSpec] = None


@dataclasses.dataclass(frozen=True)
class RepairReport:
    spec: ArtifactSpec
    failed: list[FailedCheck]

    @property
    def repaired(self) -> bool:
        return bool(self.failed)


class ReconciliationEngine:
    """Drives inventory, downloads and artifact generation for every action."""

    def __init__(
        self,
        config: InstallerConfig,
        decisions: DecisionProvider,
        downloader: Optional[DownloadManager] = None,
        host: Optional[HostClientProtocol] = None,
        inventory: Optional[FilesystemInventory] = None,
    ) -> None:
        self.config = config
        self.decisions = decisions
        self.downloader = downloader or DownloadManager(
            NetworkClient(config.connect_timeout),
            config.temp_dir,
            max_retries=config.max_retries,
            backoff_step=config.backoff_step,
        )
        self.host = host or HostClient()
        self.inventory = inventory or FilesystemInventory.from_config(config)

    # Preconditions

    def check_disk_space(self) -> None:
        available = self.host.free_bytes(self.config.app_dir)
        if available < self.config.min_free_bytes:
            raise PreflightError(
                f"Insufficient disk space. Required: {self.config.min_free_bytes // MEGABYTE}MB, "
                f"Available: {available // MEGABYTE}MB"
            )

    def check_internet_connection(self) -> None:
        if not self.host.is_online(self.config.probe_host, self.config.connect_timeout):
            raise PreflightError(
                "No internet connection. Please check your connection and try again."
            )

    # Install

    def install(self) -> InstallResult:
        logger.info("Starting Cursor IDE installation...")
        self.check_disk_space()
        self.check_internet_connection()

        installations = self.inventory.scan()
        if installations:
            resolution = self.resolve_conflicts(installations)
            if resolution is Resolution.UPDATED:
                return InstallResult(InstallStatus.UPDATED)
            if resolution is Resolution.CANCELLED:
                return InstallResult(InstallStatus.CANCELLED)

        app_dir = self.decisions.install_directory(self.config.app_dir)
        no_sandbox = self.decisions.disable_sandbox()
        spec = ArtifactSpec.from_config(self.config.with_app_dir(app_dir), no_sandbox)

        self._create_directories(spec)
        self._ensure_bundle(spec, force=True)
        self._ensure_icon(spec)
        write_desktop_entry(spec)
        write_launcher_script(spec)

        self.verify_installation(spec)
        self._refresh_caches()
        logger.info("Cursor installed successfully!")
        return InstallResult(InstallStatus.INSTALLED, spec)

    def verify_installation(self, spec: ArtifactSpec) -> None:
        logger.info("Verifying installation...")
        failures = verify(spec)
        for failure in failures:
            logger.error(str(failure))
        if failures:
            raise VerificationError(
                "Installation verification failed. Please execute repair.",
                [failure.path for failure in failures],
            )

    # Conflict resolution

    def resolve_conflicts(self, installations: InstallationSet) -> Resolution:
        records = installations.installed
        choice = self.decisions.conflict_action(records)
        match choice:
            case ConflictChoice.UPDATE:
                return self._resolve_update(records)
            case ConflictChoice.REMOVE_ONE:
                index = self._select(records, "remove")
                self.remove_installation(records[index].path)
                return self._continue_or_cancel()
            case ConflictChoice.REMOVE_ALL:
                return self._resolve_remove_all(records)
            case ConflictChoice.SUBSTITUTE:
                logger.info(
                    "Keeping existing installations and continuing with new installation..."
                )
                return Resolution.PROCEED
            case _:
                logger.info("Installation cancelled by user.")
                return Resolution.CANCELLED

    def _select(self, records: Sequence[InstallationRecord], purpose: str) -> int:
        if len(records) == 1:
            return 0
        while True:
            index = self.decisions.select_installation(records, purpose)
            if 0 <= index < len(records):
                return index
            logger.error(
                f"Invalid choice. Please enter a number between 1 and {len(records)}."
            )

    def _resolve_update(self, records: Sequence[InstallationRecord]) -> Resolution:
        if len(records) == 1:
            if not records[0].is_bundle:
                raise UpdateError(
                    f"Only AppImage installations can be updated: {records[0].path}"
                )
            return self._update_or_fail(records[0].path)

        while True:
            record = records[self._select(records, "update")]
            if record.is_bundle:
                return self._update_or_fail(record.path)
            logger.error("Only AppImage installations can be updated.")
            if not self.decisions.choose_again():
                logger.info("Continuing with installation...")
                return Resolution.PROCEED

    def _update_or_fail(self, path: Path) -> Resolution:
        if not self.update(path):
            raise UpdateError("Update failed. Please try again or choose another option.")
        logger.info("Update completed. No need to continue with installation.")
        return Resolution.UPDATED

    def _resolve_remove_all(self, records: Sequence[InstallationRecord]) -> Resolution:
        logger.warning("Removing all existing installations...")
        outcomes = [self.remove_installation(record.path) for record in records]
        if not all(outcome.success for outcome in outcomes):
            raise RemovalError(
                "There were errors during removal of installations. "
                "Please check and try again."
            )
        logger.info("All installations have been removed.")
        return self._continue_or_cancel()

    def _continue_or_cancel(self) -> Resolution:
        if self.decisions.continue_install():
            logger.info("Continuing with installation...")
            return Resolution.PROCEED
        logger.info("Installation cancelled by user.")
        return Resolution.CANCELLED

    # Removal

    def associated_files(self) -> tuple[Path, ...]:
        return (
            self.config.icon_path,
            self.config.desktop_entry_path,
            self.config.launcher_path,
            self.config.log_file,
        )

    def remove_installation(self, path: Path) -> ActionOutcome:
        """
        Delete one installation.

        A full bundle takes its icon, desktop entry, launcher and log with it.
        Every deletion is attempted even when an earlier one failed.
        """
        logger.info(f"Removing installation: {path}")
        outcome = ActionOutcome()
        self._remove_file(path, outcome)

        if classify(path, self.config.bundle_name) is InstallationKind.BUNDLE:
            for associated in self.associated_files():
                self._remove_file(associated, outcome)
            self._refresh_caches()

        if outcome.success:
            logger.info("Installation removed successfully!")
        else:
            logger.warning(
                "Removal completed with some errors. Please check above messages."
            )
        return outcome

    def _remove_file(self, path: Path, outcome: ActionOutcome) -> None:
        if not (path.is_file() or path.is_symlink()):
            return
        try:
            os.remove(path)
        except OSError as e:
            logger.error(f"✗ Failed to remove {path}: {e}")
            outcome.errors.append((path, str(e)))
            return
        logger.info(f"✓ Removed: {path}")
        outcome.removed.append(path)

    # Update

    def update(self, path: Path) -> bool:
        """
        Replace the bundle at ``path`` with a fresh download.

        The current file is renamed to ``<path>.backup`` first and renamed back
        when the download or the sanity check fails.
        """
        logger.info("Starting Cursor update...")
        backup: Optional[BackupHandle] = None
        if path.exists():
            logger.info("Creating backup of current version...")
            try:
                backup = BackupHandle.create(path)
            except OSError as e:
                logger.error(f"✗ Failed to create backup: {e}")
                return False
            logger.info(f"✓ Backup created: {backup.backup_path}")

        logger.info("Downloading new Cursor version...")
        valid = False
        try:
            self.downloader.fetch(self.config.download_url, path, "new Cursor version")
            make_executable(path)
            valid = is_executable(path) and path.stat().st_size > 0
            if not valid:
                logger.error("New version seems corrupted")
        except (DownloadError, OSError) as e:
            logger.error(f"Failed to download new version: {e}")
        finally:
            if valid:
                if backup is not None:
                    backup.discard()
            else:
                self._roll_back(path, backup)

        if valid:
            logger.info("Update completed successfully!")
        return valid

    @staticmethod
    def _roll_back(path: Path, backup: Optional[BackupHandle]) -> None:
        if backup is not None:
            logger.warning("Restoring previous version...")
            if backup.restore():
                logger.info("✓ Previous version restored")
            else:
                logger.error("✗ Failed to restore previous version")
        elif path.exists():
            path.unlink(missing_ok=True)

    # Repair

    def current_spec(self) -> ArtifactSpec:
        """Artifact layout for the default paths, keeping the sandbox choice of an existing launcher."""
        return ArtifactSpec.from_config(
            self.config, launcher_disables_sandbox(self.config.launcher_path)
        )

    def repair(self) -> RepairReport:
        logger.info("Starting repair of Cursor installation...")
        spec = self.current_spec()
        failures = verify(spec)
        for failure in failures:
            logger.warning(str(failure))

        if not failures:
            logger.info("All files are intact, no repair needed.")
            return RepairReport(spec, [])

        logger.info("Starting repair process...")
        self._create_directories(spec)
        self._ensure_bundle(spec, force=False)
        self._ensure_icon(spec)
        write_desktop_entry(spec)
        write_launcher_script(spec)
        self._refresh_caches()

        self.verify_installation(spec)
        logger.info("Repair completed successfully!")
        return RepairReport(spec, failures)

    # Uninstall

    def uninstall(self) -> Optional[ActionOutcome]:
        """Remove every well-known artifact; returns None when the user declines."""
        logger.warning("Starting uninstallation process of Cursor...")
        if not self.decisions.confirm_uninstall():
            logger.info("Uninstallation cancelled by user.")
            return None

        outcome = ActionOutcome()
        for path in (self.config.bundle_path, *self.associated_files()):
            if path.is_file() or path.is_symlink():
                logger.info(f"Removing: {path}")
            self._remove_file(path, outcome)
        self._refresh_caches()

        if outcome.success:
            logger.info("Cursor uninstalled successfully!")
        else:
            logger.warning(
                "Uninstallation completed with some errors. Please check above messages."
            )
        return outcome

    # Helpers

    def _create_directories(self, spec: ArtifactSpec) -> None:
        for directory in spec.directories:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DirectoryCreationError(
                    f"Failed to create directory {directory}: {e}"
                ) from e

    def _ensure_bundle(self, spec: ArtifactSpec, force: bool) -> None:
        if force or not spec.bundle_path.is_file():
            self.downloader.fetch(
                self.config.download_url, spec.bundle_path, "Cursor AppImage"
            )
        make_executable(spec.bundle_path)

    def _ensure_icon(self, spec: ArtifactSpec) -> None:
        if not spec.icon_path.is_file():
            self.downloader.fetch(self.config.icon_url, spec.icon_path, "Cursor icon")

    def _refresh_caches(self) -> None:
        self.host.refresh_caches(self.config.desktop_dir, self.config.icon_dir)

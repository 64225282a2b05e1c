"""Discovery of existing installations."""

from __future__ import annotations

import dataclasses
import logging
from enum import StrEnum
from pathlib import Path
from typing import Iterator, Sequence

from .config import InstallerConfig

logger = logging.getLogger(__name__)


class InstallationKind(StrEnum):
    BUNDLE = "bundle"
    LAUNCHER_LINK = "launcher"


@dataclasses.dataclass(frozen=True)
class InstallationRecord:
    path: Path
    kind: InstallationKind
    exists: bool

    @property
    def is_bundle(self) -> bool:
        return self.kind is InstallationKind.BUNDLE


@dataclasses.dataclass(frozen=True)
class InstallationSet:
    """Scan result in candidate order; iteration yields only existing entries."""

    records: tuple[InstallationRecord, ...]

    @property
    def installed(self) -> tuple[InstallationRecord, ...]:
        return tuple(record for record in self.records if record.exists)

    def __iter__(self) -> Iterator[InstallationRecord]:
        return iter(self.installed)

    def __len__(self) -> int:
        return len(self.installed)

    def __getitem__(self, index: int) -> InstallationRecord:
        return self.installed[index]

    def __bool__(self) -> bool:
        return bool(self.installed)


def classify(path: Path, bundle_name: str) -> InstallationKind:
    """A path is a full bundle iff its name is the bundle's canonical filename."""
    if path.name == bundle_name:
        return InstallationKind.BUNDLE
    return InstallationKind.LAUNCHER_LINK


class FilesystemInventory:
    """Checks a fixed list of candidate paths; never mutates anything."""

    def __init__(self, candidates: Sequence[Path], bundle_name: str) -> None:
        self.candidates = tuple(candidates)
        self.bundle_name = bundle_name

    @classmethod
    def from_config(cls, config: InstallerConfig) -> "FilesystemInventory":
        return cls(config.candidate_paths, config.bundle_name)

    def scan(self) -> InstallationSet:
        logger.info("Checking existing Cursor installations...")
        records = tuple(
            InstallationRecord(
                path=path,
                kind=classify(path, self.bundle_name),
                exists=path.is_file(),
            )
            for path in self.candidates
        )
        return InstallationSet(records)

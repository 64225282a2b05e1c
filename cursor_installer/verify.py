"""Post-install verification."""

from __future__ import annotations

import dataclasses
import logging
from enum import StrEnum
from pathlib import Path

from .artifacts import ArtifactSpec, is_executable

logger = logging.getLogger(__name__)


class CheckFailure(StrEnum):
    MISSING = "missing"
    NOT_EXECUTABLE = "not executable"


@dataclasses.dataclass(frozen=True)
class FailedCheck:
    path: Path
    reason: CheckFailure

    def __str__(self) -> str:
        if self.reason is CheckFailure.MISSING:
            return f"Missing file: {self.path}"
        return f"Incorrect permissions: {self.path}"


def requires_executable(spec: ArtifactSpec, path: Path) -> bool:
    """Every required artifact except the icon must carry an execute bit."""
    return path != spec.icon_path


def verify(spec: ArtifactSpec) -> list[FailedCheck]:
    """Return the failed checks; an empty list means the installation is intact."""
    failures: list[FailedCheck] = []
    for path in spec.required_files:
        if not path.is_file():
            failures.append(FailedCheck(path, CheckFailure.MISSING))
        elif requires_executable(spec, path) and not is_executable(path):
            failures.append(FailedCheck(path, CheckFailure.NOT_EXECUTABLE))
    return failures

"""Terminal progress bar for downloads."""

from __future__ import annotations

import sys
import time
from typing import Optional, Self, TextIO


class ProgressBar:
    """A native ``[=====     ]  50%`` progress bar without external dependencies."""

    def __init__(
        self,
        desc: str = "",
        width: int = 50,
        disable: bool = False,
        fps_limit: Optional[float] = None,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.desc = desc
        self.width = width
        self.disable = disable
        self.fps_limit = fps_limit
        self.stream = stream or sys.stderr
        self.current = 0
        self.total = 100
        self._last_update_time = 0.0
        self._current_line = ""
        self._completed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _should_update_display(self, current_time: float) -> bool:
        """Check if display update should happen based on FPS limit."""
        if self.fps_limit is not None and self.fps_limit > 0:
            min_interval = 1.0 / self.fps_limit
            if current_time - self._last_update_time < min_interval:
                return False
        return True

    def _calculate_percentage(self) -> int:
        if self.total <= 0:
            return 0
        return min(self.current * 100 // self.total, 100)

    def format_line(self) -> str:
        """Render the bar for the current state."""
        percent = self._calculate_percentage()
        filled = self.width * percent // 100
        bar = "=" * filled + " " * (self.width - filled)
        prefix = f"{self.desc}: " if self.desc else ""
        return f"{prefix}[{bar}] {percent:3d}%"

    def update_progress(self, current: int, total: int) -> None:
        """Move the bar to ``current`` out of ``total``."""
        self.current = current
        self.total = total
        if self.disable or self._completed:
            return

        now = time.time()
        finished = current >= total
        if not finished and not self._should_update_display(now):
            return
        self._last_update_time = now

        self._current_line = self.format_line()
        print(f"\r{self._current_line}", end="", file=self.stream, flush=True)
        if finished:
            self._completed = True
            print(file=self.stream)

    def __call__(self, percent: int) -> None:
        self.update_progress(percent, 100)

    def close(self) -> None:
        """Terminate a partially drawn line."""
        if not self.disable and self._current_line and not self._completed:
            print(file=self.stream)
        self._completed = True

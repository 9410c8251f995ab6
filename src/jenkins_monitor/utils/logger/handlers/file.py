"""File handlers writing monitor logs to date-rotated files."""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Literal

from jenkins_monitor.utils.logger.config import LogEvent, LogLevel
from jenkins_monitor.utils.logger.handlers.base import BaseLogHandler

Rotation = Literal["daily", "hourly", "per_minute"]

_PATTERNS = {
    "daily": "%Y-%m-%d",
    "hourly": "%Y-%m-%d_%H",
    "per_minute": "%Y-%m-%d_%H%M",
}


class RotatingFileHandler(BaseLogHandler):
    """Append every buffered event to a file named after the rotation window."""

    suffix = ".log"
    min_level = LogLevel.TRACE

    def __init__(
        self,
        base_dir: str,
        filename_prefix: str = "",
        create: bool = True,
        rotation: Rotation = "daily",
    ) -> None:
        """Configure the target directory and rotation window.

        :param base_dir: Base directory where log files are written.
        :param filename_prefix: Optional subdirectory grouping the files.
        :param create: Whether to create the directory if missing.
        :param rotation: Granularity of the rotating filename.
        :raises ValueError: If ``rotation`` is not a known window.
        """
        super().__init__()
        if rotation not in _PATTERNS:
            raise ValueError(f"Unsupported rotation: {rotation}")
        self.base_dir = Path(base_dir)
        self.filename_prefix = filename_prefix
        self._pattern = _PATTERNS[rotation]
        if create:
            self.base_dir.mkdir(parents=True, exist_ok=True)

    def current_filepath(self) -> Path:
        """Compute the destination file for the current rotation window."""
        stamp = datetime.now(timezone.utc).strftime(self._pattern)
        filename = f"{stamp}{self.suffix}"
        if self.filename_prefix:
            return self.base_dir / self.filename_prefix / filename
        return self.base_dir / filename

    def _select(self, records: List[LogEvent]) -> List[str]:
        return [ev.text for ev in records if ev.level >= self.min_level]

    async def push(self, records: List[LogEvent]) -> None:
        """Append the selected records to the current file.

        :param records: Buffered log events awaiting persistence.
        """
        lines = self._select(records)
        if not lines:
            return
        path = self.current_filepath()
        os.makedirs(path.parent, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write("\n".join(lines))
            f.write("\n")
            f.flush()


class ErrorFileHandler(RotatingFileHandler):
    """Persist only error and higher severity messages."""

    suffix = ".error.log"
    min_level = LogLevel.ERROR

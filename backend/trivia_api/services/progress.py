"""
Batch progress checkpoint and log files.

Checkpoint (JSON, overwritten after every page):

    {
      "lastProcessedId": 1002,
      "processedCount": 3,
      "errorCount": 0,
      "lastUpdated": "2026-10-19T12:00:00.000Z"
    }

The file is written to a temporary sibling and moved into place with
os.replace, so a crash mid-write never leaves a truncated checkpoint.

Logs go through the standard logging module: the batch logger gets one
file handler for the human-readable run log (INFO+) and one for errors
with tracebacks (ERROR+).
"""

from __future__ import annotations

import datetime
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from trivia_api.core.timestamps import to_iso, utcnow

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"


@dataclass(slots=True)
class BatchProgress:
    """Cursor and running totals of a batch run."""

    last_processed_id: int = 0
    processed_count: int = 0
    error_count: int = 0
    last_updated: datetime.datetime = field(default_factory=utcnow)

    def to_json(self) -> dict[str, object]:
        return {
            "lastProcessedId": self.last_processed_id,
            "processedCount": self.processed_count,
            "errorCount": self.error_count,
            "lastUpdated": to_iso(self.last_updated),
        }

    @classmethod
    def from_json(cls, data: dict[str, object]) -> BatchProgress:
        """Missing counters default to 0; an unparsable timestamp to now."""
        last_updated = utcnow()
        raw_updated = data.get("lastUpdated")
        if isinstance(raw_updated, str):
            try:
                last_updated = datetime.datetime.fromisoformat(raw_updated.replace("Z", "+00:00"))
            except ValueError:
                logger.warning("Ignoring unparsable lastUpdated %r in checkpoint", raw_updated)

        return cls(
            last_processed_id=int(data.get("lastProcessedId") or 0),
            processed_count=int(data.get("processedCount") or 0),
            error_count=int(data.get("errorCount") or 0),
            last_updated=last_updated,
        )


class ProgressStore:
    """Reads and atomically writes the checkpoint file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> BatchProgress | None:
        """Return the saved progress, or None if there is no checkpoint yet."""
        if not self.path.exists():
            return None
        with self.path.open(encoding="utf-8") as fh:
            return BatchProgress.from_json(json.load(fh))

    def save(self, progress: BatchProgress) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(progress.to_json(), fh, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def configure_batch_logging(
    batch_logger: logging.Logger,
    log_file: str | os.PathLike[str],
    error_file: str | os.PathLike[str],
    *,
    fresh: bool,
) -> None:
    """
    Attach the run-log and error-log file handlers to `batch_logger`.

    A fresh run truncates both files and writes a header line; a resumed
    run appends to them.
    """
    mode = "w" if fresh else "a"
    formatter = logging.Formatter(LOG_FORMAT)

    for path in (log_file, error_file):
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    run_handler = logging.FileHandler(log_file, mode=mode, encoding="utf-8")
    run_handler.setLevel(logging.INFO)
    run_handler.setFormatter(formatter)

    error_handler = logging.FileHandler(error_file, mode=mode, encoding="utf-8")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    if fresh:
        started = to_iso(utcnow())
        run_handler.stream.write(f"Starting new batch processing at {started}\n")
        error_handler.stream.write(f"Error log for batch processing starting at {started}\n")

    batch_logger.addHandler(run_handler)
    batch_logger.addHandler(error_handler)
    batch_logger.setLevel(logging.INFO)

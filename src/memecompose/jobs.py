"""Per-job temp files.

Every upload and output gets a uuid4 name, so concurrent jobs sharing the
same directories never touch each other's files. cleanup() is best-effort:
failures are logged and swallowed so they can never mask the job's result.
"""

import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class JobFiles:
    """Temp paths owned by one job.

    Usable as a context manager; files are removed on exit either way.
    For HTTP responses that stream the output after the handler returns,
    call cleanup() from a background task instead.
    """

    def __init__(self, upload_dir: str | Path, output_dir: str | Path):
        self.job_id = uuid.uuid4().hex
        self.upload_dir = Path(upload_dir)
        self.output_dir = Path(output_dir)
        self.paths: list[Path] = []

    def _register(self, directory: Path, suffix: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{uuid.uuid4().hex}{suffix}"
        self.paths.append(path)
        return path

    def upload_path(self, suffix: str = "") -> Path:
        """New unique path for an uploaded input."""
        return self._register(self.upload_dir, suffix)

    def output_path(self, suffix: str = ".mp4") -> Path:
        """New unique path for the rendered output."""
        return self._register(self.output_dir, suffix)

    def cleanup(self) -> None:
        """Delete every registered file that exists. Never raises."""
        for path in self.paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Cleanup failed for %s: %s", path, e)
        self.paths.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

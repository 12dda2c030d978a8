import logging
import shutil
import time
from pathlib import Path
from typing import Iterable, Optional

class HousekeepingService:
    """Removes per-job directories and aged files from the shared roots."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def cleanup_job_dir(self, work_dir: Path) -> bool:
        """Removes a job's working directory. Safe to call repeatedly."""
        if not work_dir.exists():
            return False
        shutil.rmtree(work_dir, ignore_errors=True)
        if work_dir.exists():
            self.logger.error(f"Could not fully remove working directory {work_dir}")
            return False
        self.logger.debug(f"Removed working directory {work_dir}")
        return True

    def sweep(self, directories: Iterable[Path], retention_seconds: float, now: Optional[float] = None) -> int:
        """Deletes top-level entries whose mtime is older than the retention window."""
        cutoff = (now if now is not None else time.time()) - retention_seconds
        removed = 0
        for directory in directories:
            if not directory.is_dir():
                continue
            for entry in directory.iterdir():
                try:
                    if entry.stat().st_mtime >= cutoff:
                        continue
                    if entry.is_dir() and not entry.is_symlink():
                        shutil.rmtree(entry)
                    else:
                        entry.unlink()
                except FileNotFoundError:
                    # Removed concurrently by its job
                    continue
                except OSError as e:
                    self.logger.error(f"Sweep could not remove {entry}: {e}")
                    continue
                removed += 1
                self.logger.info(f"Sweep removed stale entry {entry}")
        return removed

"""
Per-Source Run Lock
===================

Advisory file lock that serializes runs against the same logical source.
Runs for different sources take different lock files and never contend.
"""

import os
import fcntl
import hashlib
import logging
import tempfile
from pathlib import Path
from typing import Optional

from .exceptions import RunLockError

logger = logging.getLogger(__name__)


class ProcessLock:
    """File-based lock held for the duration of one run."""

    def __init__(self, lock_name: str, lock_dir: Optional[str] = None):
        """
        Initialize process lock.

        Args:
            lock_name: Name for the lock file (without extension)
            lock_dir: Directory for lock files (defaults to the system temp dir)
        """
        if lock_dir is None:
            lock_dir = tempfile.gettempdir()

        self.lock_file = Path(lock_dir) / f"{lock_name}.lock"
        self.lock_fd: Optional[int] = None
        self.acquired = False

    def acquire(self) -> bool:
        """
        Acquire the lock without blocking.

        Returns:
            True if lock was acquired, False if another process holds it
        """
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.lock_file), os.O_CREAT | os.O_RDWR)

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            holder = self.holder_pid()
            if holder:
                logger.warning(f"Run lock already held by PID {holder}: {self.lock_file}")
            else:
                logger.warning(f"Run lock unavailable: {self.lock_file}")
            return False

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        os.fsync(fd)

        self.lock_fd = fd
        self.acquired = True
        logger.debug(f"Run lock acquired: {self.lock_file}")
        return True

    def release(self) -> None:
        """Release the lock."""
        if self.lock_fd is None or not self.acquired:
            return
        try:
            # The lock file is never removed, only emptied
            os.ftruncate(self.lock_fd, 0)
            fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
            os.close(self.lock_fd)
            logger.debug(f"Run lock released: {self.lock_file}")
        finally:
            self.lock_fd = None
            self.acquired = False

    def holder_pid(self) -> Optional[int]:
        """PID written by the process holding the lock, if readable."""
        try:
            return int(self.lock_file.read_text().strip())
        except (ValueError, OSError):
            return None

    def __enter__(self) -> "ProcessLock":
        if not self.acquire():
            raise RunLockError(
                f"Could not acquire run lock: {self.lock_file}",
                holder_pid=self.holder_pid(),
                context={"lock_file": str(self.lock_file)},
            )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def source_run_lock(source_name: str, lock_dir: Optional[str] = None) -> ProcessLock:
    """Build the lock guarding runs of one source.

    The source key is hashed so arbitrary names map to safe file names.
    """
    digest = hashlib.sha256(source_name.encode("utf-8")).hexdigest()[:16]
    return ProcessLock(f"feedrelay-run-{digest}", lock_dir)

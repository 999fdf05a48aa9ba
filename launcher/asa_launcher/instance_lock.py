"""
instance_lock.py — One launcher per install directory
-----------------------------------------------------
File based mutex keyed on the install root. Uses fcntl on POSIX and msvcrt
on Windows. Acquisition never waits: a second start/prefetch against the
same install fails with InstanceLocked.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Optional
from .errors import InstanceLocked
from .logging_setup import get_logger

log = get_logger("asa.launcher.lock")


def _try_lock(fd: int) -> bool:
    if os.name == "nt":
        import msvcrt
        try:
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            return True
        except OSError:
            return False
    import fcntl
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        return True
    except (BlockingIOError, OSError):
        return False


def _unlock(fd: int) -> None:
    if os.name == "nt":
        import msvcrt
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        import fcntl
        fcntl.flock(fd, fcntl.LOCK_UN)


def read_holder(lock_path: Path) -> Optional[str]:
    try:
        text = Path(lock_path).read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return text or None


class InstanceLock:
    def __init__(self, lock_path: Path):
        self.path = Path(lock_path)
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> "InstanceLock":
        if self._fd is not None:
            return self
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        if not _try_lock(fd):
            os.close(fd)
            raise InstanceLocked(self.path, read_holder(self.path))
        # record the holder; the locked byte region stays at offset 0
        os.lseek(fd, 0, os.SEEK_SET)
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode("ascii"))
        os.fsync(fd)
        self._fd = fd
        log.debug("Acquired instance lock %s", self.path)
        return self

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            _unlock(fd)
        except OSError as e:
            log.debug("unlock %s: %s", self.path, e)
        finally:
            os.close(fd)
        log.debug("Released instance lock %s", self.path)

    def __enter__(self) -> "InstanceLock":
        return self.acquire()

    def __exit__(self, *exc) -> None:
        self.release()


def is_locked(lock_path: Path) -> bool:
    """Probe whether some process currently holds the lock."""
    lock_path = Path(lock_path)
    if not lock_path.exists():
        return False
    fd = os.open(str(lock_path), os.O_RDWR)
    try:
        if _try_lock(fd):
            _unlock(fd)
            return False
        return True
    finally:
        os.close(fd)

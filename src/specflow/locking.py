"""Cross-process locks for specflow state files.

Every CLI command runs in its own process, so thread locks alone do not
serialize two concurrent ``specflow complete`` runs. These helpers take an
exclusive ``flock`` on a lock file next to the state they guard.

Lock files are never deleted: removing one lets two processes hold
"exclusive" locks on different inodes with the same path.
"""

import fcntl
import os
import re
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from specflow.errors import LockTimeoutError

DEFAULT_TIMEOUT = 60.0
_POLL_INTERVAL = 0.05


def lock_name(key: str) -> str:
    """Convert a change id or feature id into a lock file stem."""
    slug = re.sub(r"[^a-zA-Z0-9_\-.]", "-", key)
    return re.sub(r"-+", "-", slug).strip("-") or "lock"


@contextmanager
def file_lock(lock_file: Path, timeout: float = DEFAULT_TIMEOUT) -> Iterator[None]:
    """Hold an exclusive flock on ``lock_file`` for the duration of the block.

    Raises:
        LockTimeoutError: The lock was not acquired within ``timeout`` seconds.
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    fd = open(lock_file, "a")
    start = time.monotonic()
    try:
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() - start > timeout:
                    raise LockTimeoutError(
                        f"Could not acquire {lock_file.name} within {timeout}s"
                    ) from None
                time.sleep(_POLL_INTERVAL)
        try:
            fd.truncate(0)
            fd.write(f"{os.getpid()}\n")
            fd.flush()
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        fd.close()


@contextmanager
def keyed_lock(lock_dir: Path | None, key: str, timeout: float = DEFAULT_TIMEOUT) -> Iterator[None]:
    """Lock ``<lock_dir>/<key>.lock``, or do nothing when ``lock_dir`` is None."""
    if lock_dir is None:
        yield
        return
    with file_lock(lock_dir / f"{lock_name(key)}.lock", timeout):
        yield

import contextlib
import logging
import typing as tp

from filelock import FileLock
from filelock import Timeout

import multi_sandbox.utils.types as ttypes
from multi_sandbox.utils import configuration

# Suppress messages from filelock
logging.getLogger("filelock").setLevel(logging.WARNING)

LockTimeout = Timeout


def get_lock_path(path: ttypes.FileType) -> str:
    """Return path of the lock file guarding the given file or directory."""
    return f"{str(path).rstrip('/')}.lock"


def get_lock(path: ttypes.FileType) -> FileLock:
    """Return lock guarding the given file or directory."""
    return FileLock(get_lock_path(path), timeout=configuration.LOCK_TIMEOUT)


@contextlib.contextmanager
def file_lock(path: ttypes.FileType, timeout: float | None = None) -> tp.Iterator[FileLock]:
    """Lock the given file or directory for the duration of the context.

    Raises `LockTimeout` when the lock is held by another process for longer than `timeout`.
    """
    lock = get_lock(path)
    with lock.acquire(timeout=timeout):
        yield lock

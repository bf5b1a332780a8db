"""
Provisioning Lock

Exclusive advisory lock (flock) serialising every mutation of the
(peer store, server configuration) pair across processes. A separate open of
the lock file per acquisition means threads of one process also contend.
"""

import fcntl
import logging
import os
import time
from pathlib import Path
from typing import Optional, Union

from wg_provisioner.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05


class ProvisioningLock:
    """
    Context manager around fcntl.flock(LOCK_EX)

    Attributes:
        path: Lock file
        timeout: Seconds to wait before LockTimeoutError; None blocks forever
    """

    def __init__(self, path: Union[str, Path], timeout: Optional[float] = None):
        self.path = Path(path)
        self.timeout = timeout
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        """
        Acquire the lock

        Raises:
            LockTimeoutError: If timeout is set and elapses
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o600)

        try:
            if self.timeout is None:
                fcntl.flock(fd, fcntl.LOCK_EX)
            else:
                self._acquire_with_deadline(fd)
        except BaseException:
            os.close(fd)
            raise

        self._fd = fd
        logger.debug(f"Acquired provisioning lock {self.path}")

    def _acquire_with_deadline(self, fd: int) -> None:
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LockTimeoutError(self.path, self.timeout)
                time.sleep(POLL_INTERVAL)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug(f"Released provisioning lock {self.path}")

    def __enter__(self) -> "ProvisioningLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

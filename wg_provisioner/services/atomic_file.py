"""
Atomic file replacement

Write to a temp file in the target directory, fsync, then rename over the
target, so readers only ever see the old or the new content.
"""

import os
import tempfile
import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


def atomic_write_text(
    path: Union[str, Path],
    content: str,
    mode: int = 0o600,
    prefix: str = ".tmp_"
) -> None:
    """
    Replace a file's content atomically

    Args:
        path: Target file
        content: New file contents
        mode: Permission bits applied before the rename
        prefix: Temp file name prefix

    Raises:
        OSError: If any step fails (the temp file is removed)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=prefix,
        suffix=".tmp"
    )

    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise

    _fsync_directory(path.parent)
    logger.debug(f"Atomically replaced {path}")


def _fsync_directory(directory: Path) -> None:
    """Persist the rename; not every platform allows opening a directory"""
    try:
        dir_fd = os.open(str(directory), os.O_RDONLY)
    except OSError as e:
        logger.debug(f"Cannot open {directory} for fsync: {e}")
        return
    try:
        os.fsync(dir_fd)
    except OSError as e:
        logger.debug(f"Directory fsync unsupported for {directory}: {e}")
    finally:
        os.close(dir_fd)

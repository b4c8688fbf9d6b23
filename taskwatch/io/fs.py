from __future__ import annotations

import logging
import os

from taskwatch.errors import FileSystemError

logger = logging.getLogger("taskwatch.io.fs")

OPEN_PERMISSIONS = 0o777


def set_permissions(path: str, mode: int = OPEN_PERMISSIONS) -> None:
    """
    chmod a volume path.

    Raises:
        FileSystemError: path missing or not ours to change
    """
    try:
        os.chmod(path, mode)
    except OSError as e:
        raise FileSystemError(path, e.strerror or str(e)) from e
    logger.debug(f"Set permissions {mode:o} on {path}")

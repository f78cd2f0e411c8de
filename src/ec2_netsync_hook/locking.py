"""Per-interface mutual exclusion between concurrent hook runs."""

from __future__ import annotations

import fcntl
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

LOG = logging.getLogger(__name__)


@contextmanager
def interface_lock(lock_dir: Path, interface: str) -> Iterator[Path]:
    """Hold an exclusive lock on ``<lock_dir>/<interface>.lock``.

    udhcpc may run hooks for different interfaces at the same time, which is
    fine, but two passes over the same interface must not interleave.
    """

    lock_dir.mkdir(parents=True, exist_ok=True)
    path = lock_dir / f"{interface}.lock"
    with path.open("a") as fh:
        LOG.debug("waiting for lock %s", path)
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
        try:
            yield path
        finally:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

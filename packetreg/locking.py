"""
Exclusive lock over a registry state directory.

Each CLI invocation replays events.jsonl, applies one change, appends its
event and saves ledger.json. Holding the lock across all of that keeps two
processes from both assigning the same packet id or overwriting each
other's ledger balances.
"""

from __future__ import annotations

import fcntl
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".lock"


@contextmanager
def state_lock(state_dir: Path) -> Iterator[Path]:
    """Hold an exclusive POSIX lock on `state_dir` for the duration of the block."""
    state_dir.mkdir(parents=True, exist_ok=True)
    lock_path = state_dir / LOCK_FILENAME
    with lock_path.open("a") as handle:
        logger.debug("waiting for lock %s", lock_path)
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield lock_path
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

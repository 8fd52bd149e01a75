"""Keyed locks for state shared between concurrent pipeline runs."""
import contextlib
import fcntl
import threading
from pathlib import Path
from typing import Dict, Hashable, Iterator


class KeyedLock:
    """Map of key -> lock, created on first use.

    ``with locks.hold("armv7-unknown-linux-gnueabihf"):`` serializes callers
    that use the same key while callers with different keys proceed in
    parallel. The map itself is guarded by a single lock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextlib.contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.lock_for(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


@contextlib.contextmanager
def exclusive_file_lock(locks_dir: Path, name: str) -> Iterator[None]:
    """Cross-process exclusive lock on ``locks_dir/name``."""
    locks_dir = Path(locks_dir)
    locks_dir.mkdir(exist_ok=True, parents=True)
    with Path(locks_dir, name).open('w+') as lock:
        fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

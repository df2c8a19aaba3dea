from contextlib import contextmanager
import logging
import threading
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class SlotLockTimeout(Exception):
    def __init__(self, slot_id: int):
        super().__init__(f"Timed out waiting for lock on time slot {slot_id}")
        self.slot_id = slot_id


class SlotLockRegistry:
    """In-process mutual exclusion keyed by time slot id.

    Entries are reference counted so the map only holds locks for slots that
    are currently in use. Several slots are always acquired in ascending id
    order to rule out lock-order deadlocks.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._users: Dict[int, int] = {}

    def _checkout(self, slot_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(slot_id)
            if lock is None:
                lock = self._locks[slot_id] = threading.Lock()
            self._users[slot_id] = self._users.get(slot_id, 0) + 1
            return lock

    def _checkin(self, slot_id: int) -> None:
        with self._guard:
            remaining = self._users[slot_id] - 1
            if remaining:
                self._users[slot_id] = remaining
            else:
                del self._users[slot_id]
                del self._locks[slot_id]

    def active_slots(self) -> List[int]:
        with self._guard:
            return sorted(self._locks)

    @contextmanager
    def hold(self, slot_ids: Iterable[int], timeout: Optional[float] = None) -> Iterator[None]:
        """Hold the locks of every given slot for the duration of the block."""
        timeout = self.timeout if timeout is None else timeout
        acquired: List[Tuple[int, threading.Lock]] = []
        try:
            for slot_id in sorted(set(slot_ids)):
                lock = self._checkout(slot_id)
                if timeout is None:
                    ok = lock.acquire()
                else:
                    ok = lock.acquire(timeout=timeout)
                if not ok:
                    self._checkin(slot_id)
                    logger.warning(f"Lock wait on time slot {slot_id} exceeded {timeout}s")
                    raise SlotLockTimeout(slot_id)
                acquired.append((slot_id, lock))
            yield
        finally:
            for slot_id, lock in reversed(acquired):
                lock.release()
                self._checkin(slot_id)


slot_locks = SlotLockRegistry()

import threading
import time
from collections import OrderedDict
from collections.abc import Iterable
from typing import Callable, Union

from .state import UsageRecord

DEFAULT_GROUP = "default"
DEFAULT_MAX_SIZE = 500
KEY_SEPARATOR = "#"


def usage_key(group: str, token: str) -> str:
    return f"{group}{KEY_SEPARATOR}{token}"


def normalize_tokens(tokens: Union[Iterable[str], None]) -> list[str]:
    """Return tokens as a list; an empty or missing list means the single slot ""."""
    tokens = list(tokens) if tokens else []
    return tokens or [""]


class LRUStore:
    """Bounded map that drops the least recently used entries once max_size is exceeded."""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._data: OrderedDict = OrderedDict()

    def get(self, key, default=None):
        if key not in self._data:
            return default
        self._data.move_to_end(key)
        return self._data[key]

    def set(self, key, value) -> None:
        self._data[key] = value
        self._data.move_to_end(key)
        while len(self._data) > self.max_size:
            self._data.popitem(last=False)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class UsageStore:
    """Per (group, token) usage records kept in a bounded backend map.

    Any backend exposing ``get(key)`` and ``set(key, value)`` works; the default
    is an ``LRUStore``. ``lock`` guards read-modify-write sequences done by the
    dealers so a store can be shared between threads.
    """

    def __init__(
        self,
        backend=None,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend if backend is not None else LRUStore(max_size)
        self.lock = threading.RLock()
        # next time a "waiting for reset" notice may be logged, per (group, token)
        self.sleep_notices: dict[tuple[str, str], float] = {}
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def retrieve(self, token: str, group: str = DEFAULT_GROUP) -> UsageRecord:
        key = usage_key(group, token)
        with self.lock:
            record = self.backend.get(key)
            # Replacing a stale record drops its inflight count as well
            if record is None or record.is_stale(self.now()):
                record = UsageRecord()
                self.backend.set(key, record)
            return record

    def snapshot(
        self, tokens: Union[Iterable[str], None], group: str = DEFAULT_GROUP
    ) -> dict[str, UsageRecord]:
        with self.lock:
            return {token: self.retrieve(token, group) for token in normalize_tokens(tokens)}


default_store = UsageStore()


def get_default_store() -> UsageStore:
    return default_store

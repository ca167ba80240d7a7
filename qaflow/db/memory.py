from __future__ import annotations

import copy
import functools
import threading
from collections.abc import Callable
from typing import Any


class InMemoryTxRunner:
    """All-or-nothing execution over in-process tables.

    Transactions are serialised by a re-entrant lock. The outermost call
    snapshots every table and restores it when the callback raises; nested
    calls from the same thread run inside the enclosing transaction.
    """

    def __init__(self, tables: dict[str, dict[str, Any]]) -> None:
        self._tables = tables
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def in_transaction(self) -> bool:
        return self._depth > 0

    def run_in_tx(self, *, fn: Callable[[Any], Any]) -> Any:
        with self._lock:
            if self._depth > 0:
                return fn(None)
            snapshot = copy.deepcopy(self._tables)
            self._depth += 1
            try:
                return fn(None)
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                self._depth -= 1

    def _restore(self, snapshot: dict[str, dict[str, Any]]) -> None:
        for name, table in self._tables.items():
            table.clear()
            table.update(snapshot.get(name, {}))


class SerializedRepository:
    """Runs every public repository call under the transaction lock.

    Reads made outside a transaction would otherwise iterate tables that a
    concurrent transaction is mutating or restoring.
    """

    def __init__(self, repository: Any, lock: threading.RLock) -> None:
        self._repository = repository
        self._lock = lock

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._repository, name)
        if name.startswith("_") or not callable(attr):
            return attr

        @functools.wraps(attr)
        def call(*args: Any, **kwargs: Any) -> Any:
            with self._lock:
                return attr(*args, **kwargs)

        return call

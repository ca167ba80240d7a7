from __future__ import annotations

import re
import threading
from collections.abc import Callable
from typing import Any


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


def validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


class PostgresTxRunner:
    """Run callback logic in one PostgreSQL transaction.

    Calls made while a transaction is already open on the current thread join
    it, so repository methods compose into a single commit.
    """

    def __init__(self, dsn: str) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()
        self._local = threading.local()

    def in_transaction(self) -> bool:
        return getattr(self._local, "conn", None) is not None

    def run_in_tx(self, *, fn: Callable[[Any], Any]) -> Any:
        current = getattr(self._local, "conn", None)
        if current is not None:
            return fn(current)

        psycopg = _import_psycopg()
        with psycopg.connect(self._dsn) as conn:
            self._local.conn = conn
            try:
                result = fn(conn)
                conn.commit()
                return result
            except Exception:
                conn.rollback()
                raise
            finally:
                self._local.conn = None

from __future__ import annotations

from typing import Any

from qaflow.db.postgres import PostgresTxRunner, validate_identifier

_COLUMNS = ("notification_id", "user_id", "type", "related_id", "message", "is_read", "created_at")


def _sort_key(row: dict[str, Any]) -> tuple[Any, str]:
    return (row["created_at"], str(row["notification_id"]))


class InMemoryNotificationsRepository:
    def __init__(self, notifications: dict[str, dict[str, Any]]) -> None:
        self._notifications = notifications

    def insert(self, *, notification: dict[str, Any]) -> dict[str, Any]:
        item = {key: notification.get(key) for key in _COLUMNS}
        item["is_read"] = bool(item.get("is_read"))
        self._notifications[str(item["notification_id"])] = item
        return dict(item)

    def get(self, *, notification_id: str) -> dict[str, Any] | None:
        row = self._notifications.get(notification_id)
        return None if row is None else dict(row)

    def set_read(self, *, notification_id: str, is_read: bool) -> dict[str, Any] | None:
        row = self._notifications.get(notification_id)
        if row is None:
            return None
        row["is_read"] = bool(is_read)
        return dict(row)

    def mark_all_read(self, *, user_id: str) -> int:
        updated = 0
        for row in self._notifications.values():
            if row.get("user_id") == user_id and not row.get("is_read"):
                row["is_read"] = True
                updated += 1
        return updated

    def list_for_user(
        self,
        *,
        user_id: str,
        unread_only: bool,
        limit: int,
        cursor: str | None = None,
    ) -> list[dict[str, Any]]:
        rows = [
            dict(x)
            for x in self._notifications.values()
            if x.get("user_id") == user_id and (not unread_only or not x.get("is_read"))
        ]
        rows.sort(key=_sort_key, reverse=True)
        if cursor:
            anchor = self._notifications.get(cursor)
            if anchor is None:
                return []
            anchor_key = _sort_key(anchor)
            rows = [x for x in rows if _sort_key(x) < anchor_key]
        return rows[:limit]

    def count_unread(self, *, user_id: str) -> int:
        return sum(1 for x in self._notifications.values() if x.get("user_id") == user_id and not x.get("is_read"))


class PostgresNotificationsRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "notifications") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def insert(self, *, notification: dict[str, Any]) -> dict[str, Any]:
        item = {key: notification.get(key) for key in _COLUMNS}
        item["is_read"] = bool(item.get("is_read"))
        sql = f"""
            INSERT INTO {self._table_name} (
                notification_id, user_id, type, related_id, message, is_read, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(item[key] for key in _COLUMNS))
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, notification_id: str) -> dict[str, Any] | None:
        sql = f"""
            SELECT notification_id, user_id, type, related_id, message, is_read, created_at
            FROM {self._table_name}
            WHERE notification_id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (notification_id,))
                row = cur.fetchone()
            return None if row is None else dict(zip(_COLUMNS, row))

        return self._tx_runner.run_in_tx(fn=_op)

    def set_read(self, *, notification_id: str, is_read: bool) -> dict[str, Any] | None:
        sql = f"""
            UPDATE {self._table_name}
            SET is_read = %s
            WHERE notification_id = %s
            RETURNING notification_id, user_id, type, related_id, message, is_read, created_at
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (bool(is_read), notification_id))
                row = cur.fetchone()
            return None if row is None else dict(zip(_COLUMNS, row))

        return self._tx_runner.run_in_tx(fn=_op)

    def mark_all_read(self, *, user_id: str) -> int:
        sql = f"UPDATE {self._table_name} SET is_read = TRUE WHERE user_id = %s AND is_read = FALSE"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id,))
                return int(cur.rowcount)

        return self._tx_runner.run_in_tx(fn=_op)

    def list_for_user(
        self,
        *,
        user_id: str,
        unread_only: bool,
        limit: int,
        cursor: str | None = None,
    ) -> list[dict[str, Any]]:
        where = ["user_id = %s"]
        params: list[Any] = [user_id]
        if unread_only:
            where.append("is_read = FALSE")
        if cursor:
            where.append(
                f"(created_at, notification_id) < "
                f"(SELECT created_at, notification_id FROM {self._table_name} WHERE notification_id = %s)"
            )
            params.append(cursor)
        params.append(int(limit))
        sql = f"""
            SELECT notification_id, user_id, type, related_id, message, is_read, created_at
            FROM {self._table_name}
            WHERE {' AND '.join(where)}
            ORDER BY created_at DESC, notification_id DESC
            LIMIT %s
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                rows = cur.fetchall() or []
            return [dict(zip(_COLUMNS, row)) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def count_unread(self, *, user_id: str) -> int:
        sql = f"SELECT COUNT(*) FROM {self._table_name} WHERE user_id = %s AND is_read = FALSE"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id,))
                row = cur.fetchone()
            return int(row[0]) if row else 0

        return self._tx_runner.run_in_tx(fn=_op)

from __future__ import annotations

from typing import Any

from qaflow.db.postgres import PostgresTxRunner, validate_identifier

_COLUMNS = ("user_id", "name", "email")


class InMemoryUsersRepository:
    def __init__(self, users: dict[str, dict[str, Any]]) -> None:
        self._users = users

    def upsert(self, *, user: dict[str, Any]) -> dict[str, Any]:
        item = {key: user.get(key) for key in _COLUMNS}
        self._users[str(item["user_id"])] = item
        return dict(item)

    def get_many(self, *, user_ids: list[str]) -> dict[str, dict[str, Any]]:
        return {uid: dict(self._users[uid]) for uid in user_ids if uid in self._users}


class PostgresUsersRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "users") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def upsert(self, *, user: dict[str, Any]) -> dict[str, Any]:
        item = {key: user.get(key) for key in _COLUMNS}
        sql = f"""
            INSERT INTO {self._table_name} (user_id, name, email)
            VALUES (%s, %s, %s)
            ON CONFLICT(user_id) DO UPDATE SET
                name = EXCLUDED.name,
                email = EXCLUDED.email
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, (item["user_id"], item["name"], item["email"]))
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get_many(self, *, user_ids: list[str]) -> dict[str, dict[str, Any]]:
        if not user_ids:
            return {}
        sql = f"SELECT user_id, name, email FROM {self._table_name} WHERE user_id = ANY(%s)"

        def _op(conn: Any) -> dict[str, dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (list(user_ids),))
                rows = cur.fetchall() or []
            return {row[0]: dict(zip(_COLUMNS, row)) for row in rows}

        return self._tx_runner.run_in_tx(fn=_op)

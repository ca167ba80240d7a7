from __future__ import annotations

import json
from typing import Any

from qaflow.db.postgres import PostgresTxRunner, validate_identifier

_COLUMNS = ("template_id", "creator_id", "name", "description", "fields", "created_at", "updated_at")


def _copy(row: dict[str, Any]) -> dict[str, Any]:
    return {**row, "fields": [dict(x) for x in row.get("fields") or []]}


class InMemoryFormTemplatesRepository:
    def __init__(self, templates: dict[str, dict[str, Any]]) -> None:
        self._templates = templates

    def upsert(self, *, template: dict[str, Any]) -> dict[str, Any]:
        item = _copy({key: template.get(key) for key in _COLUMNS})
        self._templates[str(item["template_id"])] = item
        return _copy(item)

    def get(self, *, template_id: str) -> dict[str, Any] | None:
        row = self._templates.get(template_id)
        return None if row is None else _copy(row)

    def list_for_creator(self, *, creator_id: str) -> list[dict[str, Any]]:
        rows = [_copy(x) for x in self._templates.values() if x.get("creator_id") == creator_id]
        return sorted(rows, key=lambda x: x["created_at"], reverse=True)

    def delete(self, *, template_id: str) -> bool:
        return self._templates.pop(template_id, None) is not None


class PostgresFormTemplatesRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "answer_form_templates") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    @staticmethod
    def _row(row: tuple[Any, ...]) -> dict[str, Any]:
        item = dict(zip(_COLUMNS, row))
        fields = item.get("fields")
        if isinstance(fields, str):
            fields = json.loads(fields)
        item["fields"] = list(fields or [])
        return item

    def upsert(self, *, template: dict[str, Any]) -> dict[str, Any]:
        item = {key: template.get(key) for key in _COLUMNS}
        sql = f"""
            INSERT INTO {self._table_name} ({', '.join(_COLUMNS)})
            VALUES (%s, %s, %s, %s, %s::jsonb, %s, %s)
            ON CONFLICT(template_id) DO UPDATE SET
                name = EXCLUDED.name,
                description = EXCLUDED.description,
                fields = EXCLUDED.fields,
                updated_at = EXCLUDED.updated_at
        """
        params = (
            item["template_id"],
            item["creator_id"],
            item["name"],
            item["description"],
            json.dumps(list(item.get("fields") or []), ensure_ascii=True),
            item["created_at"],
            item["updated_at"],
        )

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, template_id: str) -> dict[str, Any] | None:
        sql = f"SELECT {', '.join(_COLUMNS)} FROM {self._table_name} WHERE template_id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (template_id,))
                row = cur.fetchone()
            return None if row is None else self._row(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def list_for_creator(self, *, creator_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT {', '.join(_COLUMNS)}
            FROM {self._table_name}
            WHERE creator_id = %s
            ORDER BY created_at DESC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (creator_id,))
                rows = cur.fetchall() or []
            return [self._row(row) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def delete(self, *, template_id: str) -> bool:
        sql = f"DELETE FROM {self._table_name} WHERE template_id = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (template_id,))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(fn=_op)

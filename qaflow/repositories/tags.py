from __future__ import annotations

from typing import Any

from qaflow.db.postgres import PostgresTxRunner, validate_identifier

_TAG_COLUMNS = ("tag_id", "project_id", "name", "created_at")


def _link_key(question_id: str, tag_id: str) -> str:
    return f"{question_id}:{tag_id}"


class InMemoryTagsRepository:
    def __init__(self, project_tags: dict[str, dict[str, Any]], question_tags: dict[str, dict[str, Any]]) -> None:
        self._tags = project_tags
        self._links = question_tags

    def insert(self, *, tag: dict[str, Any]) -> dict[str, Any]:
        item = {key: tag.get(key) for key in _TAG_COLUMNS}
        self._tags[str(item["tag_id"])] = item
        return dict(item)

    def get(self, *, tag_id: str) -> dict[str, Any] | None:
        row = self._tags.get(tag_id)
        return None if row is None else dict(row)

    def get_by_name(self, *, project_id: str, name: str) -> dict[str, Any] | None:
        for row in self._tags.values():
            if row.get("project_id") == project_id and row.get("name") == name:
                return dict(row)
        return None

    def list_for_project(self, *, project_id: str) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._tags.values() if x.get("project_id") == project_id]
        return sorted(rows, key=lambda x: x["name"])

    def get_many(self, *, tag_ids: list[str]) -> list[dict[str, Any]]:
        return [dict(self._tags[x]) for x in tag_ids if x in self._tags]

    def delete(self, *, tag_id: str) -> bool:
        for key in [k for k, v in self._links.items() if v.get("tag_id") == tag_id]:
            del self._links[key]
        return self._tags.pop(tag_id, None) is not None

    def count_usage(self, *, tag_id: str) -> int:
        return sum(1 for x in self._links.values() if x.get("tag_id") == tag_id)

    def replace_for_question(self, *, question_id: str, tag_ids: list[str]) -> None:
        for key in [k for k, v in self._links.items() if v.get("question_id") == question_id]:
            del self._links[key]
        for tag_id in tag_ids:
            self._links[_link_key(question_id, tag_id)] = {"question_id": question_id, "tag_id": tag_id}

    def list_for_question(self, *, question_id: str) -> list[dict[str, Any]]:
        tag_ids = [x["tag_id"] for x in self._links.values() if x.get("question_id") == question_id]
        return sorted(self.get_many(tag_ids=tag_ids), key=lambda x: x["name"])


class PostgresTagsRepository:
    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "project_tags",
        links_table_name: str = "question_tags",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)
        self._links_table = validate_identifier(links_table_name)

    def _select_tags(self, where: str) -> str:
        return f"SELECT {', '.join(_TAG_COLUMNS)} FROM {self._table_name} WHERE {where}"

    def insert(self, *, tag: dict[str, Any]) -> dict[str, Any]:
        item = {key: tag.get(key) for key in _TAG_COLUMNS}
        sql = f"""
            INSERT INTO {self._table_name} (tag_id, project_id, name, created_at)
            VALUES (%s, %s, %s, %s)
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(item[key] for key in _TAG_COLUMNS))
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> dict[str, Any] | None:
        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
            return None if row is None else dict(zip(_TAG_COLUMNS, row))

        return self._tx_runner.run_in_tx(fn=_op)

    def _fetch_all(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall() or []
            return [dict(zip(_TAG_COLUMNS, row)) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, tag_id: str) -> dict[str, Any] | None:
        return self._fetch_one(self._select_tags("tag_id = %s") + " LIMIT 1", (tag_id,))

    def get_by_name(self, *, project_id: str, name: str) -> dict[str, Any] | None:
        return self._fetch_one(self._select_tags("project_id = %s AND name = %s") + " LIMIT 1", (project_id, name))

    def list_for_project(self, *, project_id: str) -> list[dict[str, Any]]:
        return self._fetch_all(self._select_tags("project_id = %s") + " ORDER BY name ASC", (project_id,))

    def get_many(self, *, tag_ids: list[str]) -> list[dict[str, Any]]:
        if not tag_ids:
            return []
        return self._fetch_all(self._select_tags("tag_id = ANY(%s)"), (list(tag_ids),))

    def delete(self, *, tag_id: str) -> bool:
        delete_links_sql = f"DELETE FROM {self._links_table} WHERE tag_id = %s"
        delete_tag_sql = f"DELETE FROM {self._table_name} WHERE tag_id = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(delete_links_sql, (tag_id,))
                cur.execute(delete_tag_sql, (tag_id,))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(fn=_op)

    def count_usage(self, *, tag_id: str) -> int:
        sql = f"SELECT COUNT(*) FROM {self._links_table} WHERE tag_id = %s"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, (tag_id,))
                row = cur.fetchone()
            return int(row[0]) if row else 0

        return self._tx_runner.run_in_tx(fn=_op)

    def replace_for_question(self, *, question_id: str, tag_ids: list[str]) -> None:
        delete_sql = f"DELETE FROM {self._links_table} WHERE question_id = %s"
        insert_sql = f"INSERT INTO {self._links_table} (question_id, tag_id) VALUES (%s, %s)"

        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                cur.execute(delete_sql, (question_id,))
                for tag_id in tag_ids:
                    cur.execute(insert_sql, (question_id, tag_id))

        self._tx_runner.run_in_tx(fn=_op)

    def list_for_question(self, *, question_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT {', '.join('t.' + x for x in _TAG_COLUMNS)}
            FROM {self._table_name} t
            JOIN {self._links_table} l ON l.tag_id = t.tag_id
            WHERE l.question_id = %s
            ORDER BY t.name ASC
        """
        return self._fetch_all(sql, (question_id,))

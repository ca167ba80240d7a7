from __future__ import annotations

from typing import Any

from qaflow.db.postgres import PostgresTxRunner, validate_identifier

_PROJECT_COLUMNS = ("project_id", "name", "description", "creator_id", "created_at", "updated_at")
_MEMBER_COLUMNS = ("project_id", "user_id", "role", "created_at")


def _member_key(project_id: str, user_id: str) -> str:
    return f"{project_id}:{user_id}"


class InMemoryProjectsRepository:
    def __init__(self, projects: dict[str, dict[str, Any]], members: dict[str, dict[str, Any]]) -> None:
        self._projects = projects
        self._members = members

    def upsert(self, *, project: dict[str, Any]) -> dict[str, Any]:
        item = {key: project.get(key) for key in _PROJECT_COLUMNS}
        self._projects[str(item["project_id"])] = item
        return dict(item)

    def get(self, *, project_id: str) -> dict[str, Any] | None:
        row = self._projects.get(project_id)
        return None if row is None else dict(row)

    def get_with_members(self, *, project_id: str) -> dict[str, Any] | None:
        project = self.get(project_id=project_id)
        if project is None:
            return None
        project["members"] = self.list_members(project_id=project_id)
        return project

    def list_members(self, *, project_id: str) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._members.values() if x.get("project_id") == project_id]
        return sorted(rows, key=lambda x: x["created_at"])

    def upsert_member(self, *, membership: dict[str, Any]) -> dict[str, Any]:
        item = {key: membership.get(key) for key in _MEMBER_COLUMNS}
        key = _member_key(str(item["project_id"]), str(item["user_id"]))
        existing = self._members.get(key)
        if existing is not None:
            item["created_at"] = existing["created_at"]
        self._members[key] = item
        return dict(item)

    def get_member(self, *, project_id: str, user_id: str) -> dict[str, Any] | None:
        row = self._members.get(_member_key(project_id, user_id))
        return None if row is None else dict(row)

    def delete_member(self, *, project_id: str, user_id: str) -> bool:
        return self._members.pop(_member_key(project_id, user_id), None) is not None


class PostgresProjectsRepository:
    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "projects",
        members_table_name: str = "project_members",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)
        self._members_table = validate_identifier(members_table_name)

    def upsert(self, *, project: dict[str, Any]) -> dict[str, Any]:
        item = {key: project.get(key) for key in _PROJECT_COLUMNS}
        sql = f"""
            INSERT INTO {self._table_name} (
                project_id, name, description, creator_id, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT(project_id) DO UPDATE SET
                name = EXCLUDED.name,
                description = EXCLUDED.description,
                updated_at = EXCLUDED.updated_at
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(item[key] for key in _PROJECT_COLUMNS))
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, project_id: str) -> dict[str, Any] | None:
        sql = f"""
            SELECT project_id, name, description, creator_id, created_at, updated_at
            FROM {self._table_name}
            WHERE project_id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (project_id,))
                row = cur.fetchone()
            if row is None:
                return None
            return dict(zip(_PROJECT_COLUMNS, row))

        return self._tx_runner.run_in_tx(fn=_op)

    def get_with_members(self, *, project_id: str) -> dict[str, Any] | None:
        def _op(_conn: Any) -> dict[str, Any] | None:
            project = self.get(project_id=project_id)
            if project is None:
                return None
            project["members"] = self.list_members(project_id=project_id)
            return project

        return self._tx_runner.run_in_tx(fn=_op)

    def list_members(self, *, project_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT project_id, user_id, role, created_at
            FROM {self._members_table}
            WHERE project_id = %s
            ORDER BY created_at ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (project_id,))
                rows = cur.fetchall() or []
            return [dict(zip(_MEMBER_COLUMNS, row)) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def upsert_member(self, *, membership: dict[str, Any]) -> dict[str, Any]:
        item = {key: membership.get(key) for key in _MEMBER_COLUMNS}
        sql = f"""
            INSERT INTO {self._members_table} (project_id, user_id, role, created_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT(project_id, user_id) DO UPDATE SET role = EXCLUDED.role
            RETURNING project_id, user_id, role, created_at
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(item[key] for key in _MEMBER_COLUMNS))
                row = cur.fetchone()
            return item if row is None else dict(zip(_MEMBER_COLUMNS, row))

        return self._tx_runner.run_in_tx(fn=_op)

    def get_member(self, *, project_id: str, user_id: str) -> dict[str, Any] | None:
        sql = f"""
            SELECT project_id, user_id, role, created_at
            FROM {self._members_table}
            WHERE project_id = %s AND user_id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (project_id, user_id))
                row = cur.fetchone()
            return None if row is None else dict(zip(_MEMBER_COLUMNS, row))

        return self._tx_runner.run_in_tx(fn=_op)

    def delete_member(self, *, project_id: str, user_id: str) -> bool:
        sql = f"DELETE FROM {self._members_table} WHERE project_id = %s AND user_id = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (project_id, user_id))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(fn=_op)

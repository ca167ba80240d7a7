from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from qaflow.db.postgres import PostgresTxRunner, validate_identifier

_QUESTION_COLUMNS = (
    "question_id",
    "project_id",
    "creator_id",
    "assignee_id",
    "title",
    "content",
    "status",
    "priority",
    "deadline",
    "is_deadline_notified",
    "created_at",
    "updated_at",
)
_FORM_COLUMNS = ("answer_form_id", "question_id", "created_at", "updated_at")
_FIELD_COLUMNS = ("form_field_id", "answer_form_id", "label", "field_type", "options", "is_required", "sort_order")


class InMemoryQuestionsRepository:
    def __init__(
        self,
        questions: dict[str, dict[str, Any]],
        answer_forms: dict[str, dict[str, Any]],
        form_fields: dict[str, dict[str, Any]],
    ) -> None:
        self._questions = questions
        self._answer_forms = answer_forms
        self._form_fields = form_fields

    def insert(self, *, question: dict[str, Any]) -> dict[str, Any]:
        item = {key: question.get(key) for key in _QUESTION_COLUMNS}
        self._questions[str(item["question_id"])] = item
        return dict(item)

    def update(self, *, question: dict[str, Any]) -> dict[str, Any]:
        return self.insert(question=question)

    def get(self, *, question_id: str, for_update: bool = False) -> dict[str, Any] | None:
        row = self._questions.get(question_id)
        return None if row is None else dict(row)

    def list_for_project(self, *, project_id: str) -> list[dict[str, Any]]:
        return [dict(x) for x in self._questions.values() if x.get("project_id") == project_id]

    def list_overdue(self, *, statuses: list[str], now: datetime) -> list[dict[str, Any]]:
        rows = [
            dict(x)
            for x in self._questions.values()
            if x.get("status") in statuses
            and x.get("deadline") is not None
            and x["deadline"] < now
            and not x.get("is_deadline_notified")
        ]
        return sorted(rows, key=lambda x: x["deadline"])

    def get_form(self, *, question_id: str) -> dict[str, Any] | None:
        form = self._answer_forms.get(question_id)
        if form is None:
            return None
        item = dict(form)
        fields = [
            {**x, "options": list(x.get("options") or [])}
            for x in self._form_fields.values()
            if x.get("answer_form_id") == form["answer_form_id"]
        ]
        item["fields"] = sorted(fields, key=lambda x: x["sort_order"])
        return item

    def save_form(self, *, form: dict[str, Any], fields: list[dict[str, Any]]) -> dict[str, Any]:
        item = {key: form.get(key) for key in _FORM_COLUMNS}
        existing = self._answer_forms.get(str(item["question_id"]))
        if existing is not None:
            item["answer_form_id"] = existing["answer_form_id"]
            item["created_at"] = existing["created_at"]
            self._drop_fields(answer_form_id=str(existing["answer_form_id"]))
        self._answer_forms[str(item["question_id"])] = item
        for field in fields:
            row = {key: field.get(key) for key in _FIELD_COLUMNS}
            row["answer_form_id"] = item["answer_form_id"]
            row["options"] = list(row.get("options") or [])
            self._form_fields[str(row["form_field_id"])] = row
        return self.get_form(question_id=str(item["question_id"])) or item

    def delete_form(self, *, question_id: str) -> bool:
        form = self._answer_forms.pop(question_id, None)
        if form is None:
            return False
        self._drop_fields(answer_form_id=str(form["answer_form_id"]))
        return True

    def _drop_fields(self, *, answer_form_id: str) -> None:
        for field_id in [k for k, v in self._form_fields.items() if v.get("answer_form_id") == answer_form_id]:
            del self._form_fields[field_id]


class PostgresQuestionsRepository:
    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "questions",
        forms_table_name: str = "answer_forms",
        fields_table_name: str = "form_fields",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)
        self._forms_table = validate_identifier(forms_table_name)
        self._fields_table = validate_identifier(fields_table_name)

    def _select_questions(self, where: str) -> str:
        return f"SELECT {', '.join(_QUESTION_COLUMNS)} FROM {self._table_name} WHERE {where}"

    def insert(self, *, question: dict[str, Any]) -> dict[str, Any]:
        item = {key: question.get(key) for key in _QUESTION_COLUMNS}
        placeholders = ", ".join(["%s"] * len(_QUESTION_COLUMNS))
        sql = f"INSERT INTO {self._table_name} ({', '.join(_QUESTION_COLUMNS)}) VALUES ({placeholders})"

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(item[key] for key in _QUESTION_COLUMNS))
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def update(self, *, question: dict[str, Any]) -> dict[str, Any]:
        item = {key: question.get(key) for key in _QUESTION_COLUMNS}
        sql = f"""
            UPDATE {self._table_name} SET
                assignee_id = %s,
                title = %s,
                content = %s,
                status = %s,
                priority = %s,
                deadline = %s,
                is_deadline_notified = %s,
                updated_at = %s
            WHERE question_id = %s
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(
                    sql,
                    (
                        item["assignee_id"],
                        item["title"],
                        item["content"],
                        item["status"],
                        item["priority"],
                        item["deadline"],
                        bool(item["is_deadline_notified"]),
                        item["updated_at"],
                        item["question_id"],
                    ),
                )
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, question_id: str, for_update: bool = False) -> dict[str, Any] | None:
        sql = self._select_questions("question_id = %s") + " LIMIT 1"
        if for_update:
            sql += " FOR UPDATE"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (question_id,))
                row = cur.fetchone()
            return None if row is None else dict(zip(_QUESTION_COLUMNS, row))

        return self._tx_runner.run_in_tx(fn=_op)

    def list_for_project(self, *, project_id: str) -> list[dict[str, Any]]:
        sql = self._select_questions("project_id = %s")

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (project_id,))
                rows = cur.fetchall() or []
            return [dict(zip(_QUESTION_COLUMNS, row)) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def list_overdue(self, *, statuses: list[str], now: datetime) -> list[dict[str, Any]]:
        sql = (
            self._select_questions(
                "status = ANY(%s) AND deadline IS NOT NULL AND deadline < %s AND is_deadline_notified = FALSE"
            )
            + " ORDER BY deadline ASC"
        )

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (list(statuses), now))
                rows = cur.fetchall() or []
            return [dict(zip(_QUESTION_COLUMNS, row)) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def get_form(self, *, question_id: str) -> dict[str, Any] | None:
        form_sql = f"""
            SELECT answer_form_id, question_id, created_at, updated_at
            FROM {self._forms_table}
            WHERE question_id = %s
            LIMIT 1
        """
        fields_sql = f"""
            SELECT {', '.join(_FIELD_COLUMNS)}
            FROM {self._fields_table}
            WHERE answer_form_id = %s
            ORDER BY sort_order ASC
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(form_sql, (question_id,))
                row = cur.fetchone()
                if row is None:
                    return None
                form = dict(zip(_FORM_COLUMNS, row))
                cur.execute(fields_sql, (form["answer_form_id"],))
                field_rows = cur.fetchall() or []
            form["fields"] = [dict(zip(_FIELD_COLUMNS, x)) for x in field_rows]
            for field in form["fields"]:
                field["options"] = list(field.get("options") or [])
            return form

        return self._tx_runner.run_in_tx(fn=_op)

    def save_form(self, *, form: dict[str, Any], fields: list[dict[str, Any]]) -> dict[str, Any]:
        item = {key: form.get(key) for key in _FORM_COLUMNS}
        upsert_sql = f"""
            INSERT INTO {self._forms_table} (answer_form_id, question_id, created_at, updated_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT(question_id) DO UPDATE SET updated_at = EXCLUDED.updated_at
            RETURNING answer_form_id
        """
        delete_fields_sql = f"DELETE FROM {self._fields_table} WHERE answer_form_id = %s"
        insert_field_sql = f"""
            INSERT INTO {self._fields_table} ({', '.join(_FIELD_COLUMNS)})
            VALUES (%s, %s, %s, %s, %s::jsonb, %s, %s)
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(upsert_sql, tuple(item[key] for key in _FORM_COLUMNS))
                row = cur.fetchone()
                answer_form_id = row[0] if row is not None else item["answer_form_id"]
                cur.execute(delete_fields_sql, (answer_form_id,))
                for field in fields:
                    cur.execute(
                        insert_field_sql,
                        (
                            field["form_field_id"],
                            answer_form_id,
                            field["label"],
                            field["field_type"],
                            json.dumps(list(field.get("options") or []), ensure_ascii=True),
                            bool(field.get("is_required")),
                            int(field.get("sort_order") or 0),
                        ),
                    )
            return self.get_form(question_id=str(item["question_id"])) or item

        return self._tx_runner.run_in_tx(fn=_op)

    def delete_form(self, *, question_id: str) -> bool:
        delete_fields_sql = f"""
            DELETE FROM {self._fields_table}
            WHERE answer_form_id IN (SELECT answer_form_id FROM {self._forms_table} WHERE question_id = %s)
        """
        delete_form_sql = f"DELETE FROM {self._forms_table} WHERE question_id = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(delete_fields_sql, (question_id,))
                cur.execute(delete_form_sql, (question_id,))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(fn=_op)

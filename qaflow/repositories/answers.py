from __future__ import annotations

from typing import Any

from qaflow.db.postgres import PostgresTxRunner, validate_identifier

_ANSWER_COLUMNS = ("answer_id", "question_id", "creator_id", "content", "created_at", "updated_at")
_LINK_COLUMNS = ("answer_id", "media_file_id", "position")
_RESPONSE_COLUMNS = ("form_response_id", "answer_id", "form_field_id", "value", "media_file_id", "position")


class InMemoryAnswersRepository:
    def __init__(
        self,
        answers: dict[str, dict[str, Any]],
        media_links: dict[str, dict[str, Any]],
        form_responses: dict[str, dict[str, Any]],
    ) -> None:
        self._answers = answers
        self._media_links = media_links
        self._form_responses = form_responses

    def insert(self, *, answer: dict[str, Any]) -> dict[str, Any]:
        item = {key: answer.get(key) for key in _ANSWER_COLUMNS}
        self._answers[str(item["answer_id"])] = item
        return dict(item)

    def update(self, *, answer: dict[str, Any]) -> dict[str, Any]:
        return self.insert(answer=answer)

    def get(self, *, answer_id: str) -> dict[str, Any] | None:
        row = self._answers.get(answer_id)
        return None if row is None else dict(row)

    def delete(self, *, answer_id: str) -> bool:
        return self._answers.pop(answer_id, None) is not None

    def count_for_question(self, *, question_id: str) -> int:
        return sum(1 for x in self._answers.values() if x.get("question_id") == question_id)

    def list_for_question(self, *, question_id: str) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._answers.values() if x.get("question_id") == question_id]
        return sorted(rows, key=lambda x: x["created_at"])

    def add_media_links(self, *, answer_id: str, media_file_ids: list[str]) -> None:
        for position, media_file_id in enumerate(media_file_ids):
            self._media_links[f"{answer_id}:{media_file_id}"] = {
                "answer_id": answer_id,
                "media_file_id": media_file_id,
                "position": position,
            }

    def delete_media_links(self, *, answer_id: str) -> int:
        keys = [k for k, v in self._media_links.items() if v.get("answer_id") == answer_id]
        for key in keys:
            del self._media_links[key]
        return len(keys)

    def list_media_links(self, *, answer_id: str) -> list[str]:
        rows = [x for x in self._media_links.values() if x.get("answer_id") == answer_id]
        return [str(x["media_file_id"]) for x in sorted(rows, key=lambda x: x["position"])]

    def add_form_responses(self, *, answer_id: str, responses: list[dict[str, Any]]) -> None:
        for position, response in enumerate(responses):
            row = {key: response.get(key) for key in _RESPONSE_COLUMNS}
            row["answer_id"] = answer_id
            row["position"] = position
            self._form_responses[str(row["form_response_id"])] = row

    def delete_form_responses(self, *, answer_id: str) -> int:
        keys = [k for k, v in self._form_responses.items() if v.get("answer_id") == answer_id]
        for key in keys:
            del self._form_responses[key]
        return len(keys)

    def list_form_responses(self, *, answer_id: str) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._form_responses.values() if x.get("answer_id") == answer_id]
        return sorted(rows, key=lambda x: x["position"])


class PostgresAnswersRepository:
    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "answers",
        media_links_table_name: str = "answer_media_files",
        form_responses_table_name: str = "answer_form_responses",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)
        self._links_table = validate_identifier(media_links_table_name)
        self._responses_table = validate_identifier(form_responses_table_name)

    def insert(self, *, answer: dict[str, Any]) -> dict[str, Any]:
        item = {key: answer.get(key) for key in _ANSWER_COLUMNS}
        sql = f"""
            INSERT INTO {self._table_name} (answer_id, question_id, creator_id, content, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(item[key] for key in _ANSWER_COLUMNS))
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def update(self, *, answer: dict[str, Any]) -> dict[str, Any]:
        item = {key: answer.get(key) for key in _ANSWER_COLUMNS}
        sql = f"UPDATE {self._table_name} SET content = %s, updated_at = %s WHERE answer_id = %s"

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, (item["content"], item["updated_at"], item["answer_id"]))
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, answer_id: str) -> dict[str, Any] | None:
        sql = f"""
            SELECT answer_id, question_id, creator_id, content, created_at, updated_at
            FROM {self._table_name}
            WHERE answer_id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (answer_id,))
                row = cur.fetchone()
            return None if row is None else dict(zip(_ANSWER_COLUMNS, row))

        return self._tx_runner.run_in_tx(fn=_op)

    def delete(self, *, answer_id: str) -> bool:
        sql = f"DELETE FROM {self._table_name} WHERE answer_id = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (answer_id,))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(fn=_op)

    def count_for_question(self, *, question_id: str) -> int:
        sql = f"SELECT COUNT(*) FROM {self._table_name} WHERE question_id = %s"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, (question_id,))
                row = cur.fetchone()
            return int(row[0]) if row else 0

        return self._tx_runner.run_in_tx(fn=_op)

    def list_for_question(self, *, question_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT answer_id, question_id, creator_id, content, created_at, updated_at
            FROM {self._table_name}
            WHERE question_id = %s
            ORDER BY created_at ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (question_id,))
                rows = cur.fetchall() or []
            return [dict(zip(_ANSWER_COLUMNS, row)) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def add_media_links(self, *, answer_id: str, media_file_ids: list[str]) -> None:
        sql = f"INSERT INTO {self._links_table} (answer_id, media_file_id, position) VALUES (%s, %s, %s)"

        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                for position, media_file_id in enumerate(media_file_ids):
                    cur.execute(sql, (answer_id, media_file_id, position))

        self._tx_runner.run_in_tx(fn=_op)

    def delete_media_links(self, *, answer_id: str) -> int:
        sql = f"DELETE FROM {self._links_table} WHERE answer_id = %s"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, (answer_id,))
                return int(cur.rowcount)

        return self._tx_runner.run_in_tx(fn=_op)

    def list_media_links(self, *, answer_id: str) -> list[str]:
        sql = f"SELECT media_file_id FROM {self._links_table} WHERE answer_id = %s ORDER BY position ASC"

        def _op(conn: Any) -> list[str]:
            with conn.cursor() as cur:
                cur.execute(sql, (answer_id,))
                rows = cur.fetchall() or []
            return [str(row[0]) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def add_form_responses(self, *, answer_id: str, responses: list[dict[str, Any]]) -> None:
        sql = f"""
            INSERT INTO {self._responses_table} (
                form_response_id, answer_id, form_field_id, value, media_file_id, position
            ) VALUES (%s, %s, %s, %s, %s, %s)
        """

        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                for position, response in enumerate(responses):
                    cur.execute(
                        sql,
                        (
                            response["form_response_id"],
                            answer_id,
                            response["form_field_id"],
                            response.get("value"),
                            response.get("media_file_id"),
                            position,
                        ),
                    )

        self._tx_runner.run_in_tx(fn=_op)

    def delete_form_responses(self, *, answer_id: str) -> int:
        sql = f"DELETE FROM {self._responses_table} WHERE answer_id = %s"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, (answer_id,))
                return int(cur.rowcount)

        return self._tx_runner.run_in_tx(fn=_op)

    def list_form_responses(self, *, answer_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT form_response_id, answer_id, form_field_id, value, media_file_id, position
            FROM {self._responses_table}
            WHERE answer_id = %s
            ORDER BY position ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (answer_id,))
                rows = cur.fetchall() or []
            return [dict(zip(_RESPONSE_COLUMNS, row)) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

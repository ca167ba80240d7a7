from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from qaflow.repositories import (
    InMemoryMediaFilesRepository,
    InMemoryQuestionsRepository,
    InMemoryTagsRepository,
    PostgresAnswersRepository,
    PostgresFormTemplatesRepository,
    PostgresNotificationsRepository,
    PostgresQuestionsRepository,
    PostgresTagsRepository,
)


class FakeCursor:
    def __init__(self, statements: list, rows: list, rowcount: int):
        self._statements = statements
        self._rows = rows
        self.rowcount = rowcount

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, query: str, params=None):
        self._statements.append((query, params))

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class FakeRunner:
    def __init__(self, *, rows: list | None = None, rowcount: int = 0):
        self.statements: list[tuple[str, tuple | None]] = []
        self.rows = rows or []
        self.rowcount = rowcount

    def run_in_tx(self, *, fn):
        runner = self

        class FakeConnection:
            def cursor(self):
                return FakeCursor(runner.statements, runner.rows, runner.rowcount)

        return fn(FakeConnection())


_QUESTION_KEYS = (
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


def _question_row(question_id: str = "q_1") -> tuple:
    now = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)
    return (question_id, "prj_1", "u_creator", "u_assignee", "t", "c", "NEW", "HIGH", None, False, now, now)


def test_postgres_repositories_reject_invalid_table_names():
    with pytest.raises(ValueError, match="invalid SQL identifier"):
        PostgresQuestionsRepository(tx_runner=FakeRunner(), table_name="questions;drop table questions")
    with pytest.raises(ValueError, match="invalid SQL identifier"):
        PostgresAnswersRepository(tx_runner=FakeRunner(), media_links_table_name="answer media")


def test_postgres_question_get_locks_row_when_requested():
    runner = FakeRunner(rows=[_question_row()])
    repo = PostgresQuestionsRepository(tx_runner=runner)

    plain = repo.get(question_id="q_1")
    locked = repo.get(question_id="q_1", for_update=True)

    assert plain is not None and plain["priority"] == "HIGH"
    assert locked == plain
    assert "FOR UPDATE" not in runner.statements[0][0]
    assert runner.statements[1][0].rstrip().endswith("FOR UPDATE")
    assert runner.statements[1][1] == ("q_1",)


def test_postgres_question_update_targets_primary_key():
    runner = FakeRunner()
    repo = PostgresQuestionsRepository(tx_runner=runner)
    row = dict(zip(_QUESTION_KEYS, _question_row()))
    repo.update(question={**row, "status": "IN_PROGRESS"})
    sql, params = runner.statements[0]
    assert "UPDATE questions SET" in sql
    assert "WHERE question_id = %s" in sql
    assert params[3] == "IN_PROGRESS"
    assert params[-1] == "q_1"


def test_postgres_overdue_query_filters_unnotified_rows():
    runner = FakeRunner(rows=[_question_row()])
    repo = PostgresQuestionsRepository(tx_runner=runner)
    now = datetime(2026, 1, 6, tzinfo=UTC)
    rows = repo.list_overdue(statuses=["NEW", "IN_PROGRESS"], now=now)
    sql, params = runner.statements[0]
    assert "is_deadline_notified = FALSE" in sql
    assert "ORDER BY deadline ASC" in sql
    assert params == (["NEW", "IN_PROGRESS"], now)
    assert rows[0]["question_id"] == "q_1"


def test_postgres_notifications_cursor_uses_row_comparison():
    runner = FakeRunner()
    repo = PostgresNotificationsRepository(tx_runner=runner)
    repo.list_for_user(user_id="u_1", unread_only=True, limit=11, cursor="ntf_9")
    sql, params = runner.statements[0]
    assert "is_read = FALSE" in sql
    assert "(created_at, notification_id) <" in sql
    assert "ORDER BY created_at DESC, notification_id DESC" in sql
    assert params == ("u_1", "ntf_9", 11)


def test_postgres_answer_delete_reports_rowcount():
    assert PostgresAnswersRepository(tx_runner=FakeRunner(rowcount=1)).delete(answer_id="ans_1") is True
    assert PostgresAnswersRepository(tx_runner=FakeRunner(rowcount=0)).delete(answer_id="ans_1") is False


def test_inmemory_overdue_list_is_sorted_and_skips_notified():
    now = datetime.now(UTC)
    questions = {
        "q_late": {"question_id": "q_late", "status": "NEW", "deadline": now - timedelta(hours=1)},
        "q_later": {"question_id": "q_later", "status": "IN_PROGRESS", "deadline": now - timedelta(hours=5)},
        "q_done": {
            "question_id": "q_done",
            "status": "NEW",
            "deadline": now - timedelta(hours=9),
            "is_deadline_notified": True,
        },
        "q_closed": {"question_id": "q_closed", "status": "CLOSED", "deadline": now - timedelta(hours=2)},
    }
    repo = InMemoryQuestionsRepository(questions, {}, {})
    rows = repo.list_overdue(statuses=["NEW", "IN_PROGRESS"], now=now)
    assert [x["question_id"] for x in rows] == ["q_later", "q_late"]


def test_inmemory_media_ownership():
    repo = InMemoryMediaFilesRepository({})
    repo.insert(media_file={"media_file_id": "m_1", "uploader_id": "u_1"})
    repo.insert(media_file={"media_file_id": "m_2", "uploader_id": "u_2"})
    assert repo.owned_ids(media_file_ids=["m_1", "m_2", "m_3"], uploader_id="u_1") == {"m_1"}
    assert [x["media_file_id"] for x in repo.get_many(media_file_ids=["m_2", "m_1"])] == ["m_2", "m_1"]


def test_postgres_question_tags_are_replaced_wholesale():
    runner = FakeRunner()
    repo = PostgresTagsRepository(tx_runner=runner)
    repo.replace_for_question(question_id="q_1", tag_ids=["tag_a", "tag_b"])
    assert runner.statements[0] == ("DELETE FROM question_tags WHERE question_id = %s", ("q_1",))
    assert [params for _, params in runner.statements[1:]] == [("q_1", "tag_a"), ("q_1", "tag_b")]


def test_postgres_tag_delete_drops_links_first():
    runner = FakeRunner(rowcount=1)
    assert PostgresTagsRepository(tx_runner=runner).delete(tag_id="tag_a") is True
    assert [sql.split(" WHERE")[0] for sql, _ in runner.statements] == [
        "DELETE FROM question_tags",
        "DELETE FROM project_tags",
    ]


def test_postgres_template_fields_decode_from_json_text():
    now = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)
    row = ("tpl_1", "u_1", "Doors", None, '[{"label": "Width", "field_type": "NUMBER"}]', now, now)
    template = PostgresFormTemplatesRepository(tx_runner=FakeRunner(rows=[row])).get(template_id="tpl_1")
    assert template is not None
    assert template["fields"] == [{"label": "Width", "field_type": "NUMBER"}]


def test_inmemory_tag_usage_follows_question_links():
    repo = InMemoryTagsRepository({}, {})
    now = datetime.now(UTC)
    repo.insert(tag={"tag_id": "tag_b", "project_id": "p_1", "name": "beta", "created_at": now})
    repo.insert(tag={"tag_id": "tag_a", "project_id": "p_1", "name": "alpha", "created_at": now})
    repo.replace_for_question(question_id="q_1", tag_ids=["tag_b", "tag_a"])
    repo.replace_for_question(question_id="q_2", tag_ids=["tag_a"])
    assert [x["name"] for x in repo.list_for_question(question_id="q_1")] == ["alpha", "beta"]
    assert repo.count_usage(tag_id="tag_a") == 2

    repo.replace_for_question(question_id="q_1", tag_ids=[])
    assert repo.count_usage(tag_id="tag_b") == 0
    assert repo.get_by_name(project_id="p_1", name="alpha")["tag_id"] == "tag_a"
    assert repo.get_by_name(project_id="p_2", name="alpha") is None

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from qaflow.db.memory import InMemoryTxRunner, SerializedRepository
from qaflow.db.postgres import PostgresTxRunner, _import_psycopg
from qaflow.db.schema import TABLE_NAMES
from qaflow.repositories import (
    InMemoryAnswersRepository,
    InMemoryFormTemplatesRepository,
    InMemoryMediaFilesRepository,
    InMemoryNotificationsRepository,
    InMemoryProjectsRepository,
    InMemoryQuestionsRepository,
    InMemoryTagsRepository,
    InMemoryUsersRepository,
    PostgresAnswersRepository,
    PostgresFormTemplatesRepository,
    PostgresMediaFilesRepository,
    PostgresNotificationsRepository,
    PostgresProjectsRepository,
    PostgresQuestionsRepository,
    PostgresTagsRepository,
    PostgresUsersRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkflowStore:
    """In-process store; every table is a dict keyed by primary id."""

    backend = "memory"

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.projects: dict[str, dict[str, Any]] = {}
        self.project_members: dict[str, dict[str, Any]] = {}
        self.project_tags: dict[str, dict[str, Any]] = {}
        self.questions: dict[str, dict[str, Any]] = {}
        self.question_tags: dict[str, dict[str, Any]] = {}
        self.answer_forms: dict[str, dict[str, Any]] = {}
        self.form_fields: dict[str, dict[str, Any]] = {}
        self.answer_form_templates: dict[str, dict[str, Any]] = {}
        self.answers: dict[str, dict[str, Any]] = {}
        self.media_files: dict[str, dict[str, Any]] = {}
        self.answer_media_files: dict[str, dict[str, Any]] = {}
        self.answer_form_responses: dict[str, dict[str, Any]] = {}
        self.notifications: dict[str, dict[str, Any]] = {}
        self.tx_runner: Any = self._create_tx_runner()
        self._bind_repositories()

    def _create_tx_runner(self) -> Any:
        return InMemoryTxRunner(self._tables())

    def _tables(self) -> dict[str, dict[str, Any]]:
        return {name: getattr(self, name) for name in TABLE_NAMES}

    def _bind_repositories(self) -> None:
        lock = self.tx_runner.lock

        def _serialized(repository: Any) -> Any:
            return SerializedRepository(repository, lock)

        self.users_repository: Any = _serialized(InMemoryUsersRepository(self.users))
        self.projects_repository: Any = _serialized(InMemoryProjectsRepository(self.projects, self.project_members))
        self.tags_repository: Any = _serialized(InMemoryTagsRepository(self.project_tags, self.question_tags))
        self.questions_repository: Any = _serialized(
            InMemoryQuestionsRepository(self.questions, self.answer_forms, self.form_fields)
        )
        self.form_templates_repository: Any = _serialized(InMemoryFormTemplatesRepository(self.answer_form_templates))
        self.answers_repository: Any = _serialized(
            InMemoryAnswersRepository(self.answers, self.answer_media_files, self.answer_form_responses)
        )
        self.media_files_repository: Any = _serialized(InMemoryMediaFilesRepository(self.media_files))
        self.notifications_repository: Any = _serialized(InMemoryNotificationsRepository(self.notifications))

    def run_in_transaction(self, fn: Callable[[], T]) -> T:
        return self.tx_runner.run_in_tx(fn=lambda _conn: fn())

    def reset(self) -> None:
        with self.tx_runner.lock:
            for table in self._tables().values():
                table.clear()


class PostgresBackedStore(WorkflowStore):
    """Store backend that keeps every table in PostgreSQL."""

    backend = "postgres"

    def __init__(self, *, dsn: str) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must be provided for postgres store backend")
        self._dsn = dsn.strip()
        super().__init__()

    def _create_tx_runner(self) -> Any:
        return PostgresTxRunner(self._dsn)

    def _bind_repositories(self) -> None:
        tx_runner = self.tx_runner
        self.users_repository = PostgresUsersRepository(tx_runner=tx_runner)
        self.projects_repository = PostgresProjectsRepository(tx_runner=tx_runner)
        self.tags_repository = PostgresTagsRepository(tx_runner=tx_runner)
        self.questions_repository = PostgresQuestionsRepository(tx_runner=tx_runner)
        self.form_templates_repository = PostgresFormTemplatesRepository(tx_runner=tx_runner)
        self.answers_repository = PostgresAnswersRepository(tx_runner=tx_runner)
        self.media_files_repository = PostgresMediaFilesRepository(tx_runner=tx_runner)
        self.notifications_repository = PostgresNotificationsRepository(tx_runner=tx_runner)

    def reset(self) -> None:
        psycopg = _import_psycopg()
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"TRUNCATE TABLE {', '.join(TABLE_NAMES)} CASCADE")
            conn.commit()
        logger.info("store_reset backend=%s tables=%s", self.backend, len(TABLE_NAMES))


def create_store_from_env(environ: Mapping[str, str] | None = None) -> WorkflowStore:
    env = os.environ if environ is None else environ
    backend = env.get("QAFLOW_STORE_BACKEND", "memory").strip().lower()
    if backend == "postgres":
        dsn = env.get("POSTGRES_DSN", "").strip()
        if not dsn:
            raise ValueError("POSTGRES_DSN must be set when QAFLOW_STORE_BACKEND=postgres")
        return PostgresBackedStore(dsn=dsn)
    if backend != "memory":
        raise ValueError(f"unsupported QAFLOW_STORE_BACKEND: {backend}")
    return WorkflowStore()


store = create_store_from_env()

from __future__ import annotations

from qaflow.db.postgres import _import_psycopg

# Ordered so that referenced tables exist before their dependents.
TABLE_DDL: tuple[tuple[str, str], ...] = (
    (
        "users",
        """
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            name TEXT NOT NULL DEFAULT '',
            email TEXT NOT NULL DEFAULT ''
        )
        """,
    ),
    (
        "projects",
        """
        CREATE TABLE IF NOT EXISTS projects (
            project_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT,
            creator_id TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        )
        """,
    ),
    (
        "project_members",
        """
        CREATE TABLE IF NOT EXISTS project_members (
            project_id TEXT NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            role TEXT NOT NULL CHECK (role IN ('MANAGER', 'MEMBER')),
            created_at TIMESTAMPTZ NOT NULL,
            PRIMARY KEY (project_id, user_id)
        )
        """,
    ),
    (
        "project_tags",
        """
        CREATE TABLE IF NOT EXISTS project_tags (
            tag_id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            UNIQUE (project_id, name)
        )
        """,
    ),
    (
        "questions",
        """
        CREATE TABLE IF NOT EXISTS questions (
            question_id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
            creator_id TEXT NOT NULL,
            assignee_id TEXT NOT NULL,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('NEW', 'IN_PROGRESS', 'PENDING_APPROVAL', 'CLOSED')),
            priority TEXT NOT NULL CHECK (priority IN ('HIGHEST', 'HIGH', 'MEDIUM', 'LOW')),
            deadline TIMESTAMPTZ,
            is_deadline_notified BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        )
        """,
    ),
    (
        "question_tags",
        """
        CREATE TABLE IF NOT EXISTS question_tags (
            question_id TEXT NOT NULL REFERENCES questions(question_id) ON DELETE CASCADE,
            tag_id TEXT NOT NULL REFERENCES project_tags(tag_id) ON DELETE CASCADE,
            PRIMARY KEY (question_id, tag_id)
        )
        """,
    ),
    (
        "answer_forms",
        """
        CREATE TABLE IF NOT EXISTS answer_forms (
            answer_form_id TEXT PRIMARY KEY,
            question_id TEXT NOT NULL UNIQUE REFERENCES questions(question_id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        )
        """,
    ),
    (
        "form_fields",
        """
        CREATE TABLE IF NOT EXISTS form_fields (
            form_field_id TEXT PRIMARY KEY,
            answer_form_id TEXT NOT NULL REFERENCES answer_forms(answer_form_id) ON DELETE CASCADE,
            label TEXT NOT NULL,
            field_type TEXT NOT NULL CHECK (field_type IN ('TEXT', 'NUMBER', 'RADIO', 'FILE', 'TEXTAREA')),
            options JSONB NOT NULL DEFAULT '[]'::jsonb,
            is_required BOOLEAN NOT NULL DEFAULT FALSE,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
        """,
    ),
    (
        "answer_form_templates",
        """
        CREATE TABLE IF NOT EXISTS answer_form_templates (
            template_id TEXT PRIMARY KEY,
            creator_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            fields JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        )
        """,
    ),
    (
        "answers",
        """
        CREATE TABLE IF NOT EXISTS answers (
            answer_id TEXT PRIMARY KEY,
            question_id TEXT NOT NULL REFERENCES questions(question_id) ON DELETE CASCADE,
            creator_id TEXT NOT NULL,
            content TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        )
        """,
    ),
    (
        "media_files",
        """
        CREATE TABLE IF NOT EXISTS media_files (
            media_file_id TEXT PRIMARY KEY,
            uploader_id TEXT NOT NULL,
            file_name TEXT NOT NULL,
            file_type TEXT NOT NULL,
            file_size BIGINT NOT NULL DEFAULT 0,
            storage_url TEXT NOT NULL DEFAULT '',
            created_at TIMESTAMPTZ NOT NULL
        )
        """,
    ),
    (
        "answer_media_files",
        """
        CREATE TABLE IF NOT EXISTS answer_media_files (
            answer_id TEXT NOT NULL REFERENCES answers(answer_id) ON DELETE CASCADE,
            media_file_id TEXT NOT NULL REFERENCES media_files(media_file_id),
            position INTEGER NOT NULL,
            PRIMARY KEY (answer_id, media_file_id)
        )
        """,
    ),
    (
        "answer_form_responses",
        """
        CREATE TABLE IF NOT EXISTS answer_form_responses (
            form_response_id TEXT PRIMARY KEY,
            answer_id TEXT NOT NULL REFERENCES answers(answer_id) ON DELETE CASCADE,
            form_field_id TEXT NOT NULL REFERENCES form_fields(form_field_id),
            value TEXT,
            media_file_id TEXT REFERENCES media_files(media_file_id),
            position INTEGER NOT NULL
        )
        """,
    ),
    (
        "notifications",
        """
        CREATE TABLE IF NOT EXISTS notifications (
            notification_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL,
            related_id TEXT,
            message TEXT NOT NULL,
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL
        )
        """,
    ),
)

INDEX_DDL: tuple[str, ...] = (
    "CREATE INDEX IF NOT EXISTS idx_questions_project ON questions(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_questions_overdue ON questions(deadline) WHERE is_deadline_notified = FALSE",
    "CREATE INDEX IF NOT EXISTS idx_answers_question ON answers(question_id)",
    "CREATE INDEX IF NOT EXISTS idx_question_tags_tag ON question_tags(tag_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_inbox ON notifications(user_id, created_at DESC, notification_id DESC)",
)

TABLE_NAMES: tuple[str, ...] = tuple(name for name, _ in TABLE_DDL)


def apply_schema(dsn: str) -> list[str]:
    """Create every table and index if missing; returns the table names in creation order."""
    if not dsn.strip():
        raise ValueError("POSTGRES_DSN must not be empty")
    psycopg = _import_psycopg()
    with psycopg.connect(dsn.strip()) as conn:
        with conn.cursor() as cur:
            for _, ddl in TABLE_DDL:
                cur.execute(ddl)
            for ddl in INDEX_DDL:
                cur.execute(ddl)
        conn.commit()
    return list(TABLE_NAMES)

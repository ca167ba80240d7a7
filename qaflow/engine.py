from __future__ import annotations

from typing import Any

from qaflow.access import AccessResolver
from qaflow.answers import AnswerService
from qaflow.deadline_sweep import DeadlineSweep
from qaflow.form_templates import FormTemplateService
from qaflow.notifications import NotificationDispatcher, NotificationInbox
from qaflow.projects import ProjectService
from qaflow.questions import QuestionService
from qaflow.tags import TagService
from qaflow.store import store as default_store


class WorkflowEngine:
    """Wires the resolver, the dispatcher and the services over one store."""

    def __init__(self, store: Any) -> None:
        self.store = store
        self.access = AccessResolver(store)
        self.dispatcher = NotificationDispatcher(store)
        self.inbox = NotificationInbox(store)
        self.projects = ProjectService(store, self.access)
        self.tags = TagService(store, self.access)
        self.form_templates = FormTemplateService(store)
        self.questions = QuestionService(store, self.access, self.dispatcher)
        self.answers = AnswerService(store, self.access, self.dispatcher)
        self.deadline_sweep = DeadlineSweep(store, self.dispatcher)


engine = WorkflowEngine(default_store)

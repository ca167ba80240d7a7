from qaflow.repositories.answers import InMemoryAnswersRepository, PostgresAnswersRepository
from qaflow.repositories.form_templates import InMemoryFormTemplatesRepository, PostgresFormTemplatesRepository
from qaflow.repositories.media_files import InMemoryMediaFilesRepository, PostgresMediaFilesRepository
from qaflow.repositories.notifications import InMemoryNotificationsRepository, PostgresNotificationsRepository
from qaflow.repositories.projects import InMemoryProjectsRepository, PostgresProjectsRepository
from qaflow.repositories.questions import InMemoryQuestionsRepository, PostgresQuestionsRepository
from qaflow.repositories.tags import InMemoryTagsRepository, PostgresTagsRepository
from qaflow.repositories.users import InMemoryUsersRepository, PostgresUsersRepository

__all__ = [
    "InMemoryAnswersRepository",
    "PostgresAnswersRepository",
    "InMemoryFormTemplatesRepository",
    "PostgresFormTemplatesRepository",
    "InMemoryMediaFilesRepository",
    "PostgresMediaFilesRepository",
    "InMemoryNotificationsRepository",
    "PostgresNotificationsRepository",
    "InMemoryProjectsRepository",
    "PostgresProjectsRepository",
    "InMemoryQuestionsRepository",
    "PostgresQuestionsRepository",
    "InMemoryTagsRepository",
    "PostgresTagsRepository",
    "InMemoryUsersRepository",
    "PostgresUsersRepository",
]

from __future__ import annotations

import pytest

from qaflow.answers import validate_answer_payload
from qaflow.engine import engine
from qaflow.outcome import ErrorKind, WorkflowError
from qaflow.store import store

_FORM = {
    "answer_form_id": "form_1",
    "fields": [
        {"form_field_id": "f_count", "label": "Count", "field_type": "NUMBER", "is_required": True, "options": []},
        {"form_field_id": "f_kind", "label": "Kind", "field_type": "RADIO", "is_required": False, "options": ["a", "b"]},
        {"form_field_id": "f_photo", "label": "Photo", "field_type": "FILE", "is_required": True, "options": []},
    ],
}


def _kind(**kwargs) -> ErrorKind:
    with pytest.raises(WorkflowError) as exc:
        validate_answer_payload(**kwargs)
    return exc.value.err.kind


def test_payload_without_form_needs_content():
    assert validate_answer_payload(form=None, content="ok", form_responses=[]) == []
    assert _kind(form=None, content="   ", form_responses=[]) == ErrorKind.INVALID
    assert _kind(form=None, content="ok", form_responses=[{"form_field_id": "x", "value": "1"}]) == (
        ErrorKind.BAD_REQUEST
    )


def test_payload_with_form_checks_every_field():
    complete = [
        {"form_field_id": "f_count", "value": "12"},
        {"form_field_id": "f_photo", "media_file_id": "media_1"},
    ]
    normalized = validate_answer_payload(form=_FORM, content="", form_responses=complete)
    assert [r["form_field_id"] for r in normalized] == ["f_count", "f_photo"]

    assert _kind(form=_FORM, content="", form_responses=complete[:1]) == ErrorKind.INVALID
    assert _kind(form=_FORM, content="", form_responses=complete + [{"form_field_id": "f_other"}]) == (
        ErrorKind.BAD_REQUEST
    )
    assert _kind(form=_FORM, content="", form_responses=complete + [complete[0]]) == ErrorKind.BAD_REQUEST
    assert _kind(
        form=_FORM,
        content="",
        form_responses=[{"form_field_id": "f_count", "value": "twelve"}, complete[1]],
    ) == ErrorKind.INVALID
    assert _kind(
        form=_FORM,
        content="",
        form_responses=complete + [{"form_field_id": "f_kind", "value": "c"}],
    ) == ErrorKind.INVALID
    assert _kind(
        form=_FORM,
        content="",
        form_responses=[complete[0], {"form_field_id": "f_photo", "value": "no file"}],
    ) == ErrorKind.INVALID


def _question(team, **overrides) -> str:
    params = {
        "project_id": team.project_id,
        "principal": team.manager,
        "title": "Pipe diameter",
        "content": "Measure the main pipe.",
        "assignee_id": team.assignee.user_id,
    }
    params.update(overrides)
    return engine.questions.create_question(**params).value["question_id"]


def _upload(principal, name: str = "photo.jpg") -> str:
    return engine.projects.register_media_file(
        principal=principal,
        file_name=name,
        file_type="image/jpeg",
        file_size=10,
        storage_url=f"s3://bucket/{name}",
    ).value["media_file_id"]


def _answer(team, qid: str, **overrides):
    params = {
        "project_id": team.project_id,
        "question_id": qid,
        "principal": team.assignee,
        "content": "About 110 mm.",
    }
    params.update(overrides)
    return engine.answers.create_answer(**params)


def test_first_answer_moves_question_in_progress_and_notifies_creator(team):
    qid = _question(team)
    media_id = _upload(team.assignee)
    outcome = _answer(team, qid, media_file_ids=[media_id, media_id])
    assert outcome.ok
    answer = outcome.value
    assert answer["creator"]["name"] == "Bob"
    assert [m["media_file_id"] for m in answer["media_files"]] == [media_id]
    assert store.questions[qid]["status"] == "IN_PROGRESS"

    inbox = store.notifications_repository.list_for_user(user_id="user_alice", unread_only=False, limit=10)
    assert [(n["type"], n["related_id"]) for n in inbox] == [("NEW_ANSWER_POSTED", qid)]

    second = _answer(team, qid, content="Rechecked: 110 mm.")
    assert second.ok
    assert store.questions[qid]["status"] == "IN_PROGRESS"


def test_only_assignee_may_answer(team):
    qid = _question(team)
    for principal in (team.manager, team.member):
        assert _answer(team, qid, principal=principal).kind == ErrorKind.FORBIDDEN
    assert _answer(team, qid, principal=team.outsider).kind == ErrorKind.FORBIDDEN
    assert store.answers == {}


def test_media_must_be_uploaded_by_the_caller(team):
    qid = _question(team)
    foreign = _upload(team.manager)
    outcome = _answer(team, qid, media_file_ids=[foreign])
    missing = _answer(team, qid, media_file_ids=["media_missing"])
    assert outcome.kind == ErrorKind.BAD_REQUEST
    assert missing.kind == ErrorKind.BAD_REQUEST
    assert store.answers == {}
    assert store.questions[qid]["status"] == "NEW"


def test_deleting_an_answer_keeps_its_media_files(team):
    qid = _question(team)
    media_id = _upload(team.assignee)
    answer = _answer(team, qid, media_file_ids=[media_id]).value
    deleted = engine.answers.delete_answer(
        project_id=team.project_id,
        question_id=qid,
        answer_id=answer["answer_id"],
        principal=team.assignee,
    )
    assert deleted.ok
    assert store.answer_media_files == {}
    assert store.media_files[media_id]["uploader_id"] == team.assignee.user_id

    reused = _answer(team, qid, media_file_ids=[media_id])
    assert [m["media_file_id"] for m in reused.value["media_files"]] == [media_id]


def _creator_answer_notices(team) -> int:
    rows = store.notifications_repository.list_for_user(user_id=team.manager.user_id, unread_only=False, limit=100)
    return sum(1 for n in rows if n["type"] == "NEW_ANSWER_POSTED")


def test_closed_question_rejects_answers_without_writing_rows(team):
    qid = _question(
        team,
        answer_form=[
            {"label": "Diameter", "field_type": "NUMBER", "is_required": True},
            {"label": "Photo", "field_type": "FILE"},
        ],
    )
    fields = store.questions_repository.get_form(question_id=qid)["fields"]

    def _responses(photo: str) -> list[dict]:
        return [
            {"form_field_id": fields[0]["form_field_id"], "value": "110"},
            {"form_field_id": fields[1]["form_field_id"], "media_file_id": photo},
        ]

    first_photo = _upload(team.assignee, "first.jpg")
    assert _answer(team, qid, content="", media_file_ids=[first_photo], form_responses=_responses(first_photo)).ok
    closed = engine.questions.set_status(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        target="CLOSED",
    )
    assert closed.ok

    answers = dict(store.answers)
    media_links = dict(store.answer_media_files)
    responses = dict(store.answer_form_responses)
    notices = _creator_answer_notices(team)

    late_photo = _upload(team.assignee, "late.jpg")
    outcome = _answer(team, qid, content="", media_file_ids=[late_photo], form_responses=_responses(late_photo))
    assert outcome.kind == ErrorKind.INVALID
    assert _answer(team, qid).kind == ErrorKind.INVALID

    assert store.answers == answers
    assert store.answer_media_files == media_links
    assert store.answer_form_responses == responses
    assert _creator_answer_notices(team) == notices
    assert store.questions[qid]["status"] == "CLOSED"


def test_form_answer_stores_responses(team):
    qid = _question(
        team,
        answer_form=[
            {"label": "Diameter", "field_type": "NUMBER", "is_required": True},
            {"label": "Photo", "field_type": "FILE"},
        ],
    )
    fields = store.questions_repository.get_form(question_id=qid)["fields"]
    photo = _upload(team.assignee)
    outcome = _answer(
        team,
        qid,
        content="",
        form_responses=[
            {"form_field_id": fields[0]["form_field_id"], "value": "110"},
            {"form_field_id": fields[1]["form_field_id"], "media_file_id": photo},
        ],
    )
    assert outcome.ok
    responses = outcome.value["form_responses"]
    assert [r["value"] for r in responses] == ["110", None]
    assert responses[1]["media_file_id"] == photo

    missing_required = _answer(team, qid, content="text only")
    assert missing_required.kind == ErrorKind.INVALID


def test_failed_notification_rolls_back_the_whole_answer(team, monkeypatch):
    qid = _question(team)
    media_id = _upload(team.assignee)

    def _boom(**kwargs):
        raise RuntimeError("notification table unavailable")

    monkeypatch.setattr(engine.answers._dispatcher, "notify", _boom)
    outcome = _answer(team, qid, media_file_ids=[media_id])
    assert outcome.kind == ErrorKind.INTERNAL
    assert store.answers == {}
    assert store.answer_media_files == {}
    assert store.questions[qid]["status"] == "NEW"


def test_update_answer_keeps_attachments_when_not_given(team):
    qid = _question(team)
    media_id = _upload(team.assignee)
    answer = _answer(team, qid, media_file_ids=[media_id]).value

    updated = engine.answers.update_answer(
        project_id=team.project_id,
        question_id=qid,
        answer_id=answer["answer_id"],
        principal=team.assignee,
        content="Corrected: 125 mm.",
    )
    assert updated.value["content"] == "Corrected: 125 mm."
    assert [m["media_file_id"] for m in updated.value["media_files"]] == [media_id]

    cleared = engine.answers.update_answer(
        project_id=team.project_id,
        question_id=qid,
        answer_id=answer["answer_id"],
        principal=team.assignee,
        media_file_ids=[],
    )
    assert cleared.value["media_files"] == []
    assert cleared.value["content"] == "Corrected: 125 mm."


def test_update_answer_permissions(team):
    qid = _question(team)
    answer = _answer(team, qid).value
    kwargs = {"project_id": team.project_id, "question_id": qid, "answer_id": answer["answer_id"]}

    by_member = engine.answers.update_answer(principal=team.member, content="hijack", **kwargs)
    by_manager = engine.answers.update_answer(principal=team.manager, content="tidied", **kwargs)
    blank = engine.answers.update_answer(principal=team.assignee, content=" ", **kwargs)
    assert by_member.kind == ErrorKind.FORBIDDEN
    assert by_manager.ok
    assert blank.kind == ErrorKind.INVALID
    assert store.answers[answer["answer_id"]]["content"] == "tidied"


def test_deleting_last_answer_reverts_question_to_new(team):
    qid = _question(team)
    first = _answer(team, qid).value
    second = _answer(team, qid, content="another").value
    kwargs = {"project_id": team.project_id, "question_id": qid, "principal": team.assignee}

    one_left = engine.answers.delete_answer(answer_id=first["answer_id"], **kwargs)
    assert one_left.value == {
        "answer_id": first["answer_id"],
        "remaining_answers": 1,
        "question_status": "IN_PROGRESS",
    }
    none_left = engine.answers.delete_answer(answer_id=second["answer_id"], **kwargs)
    assert none_left.value["remaining_answers"] == 0
    assert none_left.value["question_status"] == "NEW"
    assert store.questions[qid]["status"] == "NEW"


def test_deleting_answer_under_pending_approval_keeps_status(team):
    qid = _question(team)
    answer = _answer(team, qid).value
    engine.questions.set_status(
        project_id=team.project_id,
        question_id=qid,
        principal=team.assignee,
        target="PENDING_APPROVAL",
    )
    outcome = engine.answers.delete_answer(
        project_id=team.project_id,
        question_id=qid,
        answer_id=answer["answer_id"],
        principal=team.manager,
    )
    assert outcome.value["question_status"] == "PENDING_APPROVAL"


def test_delete_answer_on_closed_question_is_invalid(team):
    qid = _question(team)
    answer = _answer(team, qid).value
    engine.questions.set_status(project_id=team.project_id, question_id=qid, principal=team.manager, target="CLOSED")
    outcome = engine.answers.delete_answer(
        project_id=team.project_id,
        question_id=qid,
        answer_id=answer["answer_id"],
        principal=team.assignee,
    )
    assert outcome.kind == ErrorKind.INVALID
    assert answer["answer_id"] in store.answers


def test_get_and_list_answers(team):
    qid = _question(team)
    first = _answer(team, qid).value
    _answer(team, qid, content="second")
    listed = engine.answers.list_answers(project_id=team.project_id, question_id=qid, principal=team.manager)
    fetched = engine.answers.get_answer(
        project_id=team.project_id,
        question_id=qid,
        answer_id=first["answer_id"],
        principal=team.manager,
    )
    missing = engine.answers.get_answer(
        project_id=team.project_id,
        question_id=qid,
        answer_id="ans_missing",
        principal=team.manager,
    )
    assert [a["content"] for a in listed.value] == ["About 110 mm.", "second"]
    assert fetched.value["answer_id"] == first["answer_id"]
    assert missing.kind == ErrorKind.NOT_FOUND

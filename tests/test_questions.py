from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from qaflow.engine import engine
from qaflow.outcome import ErrorKind
from qaflow.store import store


def _ask(team, **overrides):
    params = {
        "project_id": team.project_id,
        "principal": team.manager,
        "title": "Is the north wall load-bearing?",
        "content": "Please check on site before Friday.",
        "assignee_id": team.assignee.user_id,
    }
    params.update(overrides)
    outcome = engine.questions.create_question(**params)
    assert outcome.ok, outcome
    return outcome.value


def _notifications(user_id: str) -> list[dict]:
    return store.notifications_repository.list_for_user(user_id=user_id, unread_only=False, limit=100)


def test_create_question_starts_new_and_notifies_assignee(team):
    question = _ask(team, priority="high")
    assert question["status"] == "NEW"
    assert question["priority"] == "HIGH"
    assert question["is_deadline_notified"] is False
    assert question["assignee"]["name"] == "Bob"
    assert question["answer_count"] == 0

    inbox = _notifications("user_bob")
    assert [n["type"] for n in inbox] == ["NEW_QUESTION_ASSIGNED"]
    assert inbox[0]["related_id"] == question["question_id"]
    assert question["title"] in inbox[0]["message"]


def test_create_question_requires_member_assignee(team):
    outcome = engine.questions.create_question(
        project_id=team.project_id,
        principal=team.manager,
        title="t",
        content="c",
        assignee_id=team.outsider.user_id,
    )
    assert outcome.kind == ErrorKind.INVALID
    assert store.questions == {}
    assert _notifications(team.outsider.user_id) == []


def test_create_question_rejects_outsider_and_bad_priority(team):
    outsider = engine.questions.create_question(
        project_id=team.project_id,
        principal=team.outsider,
        title="t",
        content="c",
        assignee_id=team.assignee.user_id,
    )
    bad_priority = engine.questions.create_question(
        project_id=team.project_id,
        principal=team.manager,
        title="t",
        content="c",
        assignee_id=team.assignee.user_id,
        priority="URGENT",
    )
    assert outsider.kind == ErrorKind.FORBIDDEN
    assert bad_priority.kind == ErrorKind.INVALID


def test_create_question_with_answer_form(team):
    question = _ask(
        team,
        answer_form=[
            {"label": "Thickness (cm)", "field_type": "NUMBER", "is_required": True},
            {"label": "Material", "field_type": "RADIO", "options": ["brick", "concrete"]},
        ],
    )
    form = question["answer_form"]
    assert [f["label"] for f in form["fields"]] == ["Thickness (cm)", "Material"]
    assert form["fields"][1]["options"] == ["brick", "concrete"]


def test_create_question_rejects_radio_without_options(team):
    outcome = engine.questions.create_question(
        project_id=team.project_id,
        principal=team.manager,
        title="t",
        content="c",
        assignee_id=team.assignee.user_id,
        answer_form=[{"label": "Pick", "field_type": "RADIO", "options": []}],
    )
    assert outcome.kind == ErrorKind.INVALID
    assert store.questions == {}


def test_get_question_visible_to_creator_assignee_and_managers_only(team):
    question = _ask(team)
    qid = question["question_id"]
    for principal in (team.manager, team.assignee, team.admin):
        assert engine.questions.get_question(project_id=team.project_id, question_id=qid, principal=principal).ok
    hidden = engine.questions.get_question(project_id=team.project_id, question_id=qid, principal=team.member)
    assert hidden.kind == ErrorKind.FORBIDDEN


def test_question_from_another_project_is_a_bad_request(team):
    question = _ask(team)
    other = engine.projects.create_project(principal=team.manager, name="Other site").value
    outcome = engine.questions.get_question(
        project_id=other["project_id"],
        question_id=question["question_id"],
        principal=team.manager,
    )
    missing = engine.questions.get_question(
        project_id=team.project_id,
        question_id="q_missing",
        principal=team.manager,
    )
    assert outcome.kind == ErrorKind.BAD_REQUEST
    assert missing.kind == ErrorKind.NOT_FOUND


def test_list_questions_orders_by_priority_then_recency(team):
    low = _ask(team, title="low", priority="LOW")
    top = _ask(team, title="top", priority="HIGHEST")
    mid_old = _ask(team, title="mid old", priority="MEDIUM")
    mid_new = _ask(team, title="mid new", priority="MEDIUM")

    outcome = engine.questions.list_questions(project_id=team.project_id, principal=team.manager)
    ids = [x["question_id"] for x in outcome.value]
    assert ids == [top["question_id"], mid_new["question_id"], mid_old["question_id"], low["question_id"]]


def test_list_questions_limits_plain_members_to_their_own(team):
    _ask(team)
    mine = _ask(team, principal=team.member, title="carol asks")

    carol = engine.questions.list_questions(project_id=team.project_id, principal=team.member)
    bob = engine.questions.list_questions(project_id=team.project_id, principal=team.assignee)
    assert [x["question_id"] for x in carol.value] == [mine["question_id"]]
    assert len(bob.value) == 2


def test_list_questions_filters(team):
    first = _ask(team, priority="LOW", deadline=datetime.now(UTC) - timedelta(hours=1))
    _ask(team, title="Window sizes", priority="HIGH")

    by_priority = engine.questions.list_questions(
        project_id=team.project_id,
        principal=team.manager,
        priority="low",
    )
    overdue = engine.questions.list_questions(project_id=team.project_id, principal=team.manager, overdue=True)
    by_status = engine.questions.list_questions(
        project_id=team.project_id,
        principal=team.manager,
        status="CLOSED",
    )
    by_search = engine.questions.list_questions(
        project_id=team.project_id,
        principal=team.manager,
        search="WINDOW",
    )
    assert [x["question_id"] for x in by_priority.value] == [first["question_id"]]
    assert [x["question_id"] for x in overdue.value] == [first["question_id"]]
    assert by_status.value == []
    assert [x["title"] for x in by_search.value] == ["Window sizes"]


def test_search_matches_answer_content(team):
    question = _ask(team)
    engine.answers.create_answer(
        project_id=team.project_id,
        question_id=question["question_id"],
        principal=team.assignee,
        content="Yes, reinforced concrete core.",
    )
    found = engine.questions.list_questions(
        project_id=team.project_id,
        principal=team.manager,
        search="reinforced",
    )
    assert [x["question_id"] for x in found.value] == [question["question_id"]]


def test_update_question_new_deadline_rearms_overdue_notice(team):
    question = _ask(team, deadline=datetime.now(UTC) - timedelta(days=1))
    qid = question["question_id"]
    store.questions[qid]["is_deadline_notified"] = True

    untouched = engine.questions.update_question(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        title="Renamed",
    )
    assert untouched.value["is_deadline_notified"] is True

    moved = engine.questions.update_question(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        deadline=datetime.now(UTC) + timedelta(days=2),
    )
    assert moved.ok
    assert moved.value["is_deadline_notified"] is False
    assert moved.value["title"] == "Renamed"


def test_resubmitting_the_same_deadline_keeps_the_overdue_notice(team):
    now = datetime.now(UTC)
    deadline = now - timedelta(hours=1)
    qid = _ask(team, deadline=deadline)["question_id"]
    assert engine.deadline_sweep.run(now=now).value["processed"] == 1

    resubmitted = engine.questions.update_question(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        title="T2",
        deadline=deadline.astimezone(timezone(timedelta(hours=9))),
    )
    assert resubmitted.value["is_deadline_notified"] is True
    assert engine.deadline_sweep.run(now=now).value["processed"] == 0
    overdue_notices = [n for n in _notifications("user_bob") if n["type"] == "ASSIGNEE_DEADLINE_EXCEEDED"]
    assert len(overdue_notices) == 1

def test_update_question_reassignment(team):
    question = _ask(team)
    qid = question["question_id"]
    bad = engine.questions.update_question(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        assignee_id=team.outsider.user_id,
    )
    assert bad.kind == ErrorKind.INVALID

    moved = engine.questions.update_question(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        assignee_id=team.member.user_id,
    )
    assert moved.value["assignee_id"] == team.member.user_id
    assert [n["type"] for n in _notifications(team.member.user_id)] == ["NEW_QUESTION_ASSIGNED"]


def test_update_question_requires_creator_or_manager(team):
    question = _ask(team)
    outcome = engine.questions.update_question(
        project_id=team.project_id,
        question_id=question["question_id"],
        principal=team.assignee,
        title="assignee edit",
    )
    assert outcome.kind == ErrorKind.FORBIDDEN


def test_answer_form_can_be_replaced_until_answered(team):
    question = _ask(team)
    qid = question["question_id"]
    missing = engine.questions.get_answer_form(project_id=team.project_id, question_id=qid, principal=team.manager)
    assert missing.kind == ErrorKind.NOT_FOUND

    saved = engine.questions.put_answer_form(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        fields=[{"label": "Notes", "field_type": "TEXTAREA"}],
    )
    assert saved.ok
    replaced = engine.questions.put_answer_form(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        fields=[{"label": "Count", "field_type": "NUMBER", "is_required": True}],
    )
    assert [f["label"] for f in replaced.value["fields"]] == ["Count"]
    assert len(store.form_fields) == 1

    engine.answers.create_answer(
        project_id=team.project_id,
        question_id=qid,
        principal=team.assignee,
        form_responses=[{"form_field_id": replaced.value["fields"][0]["form_field_id"], "value": "3"}],
    )
    locked_put = engine.questions.put_answer_form(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
        fields=[{"label": "Other", "field_type": "TEXT"}],
    )
    locked_delete = engine.questions.delete_answer_form(
        project_id=team.project_id,
        question_id=qid,
        principal=team.manager,
    )
    assert locked_put.kind == ErrorKind.INVALID
    assert locked_delete.kind == ErrorKind.INVALID


def test_delete_answer_form(team):
    question = _ask(team, answer_form=[{"label": "Notes", "field_type": "TEXT"}])
    qid = question["question_id"]
    by_assignee = engine.questions.delete_answer_form(
        project_id=team.project_id,
        question_id=qid,
        principal=team.assignee,
    )
    assert by_assignee.kind == ErrorKind.FORBIDDEN

    deleted = engine.questions.delete_answer_form(project_id=team.project_id, question_id=qid, principal=team.manager)
    assert deleted.value == {"question_id": qid, "deleted": True}
    assert store.form_fields == {}
    again = engine.questions.delete_answer_form(project_id=team.project_id, question_id=qid, principal=team.manager)
    assert again.kind == ErrorKind.NOT_FOUND

import threading

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from app.dms.audit import verify_chain
from app.dms.constants import Role, StepStatus, WorkflowStatus
from app.dms.errors import (
    ConcurrentModification,
    InvalidTransition,
    PermissionDenied,
    RoleMismatch,
    TemplateMissing,
    WorkflowComplete,
)
from app.dms.models import AuditLogEntry
from app.dms.modules.document_control.service import create_document, get_document, update_document
from app.dms.modules.signatures.models import ElectronicSignature
from app.dms.modules.signatures.service import get_signature, list_signatures
from app.dms.modules.workflow_engine.service import (
    _flush_or_conflict,
    advance,
    archive,
    pending_tasks,
    reject,
    release_effective,
    run_transition,
)
from app.dms.modules.workflows.models import WorkflowTemplate
from app.dms.modules.workflows.service import create_workflow


def _two_step_template(s, actor_id, **extra):
    payload = {
        "name": "Author then QA",
        "steps": [
            {"label": "Author Review", "role": "Author", "slaHours": 24},
            {"label": "QA Approval", "role": "QA", "slaHours": 48},
        ],
    }
    payload.update(extra)
    return create_workflow(s, payload, actor_id)


def _new_document(s, users, doc_type_id, **overrides):
    payload = {
        "title": "Cleaning Procedure",
        "documentNumber": "SOP-001",
        "version": "1.0",
        "documentTypeId": doc_type_id,
        "category": "Manufacturing",
        "security": "Internal",
    }
    payload.update(overrides)
    return create_document(s, payload, users[Role.AUTHOR])


def _count(s, model) -> int:
    return s.scalar(select(func.count()).select_from(model))


def _in_progress(doc) -> list[int]:
    return [i for i, st in enumerate(doc.workflow_steps) if st.status == StepStatus.IN_PROGRESS.value]


@pytest.fixture()
def doc(s, users, doc_type_id):
    wf = _two_step_template(s, users[Role.ADMIN])
    d = _new_document(s, users, doc_type_id, workflowTemplateId=wf.id)
    s.commit()
    return d


def _author_advance(s, users, doc_id):
    return run_transition(s, doc_id, advance, users[Role.AUTHOR], Role.AUTHOR, "Draft complete", None, "Author statement")


def _qa_advance(s, users, doc_id):
    return run_transition(s, doc_id, advance, users[Role.QA], Role.QA, "Verified", "QA verified", "QA statement")


def test_new_document_starts_in_draft_with_first_step_in_progress(doc):
    assert doc.workflow_status == WorkflowStatus.DRAFT.value
    assert doc.current_step_index == 0
    assert [st.status for st in doc.workflow_steps] == ["In Progress", "Pending"]
    assert doc.workflow_steps[0].started_at is not None
    assert doc.workflow_steps[1].started_at is None


def test_two_step_workflow_reaches_approved(s, users, doc):
    d = _author_advance(s, users, doc.id)
    assert d.workflow_status == WorkflowStatus.IN_REVIEW.value
    assert d.current_step_index == 1
    assert [st.status for st in d.workflow_steps] == ["Completed", "In Progress"]
    assert d.workflow_steps[0].actor_user_id == users[Role.AUTHOR]
    assert d.workflow_steps[1].started_at is not None

    d = _qa_advance(s, users, doc.id)
    assert d.workflow_status == WorkflowStatus.APPROVED.value
    assert d.current_step_index == 2
    assert [st.status for st in d.workflow_steps] == ["Completed", "Completed"]
    assert _in_progress(d) == []

    sigs = list_signatures(s, document_id=d.id)
    assert len(sigs) == 2
    by_user = {sig.user_id: sig for sig in sigs}
    # Unset meaning falls back to the step definition's text.
    assert by_user[users[Role.AUTHOR]].meaning == "Author Review electronically approved"
    assert by_user[users[Role.QA]].meaning == "QA verified"
    assert by_user[users[Role.QA]].evidence == "QA statement"
    assert {st.signature_id for st in d.workflow_steps} == {sig.id for sig in sigs}

    actions = [e.action for e in s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence))]
    assert actions[-2:] == ["WORKFLOW_ADVANCED", "WORKFLOW_ADVANCED"]
    last = s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.desc())).first()
    assert last.summary == "Workflow completed and document approved"


def test_reject_resets_instance_and_keeps_signatures(s, users, doc):
    d = _author_advance(s, users, doc.id)
    first_started = d.workflow_steps[0].started_at
    author_sig_id = d.workflow_steps[0].signature_id

    d = run_transition(s, doc.id, reject, users[Role.QA], Role.QA, "insufficient evidence")

    assert d.workflow_status == WorkflowStatus.DRAFT.value
    assert d.current_step_index == 0
    assert [st.status for st in d.workflow_steps] == ["In Progress", "Pending"]
    assert d.workflow_steps[0].started_at >= first_started
    assert d.workflow_steps[1].started_at is None
    for st in d.workflow_steps:
        assert st.actor_user_id is None
        assert st.signature_id is None
        assert st.completed_at is None
    assert d.workflow_steps[1].notes == "insufficient evidence"

    # Minted signatures are never revoked by a rejection.
    assert get_signature(s, author_sig_id).user_id == users[Role.AUTHOR]
    assert _count(s, ElectronicSignature) == 1

    last = s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.desc())).first()
    assert last.action == "WORKFLOW_REJECTED"
    assert last.summary == "Workflow rejected at step QA Approval"
    assert last.metadata_dict["reason"] == "insufficient evidence"
    assert last.metadata_dict["stepIndex"] == 1
    assert last.metadata_dict["step"] == "QA Approval"


def test_round_trip_after_reject_mints_new_signatures(s, users, doc):
    d = _author_advance(s, users, doc.id)
    old_sig = d.workflow_steps[0].signature_id
    run_transition(s, doc.id, reject, users[Role.QA], Role.QA, "rework")

    d = _author_advance(s, users, doc.id)
    assert d.workflow_steps[0].signature_id != old_sig
    d = _qa_advance(s, users, doc.id)
    assert d.workflow_status == WorkflowStatus.APPROVED.value
    assert _count(s, ElectronicSignature) == 3


def test_wrong_role_is_refused_without_side_effects(s, users, doc):
    _author_advance(s, users, doc.id)
    sigs_before = _count(s, ElectronicSignature)
    audit_before = _count(s, AuditLogEntry)

    with pytest.raises(RoleMismatch) as exc:
        run_transition(s, doc.id, advance, users[Role.AUTHOR], Role.AUTHOR, "again", None, "evidence")
    assert exc.value.message == "This workflow step requires QA role."

    d = get_document(s, doc.id)
    assert d.current_step_index == 1
    assert [st.status for st in d.workflow_steps] == ["Completed", "In Progress"]
    assert _count(s, ElectronicSignature) == sigs_before
    assert _count(s, AuditLogEntry) == audit_before


def test_reject_requires_role_of_current_step(s, users, doc):
    with pytest.raises(RoleMismatch):
        run_transition(s, doc.id, reject, users[Role.QA], Role.QA, "not my step")
    assert get_document(s, doc.id).workflow_steps[0].status == StepStatus.IN_PROGRESS.value


def test_advance_after_completion_fails(s, users, doc):
    _author_advance(s, users, doc.id)
    _qa_advance(s, users, doc.id)

    with pytest.raises(WorkflowComplete):
        run_transition(s, doc.id, advance, users[Role.QA], Role.QA, "once more", None, "evidence")
    with pytest.raises(WorkflowComplete):
        run_transition(s, doc.id, reject, users[Role.QA], Role.QA, "too late")
    assert get_document(s, doc.id).current_step_index == 2


def test_missing_template_is_an_integrity_violation(s, users, doc):
    s.delete(s.get(WorkflowTemplate, doc.workflow_template_id))
    s.commit()

    with pytest.raises(TemplateMissing):
        run_transition(s, doc.id, advance, users[Role.AUTHOR], Role.AUTHOR, "r", None, "e")
    assert _count(s, ElectronicSignature) == 0


def test_step_without_signature_requirement_mints_nothing(s, users, doc_type_id):
    wf = create_workflow(
        s,
        {"name": "Ack only", "steps": [{"label": "Acknowledge", "role": "Author", "requiresSignature": False}]},
        users[Role.ADMIN],
    )
    d = _new_document(s, users, doc_type_id, workflowTemplateId=wf.id)
    s.commit()

    d = _author_advance(s, users, d.id)
    assert d.workflow_status == WorkflowStatus.APPROVED.value
    assert d.workflow_steps[0].signature_id is None
    assert _count(s, ElectronicSignature) == 0


def test_release_and_archive_are_gated(s, users, doc):
    with pytest.raises(InvalidTransition):
        run_transition(s, doc.id, release_effective, users[Role.QA], Role.QA)

    _author_advance(s, users, doc.id)
    _qa_advance(s, users, doc.id)

    with pytest.raises(PermissionDenied):
        run_transition(s, doc.id, release_effective, users[Role.AUTHOR], Role.AUTHOR)

    d = run_transition(s, doc.id, release_effective, users[Role.QA], Role.QA)
    assert d.workflow_status == WorkflowStatus.EFFECTIVE.value

    d = run_transition(s, doc.id, archive, users[Role.ADMIN], Role.ADMIN)
    assert d.workflow_status == WorkflowStatus.ARCHIVED.value

    with pytest.raises(InvalidTransition):
        run_transition(s, doc.id, archive, users[Role.ADMIN], Role.ADMIN)
    with pytest.raises(InvalidTransition):
        run_transition(s, doc.id, release_effective, users[Role.QA], Role.QA)

    actions = [e.action for e in s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence))]
    assert actions[-2:] == ["DOCUMENT_EFFECTIVE", "DOCUMENT_ARCHIVED"]


def test_pending_tasks_follow_current_step(s, users, doc):
    tasks = pending_tasks(s, Role.AUTHOR)
    assert [t["documentId"] for t in tasks] == [doc.id]
    assert tasks[0]["stepLabel"] == "Author Review"
    assert tasks[0]["slaHours"] == 24
    assert pending_tasks(s, Role.QA) == []

    _author_advance(s, users, doc.id)
    assert pending_tasks(s, Role.AUTHOR) == []
    assert [t["documentId"] for t in pending_tasks(s, Role.QA)] == [doc.id]


def test_stale_writer_gets_concurrent_modification(app, s, users, doc):
    other = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        stale = get_document(other, doc.id)  # row_version 1 held in other's identity map
        run_transition(s, doc.id, update_document, {"title": "Cleaning Procedure (rev)"}, users[Role.QA])

        stale.title = "Lost update"
        with pytest.raises(ConcurrentModification):
            _flush_or_conflict(other, doc.id)
        other.rollback()
    finally:
        other.close()

    s.expire_all()
    assert get_document(s, doc.id).title == "Cleaning Procedure (rev)"


def test_run_transition_retries_once_after_conflict(app, s, users, doc):
    other = app.extensions["sqlalchemy_sessionmaker"]()
    attempts: list[str] = []

    def counted_update(session, document_id, updates, actor_id):
        attempts.append(document_id)
        return update_document(session, document_id, updates, actor_id)

    try:
        get_document(other, doc.id)
        run_transition(s, doc.id, update_document, {"title": "Renamed"}, users[Role.QA])

        d = run_transition(other, doc.id, counted_update, {"tags": ["retried"]}, users[Role.AUTHOR])
        assert len(attempts) == 2
        assert d.title == "Renamed"
        assert d.tags == ["retried"]
    finally:
        other.close()


def test_run_transition_gives_up_after_second_conflict(s, users, doc):
    attempts: list[str] = []

    def always_stale(session, document_id):
        attempts.append(document_id)
        raise StaleDataError("row_version mismatch")

    with pytest.raises(ConcurrentModification):
        run_transition(s, doc.id, always_stale)
    assert len(attempts) == 2
    assert get_document(s, doc.id).current_step_index == 0


def test_parallel_advances_on_different_documents_both_apply(app, s, users, doc, doc_type_id):
    second = _new_document(s, users, doc_type_id, documentNumber="SOP-002", workflowTemplateId=doc.workflow_template_id)
    s.commit()

    sm = app.extensions["sqlalchemy_sessionmaker"]
    outcomes: list[str] = []
    start = threading.Barrier(2)

    def worker(document_id):
        session = sm()
        try:
            start.wait()
            run_transition(session, document_id, advance, users[Role.AUTHOR], Role.AUTHOR, "r", None, "e")
            outcomes.append("ok")
        except Exception as e:  # surfaced through the assertion below
            outcomes.append(type(e).__name__)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(d_id,)) for d_id in (doc.id, second.id)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes == ["ok", "ok"]
    check = sm()
    try:
        assert _count(check, ElectronicSignature) == 2
        assert verify_chain(check).ok
    finally:
        check.close()


def test_parallel_advances_on_one_document_apply_once(app, users, doc):
    sm = app.extensions["sqlalchemy_sessionmaker"]
    outcomes: list[str] = []

    def worker():
        session = sm()
        try:
            run_transition(session, doc.id, advance, users[Role.AUTHOR], Role.AUTHOR, "r", None, "e")
            outcomes.append("ok")
        except (RoleMismatch, ConcurrentModification) as e:
            outcomes.append(type(e).__name__)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    check = sm()
    try:
        assert _count(check, ElectronicSignature) == 1
        assert get_document(check, doc.id).current_step_index == 1
    finally:
        check.close()

from datetime import timedelta

import pytest
from sqlalchemy import select

from app.dms.constants import Role
from app.dms.errors import (
    AlreadyExists,
    DocumentNotFound,
    DocumentTypeNotFound,
    NoWorkflowAvailable,
    ValidationFailed,
)
from app.dms.models import AuditLogEntry
from app.dms.modules.document_control.service import (
    add_version,
    create_document,
    get_document,
    list_documents,
    update_document,
)
from app.dms.modules.workflows.service import create_workflow


def _payload(doc_type_id, **overrides):
    payload = {
        "title": "Batch Record Review",
        "documentNumber": "WI-100",
        "version": "1.0",
        "documentTypeId": doc_type_id,
        "category": "Quality Management",
        "security": "Confidential",
        "tags": ["batch", " review ", ""],
        "riskClassification": "High",
        "changeControlId": "CC-42",
        "effectiveFrom": "2026-11-01",
        "summary": "Initial issue",
    }
    payload.update(overrides)
    return payload


def _template(s, users, name, **extra):
    payload = {"name": name, "steps": [{"label": "Review", "role": "Reviewer"}]}
    payload.update(extra)
    return create_workflow(s, payload, users[Role.ADMIN])


def _last_event(s):
    return s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.desc())).first()


def test_create_document_populates_metadata_version_and_audit(s, users, doc_type_id):
    wf = _template(s, users, "Single review")
    d = create_document(s, _payload(doc_type_id, workflowTemplateId=wf.id), users[Role.AUTHOR])
    s.commit()

    assert d.current_version == "1.0"
    assert [v.version_label for v in d.version_history] == ["1.0"]
    assert d.version_history[0].summary == "Initial issue"
    assert d.created_by_id == users[Role.AUTHOR]
    assert d.tags == ["batch", "review"]
    assert d.risk_classification == "High"
    assert d.metadata_dict()["effectiveFrom"] == "2026-11-01"
    assert d.metadata_dict()["changeControlId"] == "CC-42"
    assert len(d.workflow_steps) == 1
    assert d.workflow_steps[0].step_id == wf.steps[0].id

    ev = _last_event(s)
    assert ev.action == "DOCUMENT_CREATED"
    assert ev.summary == "Created document Batch Record Review v1.0"
    assert ev.metadata_dict["stepCount"] == 1
    assert ev.metadata_dict["workflowTemplateId"] == wf.id


def test_template_resolution_falls_back_to_newest_template(s, users, doc_type_id):
    older = _template(s, users, "Older")
    older.created_at -= timedelta(days=1)
    newer = _template(s, users, "Newer")
    s.flush()

    d = create_document(s, _payload(doc_type_id), users[Role.AUTHOR])
    assert d.workflow_template_id == newer.id

    d2 = create_document(s, _payload(doc_type_id, documentNumber="WI-101", workflowTemplateId="missing"), users[Role.AUTHOR])
    assert d2.workflow_template_id == newer.id


def test_template_resolution_prefers_explicit_then_default(s, users, doc_type_id):
    _template(s, users, "First")
    default = _template(s, users, "Default", isDefault=True)
    explicit = _template(s, users, "Explicit")

    d = create_document(s, _payload(doc_type_id), users[Role.AUTHOR])
    assert d.workflow_template_id == default.id

    d2 = create_document(s, _payload(doc_type_id, documentNumber="WI-101", workflowTemplateId=explicit.id), users[Role.AUTHOR])
    assert d2.workflow_template_id == explicit.id


def test_create_without_any_template_fails(s, users, doc_type_id):
    with pytest.raises(NoWorkflowAvailable):
        create_document(s, _payload(doc_type_id), users[Role.AUTHOR])


def test_create_validates_required_fields_and_references(s, users, doc_type_id):
    _template(s, users, "Any")
    with pytest.raises(ValidationFailed):
        create_document(s, _payload(doc_type_id, title="  "), users[Role.AUTHOR])
    with pytest.raises(ValidationFailed):
        create_document(s, _payload(doc_type_id, security="Top Secret"), users[Role.AUTHOR])
    with pytest.raises(DocumentTypeNotFound):
        create_document(s, _payload("no-such-type"), users[Role.AUTHOR])


def test_duplicate_document_number_is_refused(s, users, doc_type_id):
    _template(s, users, "Any")
    create_document(s, _payload(doc_type_id), users[Role.AUTHOR])
    with pytest.raises(AlreadyExists):
        create_document(s, _payload(doc_type_id, title="Other"), users[Role.AUTHOR])


def test_add_version_keeps_current_version_in_sync(s, users, doc_type_id):
    _template(s, users, "Any")
    d = create_document(s, _payload(doc_type_id), users[Role.AUTHOR])
    s.commit()

    for label in ("1.1", "2.0"):
        d = add_version(s, d.id, label, f"Revision {label}", users[Role.AUTHOR])
        s.commit()
        assert d.current_version == d.version_history[0].version_label == label

    assert [v.version_label for v in d.version_history] == ["2.0", "1.1", "1.0"]
    assert d.version_history[0].superseded_at is None
    assert all(v.superseded_at is not None for v in d.version_history[1:])

    ev = _last_event(s)
    assert ev.action == "DOCUMENT_VERSIONED"
    assert ev.summary == "New version 2.0 created"

    with pytest.raises(ValidationFailed):
        add_version(s, d.id, "  ", "", users[Role.AUTHOR])


def test_update_document_merges_metadata_without_touching_workflow(s, users, doc_type_id):
    _template(s, users, "Any")
    d = create_document(s, _payload(doc_type_id), users[Role.AUTHOR])
    s.commit()

    d = update_document(
        s,
        d.id,
        {"metadata": {"changeControlId": "CC-99", "nextIssueDate": "2027-11-01"}, "tags": ["sop"]},
        users[Role.QA],
    )
    s.commit()

    meta = d.metadata_dict()
    assert meta["changeControlId"] == "CC-99"
    assert meta["nextIssueDate"] == "2027-11-01"
    assert meta["effectiveFrom"] == "2026-11-01"
    assert d.tags == ["sop"]
    assert d.workflow_status == "Draft"
    assert _last_event(s).summary == "Metadata updated for Batch Record Review"

    with pytest.raises(ValidationFailed):
        update_document(s, d.id, {"workflowStatus": "Approved"}, users[Role.QA])
    with pytest.raises(ValidationFailed):
        update_document(s, d.id, {"metadata": {"unknown": 1}}, users[Role.QA])


def test_lookup_and_search(s, users, doc_type_id):
    _template(s, users, "Any")
    create_document(s, _payload(doc_type_id), users[Role.AUTHOR])
    create_document(s, _payload(doc_type_id, title="Gowning", documentNumber="SOP-7"), users[Role.AUTHOR])
    s.commit()

    assert [d.document_number for d in list_documents(s, q="gown")] == ["SOP-7"]
    assert len(list_documents(s, status="Draft")) == 2
    with pytest.raises(DocumentNotFound):
        get_document(s, "nope")

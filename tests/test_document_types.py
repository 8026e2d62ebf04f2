import pytest
from sqlalchemy import select

from app.dms.constants import Role
from app.dms.errors import AlreadyExists, DocumentTypeNotFound, ValidationFailed
from app.dms.models import AuditLogEntry
from app.dms.modules.document_types.service import (
    create_document_type,
    get_document_type,
    list_document_types,
    update_document_type,
)


def test_create_is_audited_and_unique(s, users):
    dt = create_document_type(s, {"type": "Policy", "description": "Company policies"}, users[Role.ADMIN])
    s.commit()
    assert dt.label == "Policy"
    assert dt.to_dict()["type"] == "Policy"

    ev = s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.desc())).first()
    assert ev.action == "DOCUMENT_TYPE_CREATED"
    assert ev.summary == "Created document type Policy"

    with pytest.raises(AlreadyExists):
        create_document_type(s, {"type": "Policy"}, users[Role.ADMIN])


def test_label_must_come_from_the_closed_list(s, users):
    with pytest.raises(ValidationFailed):
        create_document_type(s, {"type": "Memo"}, users[Role.ADMIN])


def test_update_description_and_obsolete_only(s, users):
    dt = create_document_type(s, {"type": "Checklist", "description": "old"}, users[Role.ADMIN])
    s.commit()

    dt = update_document_type(s, dt.id, {"description": "new", "obsolete": True}, users[Role.QA])
    s.commit()
    assert dt.description == "new"
    assert dt.obsolete is True

    ev = s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.desc())).first()
    assert ev.action == "DOCUMENT_TYPE_UPDATED"
    assert ev.metadata_dict["changes"]["obsolete"] == {"old": False, "new": True}

    assert [t.label for t in list_document_types(s, include_obsolete=False)] == []
    assert [t.label for t in list_document_types(s)] == ["Checklist"]

    with pytest.raises(ValidationFailed):
        update_document_type(s, dt.id, {"type": "Manual"}, users[Role.QA])
    with pytest.raises(DocumentTypeNotFound):
        update_document_type(s, "missing", {"obsolete": False}, users[Role.QA])
    with pytest.raises(DocumentTypeNotFound):
        get_document_type(s, "missing")

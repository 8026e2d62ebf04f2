import pytest
from sqlalchemy import select

from app.dms.constants import Role
from app.dms.errors import ValidationFailed, WorkflowNotFound
from app.dms.models import AuditLogEntry
from app.dms.modules.workflows.models import WorkflowTemplate
from app.dms.modules.workflows.service import create_workflow, get_workflow, list_workflows, update_workflow


def _create(s, users, name, **extra):
    payload = {
        "name": name,
        "description": f"{name} flow",
        "steps": [
            {"label": "Draft Check", "role": "Author", "slaHours": 8},
            {"label": "Sign Off", "role": "Approver", "signatureMeaning": "Released"},
        ],
    }
    payload.update(extra)
    return create_workflow(s, payload, users[Role.ADMIN])


def _defaults(s) -> list[str]:
    return [w.name for w in s.scalars(select(WorkflowTemplate).where(WorkflowTemplate.is_default.is_(True)))]


def test_create_workflow_builds_ordered_steps(s, users):
    wf = _create(s, users, "Two stage", complianceScope=["21 CFR Part 11"])
    s.commit()

    assert [st.label for st in wf.steps] == ["Draft Check", "Sign Off"]
    assert [st.position for st in wf.steps] == [0, 1]
    assert wf.steps[0].signature_meaning == "Draft Check electronically approved"
    assert wf.steps[1].signature_meaning == "Released"
    assert wf.steps[0].requires_signature is True
    assert wf.compliance_scope == ["21 CFR Part 11"]

    ev = s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.desc())).first()
    assert ev.action == "WORKFLOW_CREATED"
    assert ev.summary == 'Workflow "Two stage" established'


def test_at_most_one_default_template(s, users):
    a = _create(s, users, "A", isDefault=True)
    s.commit()
    _create(s, users, "B", isDefault=True)
    s.commit()
    assert _defaults(s) == ["B"]

    update_workflow(s, a.id, {"isDefault": True}, users[Role.ADMIN])
    s.commit()
    assert _defaults(s) == ["A"]

    update_workflow(s, a.id, {"isDefault": False}, users[Role.ADMIN])
    s.commit()
    assert _defaults(s) == []


def test_update_workflow_is_shallow_and_audited(s, users):
    wf = _create(s, users, "Original")
    s.commit()

    wf = update_workflow(s, wf.id, {"name": "Renamed", "description": "New"}, users[Role.QA])
    s.commit()
    assert wf.name == "Renamed"
    assert len(wf.steps) == 2

    ev = s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.desc())).first()
    assert ev.action == "WORKFLOW_UPDATED"

    with pytest.raises(ValidationFailed):
        update_workflow(s, wf.id, {"steps": []}, users[Role.QA])


def test_invalid_definitions_are_refused(s, users):
    with pytest.raises(ValidationFailed):
        create_workflow(s, {"name": "Empty", "steps": []}, users[Role.ADMIN])
    with pytest.raises(ValidationFailed):
        create_workflow(s, {"name": "Bad role", "steps": [{"label": "X", "role": "Janitor"}]}, users[Role.ADMIN])
    with pytest.raises(ValidationFailed):
        create_workflow(s, {"name": "", "steps": [{"label": "X", "role": "QA"}]}, users[Role.ADMIN])


def test_lookup(s, users):
    wf = _create(s, users, "Lookup")
    s.commit()
    assert get_workflow(s, wf.id).name == "Lookup"
    assert [w.id for w in list_workflows(s)] == [wf.id]
    with pytest.raises(WorkflowNotFound):
        get_workflow(s, "missing")

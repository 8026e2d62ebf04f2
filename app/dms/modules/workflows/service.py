from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select, update

from app.dms.audit import record_event
from app.dms.constants import AuditAction, EntityType, Role
from app.dms.errors import NoWorkflowAvailable, ValidationFailed, WorkflowNotFound
from app.dms.modules.workflows.models import WorkflowStepDefinition, WorkflowTemplate
from app.dms.utils import clean_str, clean_str_list, new_id, parse_enum, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "complianceScope", "isDefault")


def default_signature_meaning(label: str) -> str:
    return f"{label} electronically approved"


def _clear_default_flags(s: "Session", *, except_id: str | None = None) -> None:
    # Single UPDATE so no flush can observe two defaults at once.
    stmt = update(WorkflowTemplate).where(WorkflowTemplate.is_default.is_(True))
    if except_id is not None:
        stmt = stmt.where(WorkflowTemplate.id != except_id)
    s.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))


def _build_step(raw: dict, position: int) -> WorkflowStepDefinition:
    label = clean_str(raw.get("label"))
    if not label:
        raise ValidationFailed(f"Step {position + 1}: label is required.", field="steps")
    role = parse_enum(Role, raw.get("role"), "role")
    try:
        sla_hours = int(raw.get("slaHours") or 0)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Step {position + 1}: slaHours must be an integer.", field="steps") from None
    if sla_hours < 0:
        raise ValidationFailed(f"Step {position + 1}: slaHours cannot be negative.", field="steps")
    meaning = raw.get("signatureMeaning")
    return WorkflowStepDefinition(
        id=new_id(),
        position=position,
        label=label,
        description=clean_str(raw.get("description")),
        role=role.value,
        sla_hours=sla_hours,
        requires_signature=bool(raw.get("requiresSignature", True)),
        signature_meaning=meaning if meaning is not None else default_signature_meaning(label),
    )


def create_workflow(s: "Session", payload: dict, actor_id: str) -> WorkflowTemplate:
    """Create a workflow template; its steps are fixed from here on."""
    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationFailed("Name is required.", field="name")
    raw_steps = payload.get("steps") or []
    if not isinstance(raw_steps, list) or not raw_steps:
        raise ValidationFailed("Configure at least one workflow step.", field="steps")

    steps = [_build_step(raw, i) for i, raw in enumerate(raw_steps)]
    is_default = bool(payload.get("isDefault"))
    if is_default:
        _clear_default_flags(s)

    wf = WorkflowTemplate(
        id=new_id(),
        name=name,
        description=clean_str(payload.get("description")),
        compliance_scope=clean_str_list(payload.get("complianceScope"), "complianceScope"),
        is_default=is_default,
        created_at=utcnow(),
        created_by_id=actor_id,
        steps=steps,
    )
    s.add(wf)
    s.flush()

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.WORKFLOW_CREATED,
        entity_type=EntityType.WORKFLOW,
        entity_id=wf.id,
        summary=f'Workflow "{wf.name}" established',
        metadata={"steps": len(wf.steps), "default": wf.is_default},
    )
    logger.info("workflow created id=%s steps=%s default=%s", wf.id, len(wf.steps), wf.is_default)
    return wf


def update_workflow(s: "Session", workflow_id: str, updates: dict, actor_id: str) -> WorkflowTemplate:
    """Shallow-merge name/description/scope/default flag. Steps are not editable."""
    wf = get_workflow(s, workflow_id)
    unknown = set(updates) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationFailed(f"Fields not updatable: {', '.join(sorted(unknown))}")

    original_name = wf.name
    if "name" in updates:
        name = clean_str(updates["name"])
        if not name:
            raise ValidationFailed("Name is required.", field="name")
        wf.name = name
    if "description" in updates:
        wf.description = clean_str(updates["description"])
    if "complianceScope" in updates:
        wf.compliance_scope = clean_str_list(updates["complianceScope"], "complianceScope")
    if "isDefault" in updates:
        if updates["isDefault"]:
            _clear_default_flags(s, except_id=wf.id)
            wf.is_default = True
        else:
            wf.is_default = False
    s.flush()

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.WORKFLOW_UPDATED,
        entity_type=EntityType.WORKFLOW,
        entity_id=wf.id,
        summary=f'Workflow "{original_name}" updated',
        metadata=dict(updates),
    )
    return wf


def get_workflow(s: "Session", workflow_id: str) -> WorkflowTemplate:
    wf = s.get(WorkflowTemplate, workflow_id)
    if not wf:
        raise WorkflowNotFound(workflow_id=workflow_id)
    return wf


def list_workflows(s: "Session") -> list[WorkflowTemplate]:
    return list(s.scalars(select(WorkflowTemplate).order_by(WorkflowTemplate.created_at.asc(), WorkflowTemplate.name.asc())))


def resolve_template(s: "Session", workflow_template_id: str | None = None) -> WorkflowTemplate:
    """Explicit id, else the default template, else the most recently created one."""
    if workflow_template_id:
        wf = s.get(WorkflowTemplate, workflow_template_id)
        if wf:
            return wf
    wf = s.scalars(select(WorkflowTemplate).where(WorkflowTemplate.is_default.is_(True)).limit(1)).first()
    if wf:
        return wf
    wf = s.scalars(select(WorkflowTemplate).order_by(WorkflowTemplate.created_at.desc()).limit(1)).first()
    if not wf:
        raise NoWorkflowAvailable()
    return wf

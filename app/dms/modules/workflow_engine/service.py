from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from app.dms.audit import record_event
from app.dms.constants import (
    RELEASE_ROLES,
    AuditAction,
    EntityType,
    Role,
    StepStatus,
    WorkflowStatus,
)
from app.dms.errors import (
    ConcurrentModification,
    InvalidTransition,
    IntegrityViolation,
    PermissionDenied,
    RoleMismatch,
    TemplateMissing,
    WorkflowComplete,
)
from app.dms.locks import document_lock
from app.dms.models import AuditLogEntry
from app.dms.modules.document_control import service as registry
from app.dms.modules.document_control.models import Document
from app.dms.modules.signatures.models import ElectronicSignature
from app.dms.modules.signatures.service import mint_signature
from app.dms.modules.workflows.models import WorkflowStepDefinition, WorkflowTemplate
from app.dms.utils import parse_enum, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.dms.modules.document_control.models import WorkflowInstanceStep

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Statuses from which a document may be withdrawn; Archived is terminal.
ARCHIVABLE_STATUSES = frozenset({WorkflowStatus.APPROVED.value, WorkflowStatus.EFFECTIVE.value})


def _template_for(s: "Session", doc: Document) -> WorkflowTemplate:
    template = s.get(WorkflowTemplate, doc.workflow_template_id)
    if not template:
        raise TemplateMissing(
            "Workflow template missing.", document_id=doc.id, template_id=doc.workflow_template_id
        )
    return template


def _current_step(
    s: "Session", doc: Document, actor_role: Role | str
) -> tuple["WorkflowInstanceStep", WorkflowStepDefinition]:
    """
    Shared preconditions of advance/reject, checked in order:
    template exists, index points at a real step, actor role matches exactly.
    """
    template = _template_for(s, doc)
    idx = doc.current_step_index
    if idx >= len(doc.workflow_steps) or idx >= len(template.steps):
        raise WorkflowComplete("Workflow is already complete.", document_id=doc.id)

    instance_step = doc.workflow_steps[idx]
    definition = template.steps[idx]
    if instance_step.step_id != definition.id:
        raise IntegrityViolation(
            "Workflow instance does not match its template.", document_id=doc.id, step_index=idx
        )

    role = parse_enum(Role, actor_role, "actorRole")
    if Role(definition.role) is not role:
        logger.warning(
            "role mismatch on document %s step %s: required=%s actual=%s",
            doc.id,
            idx,
            definition.role,
            role.value,
        )
        raise RoleMismatch(
            f"This workflow step requires {definition.role} role.",
            required=definition.role,
            actual=role.value,
        )
    if instance_step.status != StepStatus.IN_PROGRESS.value:
        raise InvalidTransition(
            f"Step {definition.label} is not in progress.", document_id=doc.id, status=instance_step.status
        )
    return instance_step, definition


def _flush_or_conflict(s: "Session", document_id: str) -> None:
    try:
        s.flush()
    except StaleDataError as e:
        raise ConcurrentModification(document_id=document_id) from e


def advance(
    s: "Session",
    document_id: str,
    actor_id: str,
    actor_role: Role | str,
    reason: str,
    signature_meaning: str | None,
    signature_evidence: str,
    notes: str | None = None,
) -> Document:
    """
    Sign off the current step and move the document forward.

    The caller must already have re-verified the actor's credential; reason
    and evidence are stored as given.
    """
    doc = registry.get_document(s, document_id, for_update=True)
    instance_step, definition = _current_step(s, doc, actor_role)

    now = utcnow()
    signature: ElectronicSignature | None = None
    if definition.requires_signature:
        signature = mint_signature(
            s,
            user_id=actor_id,
            document_id=doc.id,
            workflow_step_id=definition.id,
            meaning=signature_meaning if signature_meaning is not None else definition.signature_meaning,
            reason=reason,
            evidence=signature_evidence,
        )

    completed_index = doc.current_step_index
    instance_step.status = StepStatus.COMPLETED.value
    instance_step.completed_at = now
    instance_step.actor_user_id = actor_id
    instance_step.signature_id = signature.id if signature else None
    instance_step.notes = notes

    next_index = completed_index + 1
    doc.current_step_index = next_index
    if next_index >= len(doc.workflow_steps):
        doc.workflow_status = WorkflowStatus.APPROVED.value
        summary = "Workflow completed and document approved"
    else:
        next_step = doc.workflow_steps[next_index]
        next_step.status = StepStatus.IN_PROGRESS.value
        next_step.started_at = now
        doc.workflow_status = WorkflowStatus.IN_REVIEW.value
        summary = f"{definition.label} signed off"
    doc.last_updated_at = now
    _flush_or_conflict(s, doc.id)

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.WORKFLOW_ADVANCED,
        entity_type=EntityType.DOCUMENT,
        entity_id=doc.id,
        summary=summary,
        metadata={
            "step": definition.label,
            "stepIndex": completed_index,
            "currentStepIndex": doc.current_step_index,
            "status": doc.workflow_status,
            "signatureId": signature.id if signature else None,
            "evidence": signature_evidence,
        },
    )
    logger.info(
        "workflow advanced document=%s step=%s actor=%s status=%s",
        doc.id,
        completed_index,
        actor_id,
        doc.workflow_status,
    )
    return doc


def reject(s: "Session", document_id: str, actor_id: str, actor_role: Role | str, reason: str) -> Document:
    """
    Reject the current step and reset the whole instance to Draft.

    Signatures minted for earlier steps stay in the registry; only the
    instance state forgets them.
    """
    doc = registry.get_document(s, document_id, for_update=True)
    instance_step, definition = _current_step(s, doc, actor_role)

    now = utcnow()
    rejected_index = doc.current_step_index
    # The reset below clears status, actor and dates; only the reason stays on the step.
    instance_step.notes = reason

    doc.workflow_status = WorkflowStatus.DRAFT.value
    doc.current_step_index = 0
    for i, step in enumerate(doc.workflow_steps):
        step.status = StepStatus.IN_PROGRESS.value if i == 0 else StepStatus.PENDING.value
        step.started_at = now if i == 0 else None
        step.completed_at = None
        step.actor_user_id = None
        step.signature_id = None
    doc.last_updated_at = now
    _flush_or_conflict(s, doc.id)

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.WORKFLOW_REJECTED,
        entity_type=EntityType.DOCUMENT,
        entity_id=doc.id,
        summary=f"Workflow rejected at step {definition.label}",
        metadata={
            "reason": reason,
            "step": definition.label,
            "stepIndex": rejected_index,
            "resetTo": WorkflowStatus.DRAFT.value,
        },
    )
    logger.info("workflow rejected document=%s step=%s actor=%s", doc.id, rejected_index, actor_id)
    return doc


def _require_release_role(actor_role: Role | str) -> Role:
    role = parse_enum(Role, actor_role, "actorRole")
    if role not in RELEASE_ROLES:
        raise PermissionDenied(
            "Only QA or Admin may change the release status of a document.", actual=role.value
        )
    return role


def release_effective(s: "Session", document_id: str, actor_id: str, actor_role: Role | str) -> Document:
    """Approved -> Effective."""
    _require_release_role(actor_role)
    doc = registry.get_document(s, document_id, for_update=True)
    if doc.workflow_status != WorkflowStatus.APPROVED.value:
        raise InvalidTransition(
            "Only approved documents can be made effective.", document_id=doc.id, status=doc.workflow_status
        )
    doc = registry.mark_effective(s, document_id, actor_id)
    _flush_or_conflict(s, doc.id)
    return doc


def archive(s: "Session", document_id: str, actor_id: str, actor_role: Role | str) -> Document:
    """Approved or Effective -> Archived (terminal)."""
    _require_release_role(actor_role)
    doc = registry.get_document(s, document_id, for_update=True)
    if doc.workflow_status not in ARCHIVABLE_STATUSES:
        raise InvalidTransition(
            "Only approved or effective documents can be archived.", document_id=doc.id, status=doc.workflow_status
        )
    doc = registry.archive_document(s, document_id, actor_id)
    _flush_or_conflict(s, doc.id)
    return doc


def run_transition(s: "Session", document_id: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Transaction boundary for one transition on one document.

    Holds the per-document lock across the operation and its commit, rolls
    back on any failure, and retries once when another writer got there first.
    """
    attempts = 2
    for attempt in range(1, attempts + 1):
        with document_lock(document_id):
            try:
                result = fn(s, document_id, *args, **kwargs)
                s.commit()
                return result
            except (StaleDataError, ConcurrentModification) as e:
                s.rollback()
                if attempt == attempts:
                    if isinstance(e, ConcurrentModification):
                        raise
                    raise ConcurrentModification(document_id=document_id) from e
            except Exception:
                s.rollback()
                raise
        logger.warning("concurrent modification on document %s; retrying %s", document_id, fn.__name__)
    raise ConcurrentModification(document_id=document_id)


def pending_tasks(s: "Session", role: Role | str) -> list[dict]:
    """Documents whose in-progress step is waiting on `role`."""
    role = parse_enum(Role, role, "role")
    terminal = (WorkflowStatus.APPROVED.value, WorkflowStatus.EFFECTIVE.value, WorkflowStatus.ARCHIVED.value)
    tasks: list[dict] = []
    for doc in s.scalars(select(Document).where(Document.workflow_status.not_in(terminal))):
        template = s.get(WorkflowTemplate, doc.workflow_template_id)
        if not template or doc.current_step_index >= len(template.steps):
            continue
        definition = template.steps[doc.current_step_index]
        instance_step = doc.workflow_steps[doc.current_step_index]
        if definition.role != role.value or instance_step.status != StepStatus.IN_PROGRESS.value:
            continue
        tasks.append(
            {
                "documentId": doc.id,
                "title": doc.title,
                "number": doc.document_number,
                "version": doc.current_version,
                "stepLabel": definition.label,
                "slaHours": definition.sla_hours,
                "startedAt": instance_step.started_at.isoformat() if instance_step.started_at else None,
                "effectiveFrom": doc.effective_from.isoformat() if doc.effective_from else None,
                "nextIssueDate": doc.next_issue_date.isoformat() if doc.next_issue_date else None,
            }
        )
    return tasks


def dashboard_summary(s: "Session") -> dict:
    by_status = dict(s.execute(select(Document.workflow_status, func.count()).group_by(Document.workflow_status)).all())
    return {
        "documents": sum(by_status.values()),
        "byStatus": {status.value: by_status.get(status.value, 0) for status in WorkflowStatus},
        "signatures": s.scalar(select(func.count()).select_from(ElectronicSignature)) or 0,
        "auditEntries": s.scalar(select(func.count()).select_from(AuditLogEntry)) or 0,
    }

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_, select

from app.dms.audit import record_event
from app.dms.constants import (
    AuditAction,
    DocumentCategory,
    DocumentSecurity,
    EntityType,
    RiskClassification,
    Role,
    StepStatus,
    WorkflowStatus,
)
from app.dms.errors import AlreadyExists, DocumentNotFound, ValidationFailed
from app.dms.modules.document_control.models import Document, DocumentVersion, WorkflowInstanceStep
from app.dms.modules.document_types.service import get_document_type
from app.dms.modules.workflows.service import resolve_template
from app.dms.utils import clean_str, clean_str_list, new_id, parse_date, parse_enum, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.dms.modules.workflows.models import WorkflowTemplate

logger = logging.getLogger(__name__)


def _optional_str(value: Any) -> str | None:
    return clean_str(value) or None


def _role_value(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return parse_enum(Role, value, "issuerRole").value


# API key -> (column, parser)
METADATA_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "createdById": ("created_by_id", clean_str),
    "dateCreated": ("date_created", parse_date),
    "dateOfIssue": ("date_of_issue", parse_date),
    "issuedById": ("issued_by_id", _optional_str),
    "issuerRole": ("issuer_role", _role_value),
    "effectiveFrom": ("effective_from", parse_date),
    "nextIssueDate": ("next_issue_date", parse_date),
    "category": ("category", lambda v: parse_enum(DocumentCategory, v, "category").value),
    "security": ("security", lambda v: parse_enum(DocumentSecurity, v, "security").value),
    "changeControlId": ("change_control_id", _optional_str),
}

UPDATABLE_FIELDS = (
    "title",
    "documentNumber",
    "metadata",
    "tags",
    "attachments",
    "documentTypeId",
    "riskClassification",
)


def normalize_doc_number(doc_number: str) -> str:
    return (doc_number or "").strip()


def build_workflow_steps(template: "WorkflowTemplate") -> list[WorkflowInstanceStep]:
    """Fresh instance steps: first step in progress, the rest pending."""
    now = utcnow()
    return [
        WorkflowInstanceStep(
            id=new_id(),
            position=i,
            step_id=step.id,
            status=StepStatus.IN_PROGRESS.value if i == 0 else StepStatus.PENDING.value,
            started_at=now if i == 0 else None,
        )
        for i, step in enumerate(template.steps)
    ]


def build_version(label: str, summary: str, actor_id: str, sequence: int) -> DocumentVersion:
    return DocumentVersion(
        id=new_id(),
        sequence=sequence,
        version_label=label,
        created_at=utcnow(),
        created_by_id=actor_id,
        summary=summary,
    )


def _ensure_unique_number(s: "Session", doc_number: str, *, exclude_id: str | None = None) -> None:
    stmt = select(Document.id).where(Document.document_number == doc_number)
    if exclude_id:
        stmt = stmt.where(Document.id != exclude_id)
    if s.scalars(stmt).first():
        raise AlreadyExists("Document number already exists.", documentNumber=doc_number)


def create_document(s: "Session", payload: dict, actor_id: str) -> Document:
    """Register a document with its initial version and a fresh workflow instance."""
    title = clean_str(payload.get("title"))
    doc_number = normalize_doc_number(payload.get("documentNumber") or "")
    version_label = clean_str(payload.get("version"))
    missing = [k for k, v in (("title", title), ("documentNumber", doc_number), ("version", version_label)) if not v]
    if missing:
        raise ValidationFailed(f"Required: {', '.join(missing)}", fields=missing)

    doc_type = get_document_type(s, clean_str(payload.get("documentTypeId")))
    template = resolve_template(s, _optional_str(payload.get("workflowTemplateId")))
    _ensure_unique_number(s, doc_number)

    meta: dict[str, Any] = {}
    for key, (column, parser) in METADATA_FIELDS.items():
        if key in ("category", "security") or payload.get(key) not in (None, ""):
            meta[column] = parser(payload.get(key))
    meta["created_by_id"] = meta.get("created_by_id") or actor_id

    now = utcnow()
    doc = Document(
        id=new_id(),
        title=title,
        document_number=doc_number,
        current_version=version_label,
        document_type_id=doc_type.id,
        tags=clean_str_list(payload.get("tags"), "tags"),
        attachments=clean_str_list(payload.get("attachments"), "attachments"),
        risk_classification=parse_enum(
            RiskClassification, payload.get("riskClassification") or RiskClassification.LOW.value, "riskClassification"
        ).value,
        last_updated_at=now,
        workflow_template_id=template.id,
        workflow_status=WorkflowStatus.DRAFT.value,
        current_step_index=0,
        workflow_initiated_at=now,
        workflow_steps=build_workflow_steps(template),
        version_history=[build_version(version_label, clean_str(payload.get("summary")), meta["created_by_id"], 1)],
        **meta,
    )
    s.add(doc)
    s.flush()

    record_event(
        s,
        actor_id=doc.created_by_id,
        action=AuditAction.DOCUMENT_CREATED,
        entity_type=EntityType.DOCUMENT,
        entity_id=doc.id,
        summary=f"Created document {doc.title} v{doc.current_version}",
        metadata={
            "documentNumber": doc.document_number,
            "security": doc.security,
            "workflow": template.name,
            "workflowTemplateId": template.id,
            "stepCount": len(doc.workflow_steps),
            "version": doc.current_version,
        },
    )
    logger.info("document created id=%s number=%s template=%s", doc.id, doc.document_number, template.id)
    return doc


def update_document(s: "Session", document_id: str, updates: dict, actor_id: str) -> Document:
    """Merge metadata/tags/attachments/type/risk; never touches workflow state."""
    doc = get_document(s, document_id)
    unknown = set(updates) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationFailed(f"Fields not updatable: {', '.join(sorted(unknown))}")

    changes: dict[str, Any] = {}
    if "title" in updates:
        title = clean_str(updates["title"])
        if not title:
            raise ValidationFailed("Title is required.", field="title")
        changes["title"] = title
        doc.title = title
    if "documentNumber" in updates:
        number = normalize_doc_number(updates["documentNumber"] or "")
        if not number:
            raise ValidationFailed("Document number is required.", field="documentNumber")
        _ensure_unique_number(s, number, exclude_id=doc.id)
        changes["documentNumber"] = number
        doc.document_number = number
    if "documentTypeId" in updates:
        doc.document_type_id = get_document_type(s, clean_str(updates["documentTypeId"])).id
        changes["documentTypeId"] = doc.document_type_id
    if "riskClassification" in updates:
        doc.risk_classification = parse_enum(RiskClassification, updates["riskClassification"], "riskClassification").value
        changes["riskClassification"] = doc.risk_classification
    if "tags" in updates:
        doc.tags = clean_str_list(updates["tags"], "tags")
        changes["tags"] = doc.tags
    if "attachments" in updates:
        doc.attachments = clean_str_list(updates["attachments"], "attachments")
        changes["attachments"] = doc.attachments
    if "metadata" in updates:
        meta_updates = updates["metadata"] or {}
        if not isinstance(meta_updates, dict):
            raise ValidationFailed("metadata must be an object.", field="metadata")
        unknown_meta = set(meta_updates) - set(METADATA_FIELDS)
        if unknown_meta:
            raise ValidationFailed(f"Unknown metadata fields: {', '.join(sorted(unknown_meta))}", field="metadata")
        for key, value in meta_updates.items():
            column, parser = METADATA_FIELDS[key]
            setattr(doc, column, parser(value))
        changes["metadata"] = doc.metadata_dict()

    doc.last_updated_at = utcnow()

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.DOCUMENT_UPDATED,
        entity_type=EntityType.DOCUMENT,
        entity_id=doc.id,
        summary=f"Metadata updated for {doc.title}",
        metadata=changes,
    )
    return doc


def add_version(s: "Session", document_id: str, version_label: str, summary: str, actor_id: str) -> Document:
    """Supersede the newest version and prepend a new one."""
    doc = get_document(s, document_id)
    label = clean_str(version_label)
    if not label:
        raise ValidationFailed("Version label is required.", field="versionLabel")

    now = utcnow()
    history = doc.version_history
    if history and history[0].superseded_at is None:
        history[0].superseded_at = now
    next_seq = max((v.sequence for v in history), default=0) + 1
    history.insert(0, build_version(label, clean_str(summary), actor_id, next_seq))
    doc.current_version = label
    doc.last_updated_at = now

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.DOCUMENT_VERSIONED,
        entity_type=EntityType.DOCUMENT,
        entity_id=doc.id,
        summary=f"New version {label} created",
        metadata={"versionLabel": label, "summary": clean_str(summary), "totalVersions": len(history)},
    )
    return doc


def _set_status(
    s: "Session",
    doc: Document,
    status: WorkflowStatus,
    actor_id: str,
    action: AuditAction,
    summary: str,
) -> Document:
    previous = doc.workflow_status
    doc.workflow_status = status.value
    doc.last_updated_at = utcnow()
    record_event(
        s,
        actor_id=actor_id,
        action=action,
        entity_type=EntityType.DOCUMENT,
        entity_id=doc.id,
        summary=summary,
        metadata={"from": previous, "status": status.value},
    )
    logger.info("document %s status %s -> %s by %s", doc.id, previous, status.value, actor_id)
    return doc


def mark_effective(s: "Session", document_id: str, actor_id: str) -> Document:
    """Raw transition to Effective. Gating lives in the workflow engine."""
    doc = get_document(s, document_id)
    return _set_status(
        s, doc, WorkflowStatus.EFFECTIVE, actor_id, AuditAction.DOCUMENT_EFFECTIVE, "Document released to effective state"
    )


def archive_document(s: "Session", document_id: str, actor_id: str) -> Document:
    """Raw transition to Archived. Gating lives in the workflow engine."""
    doc = get_document(s, document_id)
    return _set_status(
        s,
        doc,
        WorkflowStatus.ARCHIVED,
        actor_id,
        AuditAction.DOCUMENT_ARCHIVED,
        "Document archived and removed from active distribution",
    )


def get_document(s: "Session", document_id: str, *, for_update: bool = False) -> Document:
    stmt = select(Document).where(Document.id == document_id)
    if for_update:
        stmt = stmt.with_for_update()
    doc = s.scalars(stmt).first()
    if not doc:
        raise DocumentNotFound(document_id=document_id)
    return doc


def list_documents(s: "Session", *, status: str | None = None, q: str | None = None) -> list[Document]:
    stmt = select(Document)
    if status:
        stmt = stmt.where(Document.workflow_status == status)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(Document.title.ilike(like), Document.document_number.ilike(like)))
    return list(s.scalars(stmt.order_by(Document.last_updated_at.desc())))

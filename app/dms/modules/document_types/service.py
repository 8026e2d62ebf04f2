from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from app.dms.audit import record_event
from app.dms.constants import AuditAction, DocumentTypeOption, EntityType
from app.dms.errors import AlreadyExists, DocumentTypeNotFound, ValidationFailed
from app.dms.modules.document_types.models import DocumentType
from app.dms.utils import clean_str, new_id, parse_enum, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def create_document_type(s: "Session", payload: dict, actor_id: str) -> DocumentType:
    """Create a taxonomy entry. Labels come from a closed list and are unique."""
    label = parse_enum(DocumentTypeOption, payload.get("type"), "type")
    exists = s.scalars(select(DocumentType).where(DocumentType.label == label.value)).first()
    if exists:
        raise AlreadyExists("Document type already exists.", type=label.value)

    dt = DocumentType(
        id=new_id(),
        label=label.value,
        description=clean_str(payload.get("description")),
        obsolete=False,
        created_at=utcnow(),
        created_by_id=actor_id,
    )
    s.add(dt)
    s.flush()

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.DOCUMENT_TYPE_CREATED,
        entity_type=EntityType.DOCUMENT_TYPE,
        entity_id=dt.id,
        summary=f"Created document type {dt.label}",
        metadata={"description": dt.description},
    )
    return dt


def update_document_type(s: "Session", type_id: str, updates: dict, actor_id: str) -> DocumentType:
    """Only the description and the obsolete flag may change."""
    dt = get_document_type(s, type_id)
    unknown = set(updates) - {"description", "obsolete"}
    if unknown:
        raise ValidationFailed(f"Fields not updatable: {', '.join(sorted(unknown))}")

    changes = {}
    if "description" in updates:
        new_desc = clean_str(updates["description"])
        if new_desc != dt.description:
            changes["description"] = {"old": dt.description, "new": new_desc}
            dt.description = new_desc
    if "obsolete" in updates:
        new_obsolete = bool(updates["obsolete"])
        if new_obsolete != dt.obsolete:
            changes["obsolete"] = {"old": dt.obsolete, "new": new_obsolete}
            dt.obsolete = new_obsolete

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.DOCUMENT_TYPE_UPDATED,
        entity_type=EntityType.DOCUMENT_TYPE,
        entity_id=dt.id,
        summary="Updated document type details",
        metadata={"type": dt.label, "changes": changes},
    )
    return dt


def get_document_type(s: "Session", type_id: str) -> DocumentType:
    dt = s.get(DocumentType, type_id)
    if not dt:
        raise DocumentTypeNotFound(document_type_id=type_id)
    return dt


def list_document_types(s: "Session", *, include_obsolete: bool = True) -> list[DocumentType]:
    stmt = select(DocumentType)
    if not include_obsolete:
        stmt = stmt.where(DocumentType.obsolete.is_(False))
    return list(s.scalars(stmt.order_by(DocumentType.label.asc())))

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.dms.errors import NotFound
from app.dms.modules.signatures.models import ElectronicSignature
from app.dms.utils import new_id, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def mint_signature(
    s: "Session",
    *,
    user_id: str,
    document_id: str,
    workflow_step_id: str,
    meaning: str,
    reason: str,
    evidence: str,
) -> ElectronicSignature:
    """Append a signature; id and timestamp are assigned here, never by the caller."""
    sig = ElectronicSignature(
        id=new_id(),
        user_id=user_id,
        document_id=document_id,
        workflow_step_id=workflow_step_id,
        signed_at=utcnow(),
        meaning=meaning,
        reason=reason,
        evidence=evidence,
    )
    s.add(sig)
    return sig


def get_signature(s: "Session", signature_id: str) -> ElectronicSignature:
    sig = s.get(ElectronicSignature, signature_id)
    if not sig:
        raise NotFound("Signature not found.", signature_id=signature_id)
    return sig


def list_signatures(
    s: "Session",
    *,
    document_id: str | None = None,
    user_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[ElectronicSignature]:
    """Newest first."""
    stmt = select(ElectronicSignature)
    if document_id:
        stmt = stmt.where(ElectronicSignature.document_id == document_id)
    if user_id:
        stmt = stmt.where(ElectronicSignature.user_id == user_id)
    if since:
        stmt = stmt.where(ElectronicSignature.signed_at >= since)
    if until:
        stmt = stmt.where(ElectronicSignature.signed_at <= until)
    return list(s.scalars(stmt.order_by(ElectronicSignature.signed_at.desc(), ElectronicSignature.id.asc())))

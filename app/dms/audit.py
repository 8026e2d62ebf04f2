from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.dms.constants import COMPLIANCE_REFERENCES, AuditAction, EntityType, WorkflowStatus
from app.dms.models import LEDGER_HEAD_ID, AuditLedgerHead, AuditLogEntry
from app.dms.utils import new_id, utcnow

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=_json_default)


def compute_entry_hash(ev: AuditLogEntry) -> str:
    payload = _dumps(
        {
            "sequence": ev.sequence,
            "id": ev.id,
            "timestamp": ev.timestamp.isoformat(),
            "actor": ev.actor_user_id,
            "action": ev.action,
            "entity_type": ev.entity_type,
            "entity_id": ev.entity_id,
            "summary": ev.summary,
            "metadata": ev.metadata_json,
            "compliance_refs": ev.compliance_refs_json,
            "prev_hash": ev.prev_hash,
        }
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _last_entry(s: Session) -> AuditLogEntry | None:
    return s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.desc()).limit(1)).first()


def _lock_ledger_head(s: Session) -> None:
    """Take the ledger-wide write lock for the rest of the transaction."""
    res = s.execute(
        update(AuditLedgerHead).where(AuditLedgerHead.id == LEDGER_HEAD_ID).values(locked_at=utcnow())
    )
    if res.rowcount == 0:
        last = _last_entry(s)
        s.add(
            AuditLedgerHead(
                id=LEDGER_HEAD_ID,
                last_sequence=last.sequence if last else 0,
                last_hash=last.entry_hash if last else None,
                locked_at=utcnow(),
            )
        )
        s.flush()


def record_event(
    s: Session,
    *,
    actor_id: str,
    action: AuditAction | str,
    entity_type: EntityType | str,
    entity_id: str,
    summary: str,
    metadata: dict[str, Any] | None = None,
    compliance_refs: list[str] | tuple[str, ...] | None = None,
    request_id: str | None = None,
) -> AuditLogEntry:
    """
    Append-only audit event helper.

    The entry is flushed immediately so that a second event in the same
    transaction chains onto this one.
    """
    rid = request_id
    ip = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        ip = request.remote_addr

    _lock_ledger_head(s)
    prev = _last_entry(s)
    ev = AuditLogEntry(
        id=new_id(),
        sequence=(prev.sequence + 1) if prev else 1,
        timestamp=utcnow(),
        request_id=rid,
        ip_address=ip,
        actor_user_id=actor_id,
        action=action.value if isinstance(action, Enum) else action,
        entity_type=entity_type.value if isinstance(entity_type, Enum) else entity_type,
        entity_id=entity_id,
        summary=summary,
        metadata_json=_dumps(metadata) if metadata else None,
        compliance_refs_json=_dumps(list(compliance_refs if compliance_refs is not None else COMPLIANCE_REFERENCES)),
        prev_hash=prev.entry_hash if prev else None,
    )
    ev.entry_hash = compute_entry_hash(ev)
    s.add(ev)
    s.flush()
    s.execute(
        update(AuditLedgerHead)
        .where(AuditLedgerHead.id == LEDGER_HEAD_ID)
        .values(last_sequence=ev.sequence, last_hash=ev.entry_hash)
    )
    logger.debug("audit #%s %s %s/%s", ev.sequence, ev.action, ev.entity_type, ev.entity_id)
    return ev


def list_events(
    s: Session,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    document_id: str | None = None,
    action: str | None = None,
    actor_user_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    q: str | None = None,
    limit: int | None = None,
) -> list[AuditLogEntry]:
    """Newest-first query over the ledger."""
    stmt = select(AuditLogEntry)
    if document_id:
        stmt = stmt.where(
            AuditLogEntry.entity_type == EntityType.DOCUMENT.value,
            AuditLogEntry.entity_id == document_id,
        )
    if entity_type:
        stmt = stmt.where(AuditLogEntry.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(AuditLogEntry.entity_id == entity_id)
    if action:
        stmt = stmt.where(AuditLogEntry.action == action)
    if actor_user_id:
        stmt = stmt.where(AuditLogEntry.actor_user_id == actor_user_id)
    if since:
        stmt = stmt.where(AuditLogEntry.timestamp >= since)
    if until:
        stmt = stmt.where(AuditLogEntry.timestamp <= until)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(AuditLogEntry.summary.ilike(like), AuditLogEntry.action.ilike(like)))
    stmt = stmt.order_by(AuditLogEntry.sequence.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list(s.scalars(stmt))


@dataclass(frozen=True)
class ChainReport:
    ok: bool
    checked: int
    broken_at: int | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {"ok": self.ok, "checked": self.checked, "brokenAt": self.broken_at, "reason": self.reason}


def verify_chain(s: Session) -> ChainReport:
    """Recompute every hash in sequence order and report the first broken link."""
    prev_hash: str | None = None
    expected_seq = 1
    checked = 0
    for ev in s.scalars(select(AuditLogEntry).order_by(AuditLogEntry.sequence.asc())):
        if ev.sequence != expected_seq:
            return ChainReport(False, checked, ev.sequence, f"gap: expected sequence {expected_seq}")
        if ev.prev_hash != prev_hash:
            return ChainReport(False, checked, ev.sequence, "previous hash does not match")
        if compute_entry_hash(ev) != ev.entry_hash:
            return ChainReport(False, checked, ev.sequence, "entry hash does not match contents")
        prev_hash = ev.entry_hash
        expected_seq += 1
        checked += 1
    head = s.get(AuditLedgerHead, LEDGER_HEAD_ID)
    if head is not None and head.last_sequence > checked:
        return ChainReport(False, checked, head.last_sequence, "entries missing after the last verified sequence")
    return ChainReport(True, checked)


def replay_document(s: Session, document_id: str) -> dict[str, Any]:
    """
    Rebuild a document's lifecycle position purely from its audit history.
    Used to cross-check stored state against the ledger.
    """
    state: dict[str, Any] = {
        "documentId": document_id,
        "status": None,
        "currentStepIndex": None,
        "currentVersion": None,
        "signatureIds": [],
        "events": 0,
    }
    for ev in reversed(list_events(s, document_id=document_id)):
        meta = ev.metadata_dict
        state["events"] += 1
        if ev.action == AuditAction.DOCUMENT_CREATED.value:
            state.update(status=WorkflowStatus.DRAFT.value, currentStepIndex=0, currentVersion=meta.get("version"))
        elif ev.action == AuditAction.DOCUMENT_VERSIONED.value:
            state["currentVersion"] = meta.get("versionLabel")
        elif ev.action == AuditAction.WORKFLOW_ADVANCED.value:
            state["status"] = meta.get("status")
            state["currentStepIndex"] = meta.get("currentStepIndex")
            if meta.get("signatureId"):
                state["signatureIds"].append(meta["signatureId"])
        elif ev.action == AuditAction.WORKFLOW_REJECTED.value:
            state.update(status=WorkflowStatus.DRAFT.value, currentStepIndex=0)
        elif ev.action == AuditAction.DOCUMENT_EFFECTIVE.value:
            state["status"] = WorkflowStatus.EFFECTIVE.value
        elif ev.action == AuditAction.DOCUMENT_ARCHIVED.value:
            state["status"] = WorkflowStatus.ARCHIVED.value
    return state

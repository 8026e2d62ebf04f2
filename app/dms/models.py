from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import DDL, Boolean, DateTime, Index, Integer, String, Text, event
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.dms.constants import Role
from app.dms.errors import AppendOnlyViolation
from app.dms.utils import new_id, utcnow


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=Role.VIEWER.value)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    signature: Mapped[str | None] = mapped_column(String(255), nullable=True)  # default evidence statement
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "signature": self.signature,
            "enabled": self.enabled,
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
        }


class AuditLogEntry(Base):
    """
    Append-only audit trail entry.

    Entries are hash-chained in `sequence` order: each `entry_hash` covers the
    entry's own fields plus the previous entry's hash, so any edit or deletion
    in the stored history breaks verification from that point on.
    """

    __tablename__ = "audit_log_entries"
    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_timestamp", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[str] = mapped_column(String(36), nullable=False)

    action: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "WORKFLOW_ADVANCED"
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)  # e.g. "Document"
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    summary: Mapped[str] = mapped_column(String(512), nullable=False)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    compliance_refs_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}

    @property
    def compliance_refs(self) -> list[str]:
        return json.loads(self.compliance_refs_json or "[]")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "actorUserId": self.actor_user_id,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "summary": self.summary,
            "metadata": self.metadata_dict,
            "complianceRefs": self.compliance_refs,
            "ipAddress": self.ip_address,
            "hash": self.entry_hash,
        }


LEDGER_HEAD_ID = 1


class AuditLedgerHead(Base):
    """
    Single row tracking the tip of the audit chain.

    Appenders update this row before reading the last entry, which holds a
    row lock (Postgres) or the writer lock (SQLite) until commit.
    """

    __tablename__ = "audit_ledger_head"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)


event.listen(
    AuditLedgerHead.__table__,
    "after_create",
    DDL(f"INSERT INTO audit_ledger_head (id, last_sequence) VALUES ({LEDGER_HEAD_ID}, 0)"),
)


def forbid_mutation(cls: type) -> type:
    """Register ORM hooks that refuse updates and deletes of an append-only entity."""

    def _refuse(mapper, connection, target):  # type: ignore[no-untyped-def]
        raise AppendOnlyViolation(f"{cls.__name__} records are append-only.", id=getattr(target, "id", None))

    event.listen(cls, "before_update", _refuse)
    event.listen(cls, "before_delete", _refuse)
    return cls


forbid_mutation(AuditLogEntry)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.dms.modules.document_types.models import DocumentType  # noqa: E402,F401
from app.dms.modules.workflows.models import WorkflowStepDefinition, WorkflowTemplate  # noqa: E402,F401
from app.dms.modules.signatures.models import ElectronicSignature  # noqa: E402,F401
from app.dms.modules.document_control.models import (  # noqa: E402,F401
    Document,
    DocumentVersion,
    WorkflowInstanceStep,
)

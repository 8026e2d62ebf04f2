from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.dms.constants import StepStatus, WorkflowStatus
from app.dms.models import Base
from app.dms.utils import isoformat, new_id, utcnow


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_workflow_status", "workflow_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    document_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    current_version: Mapped[str] = mapped_column(String(32), nullable=False)  # == version_history[0].version_label
    document_type_id: Mapped[str] = mapped_column(ForeignKey("document_types.id", ondelete="RESTRICT"), nullable=False)

    # Metadata block
    created_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date_created: Mapped[date | None] = mapped_column(Date, nullable=True)
    date_of_issue: Mapped[date | None] = mapped_column(Date, nullable=True)
    issued_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    issuer_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    security: Mapped[str] = mapped_column(String(32), nullable=False)
    change_control_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    risk_classification: Mapped[str] = mapped_column(String(16), nullable=False, default="Low")
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    # Embedded workflow instance. The template is referenced by id only (no FK):
    # a dangling reference is reported as an integrity violation by the engine.
    workflow_template_id: Mapped[str] = mapped_column(String(36), nullable=False)
    workflow_status: Mapped[str] = mapped_column(String(32), nullable=False, default=WorkflowStatus.DRAFT.value)
    current_step_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    workflow_initiated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    # Optimistic concurrency counter, checked by the ORM on every UPDATE
    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    workflow_steps: Mapped[list["WorkflowInstanceStep"]] = relationship(
        "WorkflowInstanceStep",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="WorkflowInstanceStep.position",
    )

    version_history: Mapped[list["DocumentVersion"]] = relationship(
        "DocumentVersion",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentVersion.sequence.desc()",
    )

    @property
    def is_workflow_complete(self) -> bool:
        return self.current_step_index >= len(self.workflow_steps)

    def metadata_dict(self) -> dict:
        return {
            "createdById": self.created_by_id,
            "dateCreated": isoformat(self.date_created),
            "dateOfIssue": isoformat(self.date_of_issue),
            "issuedById": self.issued_by_id,
            "issuerRole": self.issuer_role,
            "effectiveFrom": isoformat(self.effective_from),
            "nextIssueDate": isoformat(self.next_issue_date),
            "category": self.category,
            "security": self.security,
            "changeControlId": self.change_control_id,
        }

    def workflow_dict(self) -> dict:
        return {
            "templateId": self.workflow_template_id,
            "status": self.workflow_status,
            "currentStepIndex": self.current_step_index,
            "steps": [step.to_dict() for step in self.workflow_steps],
            "initiatedAt": self.workflow_initiated_at.isoformat(),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "documentNumber": self.document_number,
            "currentVersion": self.current_version,
            "documentTypeId": self.document_type_id,
            "metadata": self.metadata_dict(),
            "workflow": self.workflow_dict(),
            "versionHistory": [v.to_dict() for v in self.version_history],
            "tags": list(self.tags or []),
            "attachments": list(self.attachments or []),
            "riskClassification": self.risk_classification,
            "lastUpdatedAt": self.last_updated_at.isoformat(),
        }


class WorkflowInstanceStep(Base):
    __tablename__ = "document_workflow_steps"
    __table_args__ = (
        UniqueConstraint("document_id", "position", name="uq_document_workflow_step_position"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    document_id: Mapped[str] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    step_id: Mapped[str] = mapped_column(String(36), nullable=False)  # WorkflowStepDefinition.id
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=StepStatus.PENDING.value)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    actor_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    signature_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    document: Mapped[Document] = relationship("Document", back_populates="workflow_steps", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "stepId": self.step_id,
            "status": self.status,
            "startedAt": isoformat(self.started_at),
            "completedAt": isoformat(self.completed_at),
            "actorUserId": self.actor_user_id,
            "signatureId": self.signature_id,
            "notes": self.notes,
        }


class DocumentVersion(Base):
    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "sequence", name="uq_document_version_sequence"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    document_id: Mapped[str] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)  # 1 = initial version

    version_label: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    summary: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    document: Mapped[Document] = relationship("Document", back_populates="version_history", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "versionLabel": self.version_label,
            "createdAt": self.created_at.isoformat(),
            "createdById": self.created_by_id,
            "summary": self.summary,
            "supersededAt": isoformat(self.superseded_at),
        }

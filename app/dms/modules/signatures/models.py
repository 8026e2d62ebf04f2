from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.dms.models import Base, forbid_mutation
from app.dms.utils import new_id, utcnow


class ElectronicSignature(Base):
    """
    Recorded attestation for one completed workflow step.
    Written only by the workflow engine; never updated or deleted.
    """

    __tablename__ = "electronic_signatures"
    __table_args__ = (
        Index("idx_signatures_document", "document_id"),
        Index("idx_signatures_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    document_id: Mapped[str] = mapped_column(ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False)
    workflow_step_id: Mapped[str] = mapped_column(String(36), nullable=False)  # step definition id

    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    meaning: Mapped[str] = mapped_column(String(512), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    evidence: Mapped[str] = mapped_column(Text, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "documentId": self.document_id,
            "workflowStepId": self.workflow_step_id,
            "signedAt": self.signed_at.isoformat(),
            "meaning": self.meaning,
            "reason": self.reason,
            "evidence": self.evidence,
        }


forbid_mutation(ElectronicSignature)

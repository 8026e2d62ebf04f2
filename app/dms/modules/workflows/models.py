from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.dms.models import Base
from app.dms.utils import new_id, utcnow


class WorkflowTemplate(Base):
    __tablename__ = "workflow_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    compliance_scope: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # At most one template holds this flag; see workflows.service._clear_default_flags
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_id: Mapped[str] = mapped_column(String(36), nullable=False)

    steps: Mapped[list["WorkflowStepDefinition"]] = relationship(
        "WorkflowStepDefinition",
        back_populates="template",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="WorkflowStepDefinition.position",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "steps": [step.to_dict() for step in self.steps],
            "complianceScope": list(self.compliance_scope or []),
            "isDefault": self.is_default,
            "createdAt": self.created_at.isoformat(),
            "createdById": self.created_by_id,
        }


class WorkflowStepDefinition(Base):
    __tablename__ = "workflow_step_definitions"
    __table_args__ = (
        UniqueConstraint("template_id", "position", name="uq_workflow_step_position"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    template_id: Mapped[str] = mapped_column(ForeignKey("workflow_templates.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)  # pipeline order, 0-based

    label: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    sla_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # descriptive only
    requires_signature: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    signature_meaning: Mapped[str] = mapped_column(String(512), nullable=False)

    template: Mapped[WorkflowTemplate] = relationship("WorkflowTemplate", back_populates="steps", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "role": self.role,
            "slaHours": self.sla_hours,
            "requiresSignature": self.requires_signature,
            "signatureMeaning": self.signature_meaning,
        }

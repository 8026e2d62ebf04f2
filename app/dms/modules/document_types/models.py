from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.dms.models import Base
from app.dms.utils import new_id, utcnow


class DocumentType(Base):
    __tablename__ = "document_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    # One of DocumentTypeOption; immutable once created
    label: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    obsolete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_id: Mapped[str] = mapped_column(String(36), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.label,
            "description": self.description,
            "obsolete": self.obsolete,
            "createdAt": self.created_at.isoformat(),
            "createdById": self.created_by_id,
        }

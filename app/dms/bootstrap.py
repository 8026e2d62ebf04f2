"""
Idempotent seed of the taxonomy and workflow catalog a fresh installation needs.

Used by scripts/init_db.py and, when BOOTSTRAP_DEFAULTS=1, by create_app().
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.dms.audit import record_event
from app.dms.constants import (
    COMPLIANCE_REFERENCES,
    SYSTEM_USER_ID,
    AuditAction,
    DocumentTypeOption,
    EntityType,
    Role,
)
from app.dms.modules.document_types.models import DocumentType
from app.dms.modules.document_types.service import create_document_type
from app.dms.modules.workflows.models import WorkflowTemplate
from app.dms.modules.workflows.service import create_workflow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_WORKFLOW = {
    "name": "Standard GxP Controlled Document Workflow",
    "description": "Enforces multi-stage authoring, QA, and approval for GMP regulated documentation.",
    "complianceScope": list(COMPLIANCE_REFERENCES),
    "isDefault": True,
    "steps": [
        {
            "label": "Author Draft Review",
            "description": "Author confirms the draft is complete and ready for independent review.",
            "role": Role.AUTHOR.value,
            "slaHours": 48,
            "requiresSignature": True,
            "signatureMeaning": "Draft prepared in accordance with applicable SOPs.",
        },
        {
            "label": "Independent Review",
            "description": "Reviewer verifies technical accuracy and regulatory alignment.",
            "role": Role.REVIEWER.value,
            "slaHours": 72,
            "requiresSignature": True,
            "signatureMeaning": "Independent review completed; document complies with applicable standards.",
        },
        {
            "label": "Quality Assurance Approval",
            "description": "QA validates change control, training impact, and compliance requirements.",
            "role": Role.QA.value,
            "slaHours": 48,
            "requiresSignature": True,
            "signatureMeaning": "QA approval verifying change control, training impact, and compliance.",
        },
        {
            "label": "Final Approval",
            "description": "Approver authorizes release of the controlled document.",
            "role": Role.APPROVER.value,
            "slaHours": 24,
            "requiresSignature": True,
            "signatureMeaning": "Final release approval granted; document ready for issuance.",
        },
    ],
}


def bootstrap_defaults(s: "Session", *, actor_id: str = SYSTEM_USER_ID) -> bool:
    """
    Seed one document type per option and the default workflow.

    Does nothing if any document type or workflow already exists.
    Returns True when something was created.
    """
    has_types = s.scalar(select(func.count()).select_from(DocumentType)) or 0
    has_workflows = s.scalar(select(func.count()).select_from(WorkflowTemplate)) or 0
    if has_types or has_workflows:
        return False

    for option in DocumentTypeOption:
        create_document_type(s, {"type": option.value, "description": f"{option.value} controlled document"}, actor_id)
    wf = create_workflow(s, DEFAULT_WORKFLOW, actor_id)

    record_event(
        s,
        actor_id=actor_id,
        action=AuditAction.SYSTEM_BOOTSTRAP,
        entity_type=EntityType.SYSTEM,
        entity_id="bootstrap",
        summary="Document management system initialized with default configuration",
        metadata={"documentTypes": len(DocumentTypeOption), "defaultWorkflowId": wf.id},
    )
    logger.info("bootstrap defaults created (types=%s workflow=%s)", len(DocumentTypeOption), wf.id)
    return True

"""
Central constants for the document management service.

All closed enumerations live here so roles, statuses and taxonomy labels
are compared by value, never by free-form string matching.
"""
from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    ADMIN = "Admin"
    AUTHOR = "Author"
    REVIEWER = "Reviewer"
    QA = "QA"
    APPROVER = "Approver"
    VIEWER = "Viewer"

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]


ROLE_LABELS = {
    Role.ADMIN: "System Administrator",
    Role.AUTHOR: "Document Author",
    Role.REVIEWER: "Independent Reviewer",
    Role.QA: "Quality Assurance",
    Role.APPROVER: "Final Approver",
    Role.VIEWER: "Read Only",
}

# Roles allowed to release an approved document or withdraw it from distribution.
RELEASE_ROLES = frozenset({Role.QA, Role.ADMIN})


class WorkflowStatus(str, Enum):
    DRAFT = "Draft"
    IN_REVIEW = "In Review"
    PENDING_APPROVAL = "Pending Approval"
    QA_VERIFICATION = "QA Verification"
    APPROVED = "Approved"
    EFFECTIVE = "Effective"
    SUPERSEDED = "Superseded"
    ARCHIVED = "Archived"


class StepStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    REJECTED = "Rejected"


class DocumentTypeOption(str, Enum):
    MANUAL = "Manual"
    PROCEDURE = "Procedure"
    PROCESS = "Process"
    WORK_INSTRUCTION = "Work Instruction"
    POLICY = "Policy"
    CHECKLIST = "Checklist"
    FORMAT = "Format"
    TEMPLATE = "Template"
    MASTERS = "Masters"


class DocumentCategory(str, Enum):
    QUALITY_MANAGEMENT = "Quality Management"
    MANUFACTURING = "Manufacturing"
    REGULATORY = "Regulatory"
    LABORATORY = "Laboratory"
    SAFETY = "Safety"
    CLINICAL = "Clinical"
    SUPPLY_CHAIN = "Supply Chain"
    VALIDATION = "Validation"
    TRAINING = "Training"


class DocumentSecurity(str, Enum):
    CONFIDENTIAL = "Confidential"
    INTERNAL = "Internal"
    RESTRICTED = "Restricted"
    PUBLIC = "Public"


class RiskClassification(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class EntityType(str, Enum):
    DOCUMENT = "Document"
    DOCUMENT_TYPE = "DocumentType"
    WORKFLOW = "Workflow"
    USER = "User"
    SYSTEM = "System"


class AuditAction(str, Enum):
    SYSTEM_BOOTSTRAP = "SYSTEM_BOOTSTRAP"
    DOCUMENT_CREATED = "DOCUMENT_CREATED"
    DOCUMENT_UPDATED = "DOCUMENT_UPDATED"
    DOCUMENT_VERSIONED = "DOCUMENT_VERSIONED"
    WORKFLOW_ADVANCED = "WORKFLOW_ADVANCED"
    WORKFLOW_REJECTED = "WORKFLOW_REJECTED"
    DOCUMENT_EFFECTIVE = "DOCUMENT_EFFECTIVE"
    DOCUMENT_ARCHIVED = "DOCUMENT_ARCHIVED"
    WORKFLOW_CREATED = "WORKFLOW_CREATED"
    WORKFLOW_UPDATED = "WORKFLOW_UPDATED"
    DOCUMENT_TYPE_CREATED = "DOCUMENT_TYPE_CREATED"
    DOCUMENT_TYPE_UPDATED = "DOCUMENT_TYPE_UPDATED"
    USER_REGISTERED = "USER_REGISTERED"
    USER_UPDATED = "USER_UPDATED"
    USER_LOGIN = "USER_LOGIN"
    USER_LOGIN_FAILED = "USER_LOGIN_FAILED"
    USER_LOGOUT = "USER_LOGOUT"


COMPLIANCE_REFERENCES = (
    "21 CFR Part 11",
    "ICH Q7",
    "GMP Annex 11",
    "ISO 9001:2015",
    "GAMP 5",
)

SYSTEM_USER_ID = "system"

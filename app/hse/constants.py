"""
Central constants for the document-control application.
"""
from __future__ import annotations

# Document lifecycle (masterlist) statuses
DRAFT = "DRAFT"
IN_REVIEW = "IN_REVIEW"
APPROVED = "APPROVED"
ESIGN_PENDING = "ESIGN_PENDING"
SIGNED = "SIGNED"
PUBLISHED = "PUBLISHED"
ARCHIVED = "ARCHIVED"
DISPOSED = "DISPOSED"

LIFECYCLE_STATUSES = (DRAFT, IN_REVIEW, APPROVED, ESIGN_PENDING, SIGNED, PUBLISHED, ARCHIVED, DISPOSED)

LIFECYCLE_TRANSITIONS: dict[str, frozenset[str]] = {
    DRAFT: frozenset({IN_REVIEW, ARCHIVED, DISPOSED}),
    IN_REVIEW: frozenset({APPROVED, DRAFT}),
    APPROVED: frozenset({ESIGN_PENDING, PUBLISHED, ARCHIVED, DISPOSED}),
    ESIGN_PENDING: frozenset({SIGNED, APPROVED}),
    SIGNED: frozenset({PUBLISHED, ARCHIVED, DISPOSED}),
    PUBLISHED: frozenset({DRAFT, ARCHIVED, DISPOSED}),
    ARCHIVED: frozenset({DISPOSED}),
    DISPOSED: frozenset(),
}

# Per-version statuses
VERSION_DRAFT = "DRAFT"
VERSION_PENDING_APPROVAL = "PENDING_APPROVAL"
VERSION_APPROVED = "APPROVED"
VERSION_SIGNED = "SIGNED"
VERSION_ACTIVE = "ACTIVE"
VERSION_SUPERSEDED = "SUPERSEDED"

VERSION_STATUSES = (
    VERSION_DRAFT,
    VERSION_PENDING_APPROVAL,
    VERSION_APPROVED,
    VERSION_SIGNED,
    VERSION_ACTIVE,
    VERSION_SUPERSEDED,
)

CONTROL_TYPES = ("CONTROLLED", "UNCONTROLLED")

DISPOSAL_METHODS = ("ELECTRONIC_DELETION", "SHREDDING", "ARCHIVE_TRANSFER")

# Copies taken out of the system (download, print, on-screen view)
EXPORT_DOWNLOAD = "DOWNLOAD"
EXPORT_PRINT = "PRINT"
EXPORT_VIEW = "VIEW"
EXPORT_ACTIONS = (EXPORT_DOWNLOAD, EXPORT_PRINT, EXPORT_VIEW)

# Approval workflow
WORKFLOW_PENDING = "PENDING"
WORKFLOW_APPROVED = "APPROVED"
WORKFLOW_REJECTED = "REJECTED"

STEP_PENDING = "PENDING"
STEP_IN_PROGRESS = "IN_PROGRESS"
STEP_COMPLETED = "COMPLETED"
STEP_REJECTED = "REJECTED"

MODE_SERIAL = "SERIAL"
MODE_PARALLEL = "PARALLEL"
STEP_MODES = (MODE_SERIAL, MODE_PARALLEL)

POLICY_QUORUM = "QUORUM"
POLICY_ALL = "ALL"
COMPLETION_POLICIES = (POLICY_QUORUM, POLICY_ALL)

DECISION_APPROVED = "APPROVED"
DECISION_REJECTED = "REJECTED"
DECISIONS = (DECISION_APPROVED, DECISION_REJECTED)

# E-sign
ESIGN_PENDING_REQUEST = "PENDING"
ESIGN_SIGNED = "SIGNED"
ESIGN_FAILED = "FAILED"
ESIGN_FAILED_PERMANENT = "FAILED_PERMANENT"
ESIGN_STATUSES = (ESIGN_PENDING_REQUEST, ESIGN_SIGNED, ESIGN_FAILED, ESIGN_FAILED_PERMANENT)
ESIGN_LIVE_STATUSES = frozenset({ESIGN_PENDING_REQUEST, ESIGN_FAILED})

# Change requests
CR_PENDING = "PENDING"
CR_APPROVED = "APPROVED"
CR_REJECTED = "REJECTED"
CR_COMPLETED = "COMPLETED"
CR_STATUSES = (CR_PENDING, CR_APPROVED, CR_REJECTED, CR_COMPLETED)
CR_REQUEST_TYPES = ("REVISION", "CORRECTION", "UPDATE")
CR_PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")

# External document register
EXT_ACTIVE = "ACTIVE"
EXT_OBSOLETE = "OBSOLETE"
EXT_SUPERSEDED = "SUPERSEDED"
EXT_STATUSES = (EXT_ACTIVE, EXT_OBSOLETE, EXT_SUPERSEDED)
EXT_FILE_TYPES = ("LINK", "FILE")

# Distribution compliance (derived, never stored)
COMPLIANCE_PENDING = "pending"
COMPLIANCE_READ = "read"
COMPLIANCE_ACKNOWLEDGED = "acknowledged"


def sql_in(values) -> str:
    """Render a CHECK constraint value list: ('A','B')."""
    return "(" + ",".join(f"'{v}'" for v in values) + ")"

"""Legal Hub approval workflow engine.

Legal Hub routes legal requests (contract reviews, lease agreements,
litigation instructions and related forms) through a fixed approval chain:
- Parallel first-level approvers (BUM, FBP, Cluster Head), then an optional CEO
- Legal GM initial review and assignment of a Legal Officer
- Legal Officer review, with optional Court Officer and Special Approver hops
- Legal GM final approval, then completion by the Legal Officer

This package implements the backend core: the table-driven state machine,
approval ledger and document registry mutations, the audit log projection,
and the runtime that commits each action atomically.

Basic usage:
    >>> from legalhub.runtime import LegalHubRuntime
    >>> runtime = LegalHubRuntime()
    >>> created = runtime.create_submission(
    ...     {"formId": 1, "initiatorId": "u_1", "companyCode": "DIMO", "title": "NDA"}
    ... )
    >>> print(created["data"]["status"])
    PENDING_APPROVAL
"""

__version__ = "0.1.0"
__author__ = "Legal Hub Team"

# Version info
VERSION = (0, 1, 0)

# Core exports
from legalhub.engine import WorkflowEngine
from legalhub.runtime import LegalHubRuntime

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "WorkflowEngine",
    "LegalHubRuntime",
]

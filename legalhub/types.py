"""Core type definitions for the Legal Hub approval workflow.

This module defines the closed vocabularies used throughout the engine:
- SubmissionStatus: Top-level lifecycle states of a submission
- LOStage / LegalGMStage: Sub-stages refining a single top-level status
- Role: Workflow roles recognised by the engine
- Action: Actions a role may request against a submission
- ApprovalStatus / DocumentStatus / DocumentType: Ledger and registry values
- ErrorType / EventType: Error categories and notification event types
- Actor: Identity of the person performing an action

Role and action strings coming from the directory service or the HTTP layer
are parsed at the boundary with ``Role.parse`` and ``Action.parse``; nothing
inside the engine compares raw strings.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class SubmissionStatus(str, Enum):
    """Top-level submission lifecycle states.

    Terminal states: completed, cancelled, resubmitted. ``SENT_BACK`` is a
    side state from which only the initiator's resubmission is possible.
    """
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    PENDING_CEO = "PENDING_CEO"
    PENDING_LEGAL_GM = "PENDING_LEGAL_GM"
    PENDING_LEGAL_OFFICER = "PENDING_LEGAL_OFFICER"
    PENDING_SPECIAL_APPROVER = "PENDING_SPECIAL_APPROVER"
    PENDING_COURT_OFFICER = "PENDING_COURT_OFFICER"
    PENDING_LEGAL_GM_FINAL = "PENDING_LEGAL_GM_FINAL"
    COMPLETED = "COMPLETED"
    SENT_BACK = "SENT_BACK"
    CANCELLED = "CANCELLED"
    RESUBMITTED = "RESUBMITTED"


class LOStage(str, Enum):
    """Legal Officer sub-stage within the Legal Officer phases."""
    PENDING_GM = "PENDING_GM"
    ACTIVE = "ACTIVE"
    REASSIGNED = "REASSIGNED"
    POST_GM_APPROVAL = "POST_GM_APPROVAL"
    ASSIGN_COURT_OFFICER = "ASSIGN_COURT_OFFICER"
    PENDING_COURT_OFFICER = "PENDING_COURT_OFFICER"
    REVIEW_FOR_GM = "REVIEW_FOR_GM"


class LegalGMStage(str, Enum):
    """Which of the two Legal GM reviews the submission is in."""
    INITIAL_REVIEW = "INITIAL_REVIEW"
    FINAL_APPROVAL = "FINAL_APPROVAL"


class Role(str, Enum):
    """Workflow roles.

    ``FINANCE`` and ``ADMIN`` exist in the directory but never act on a
    submission; they are accepted by ``parse`` and rejected by the guards.
    """
    INITIATOR = "INITIATOR"
    BUM = "BUM"
    FBP = "FBP"
    CLUSTER_HEAD = "CLUSTER_HEAD"
    CEO = "CEO"
    LEGAL_GM = "LEGAL_GM"
    LEGAL_OFFICER = "LEGAL_OFFICER"
    COURT_OFFICER = "COURT_OFFICER"
    SPECIAL_APPROVER = "SPECIAL_APPROVER"
    FINANCE = "FINANCE"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Parse a role string from an untrusted source.

        Raises:
            InvalidActorError: If the value is not a known role
        """
        if isinstance(value, Role):
            return value
        normalized = str(value or "").strip().upper()
        # Legacy client-side role names
        if normalized.startswith("APPROVER_"):
            normalized = normalized[len("APPROVER_"):]
        try:
            return cls(normalized)
        except ValueError:
            from legalhub.errors import InvalidActorError

            raise InvalidActorError(f"Unknown role '{value}'")


class Action(str, Enum):
    """Actions a role may request through the action endpoint."""
    SUBMIT = "SUBMIT"
    APPROVED = "APPROVED"
    SENT_BACK = "SENT_BACK"
    CANCELLED = "CANCELLED"
    SUBMIT_TO_LEGAL_GM = "SUBMIT_TO_LEGAL_GM"
    RETURN_TO_INITIATOR = "RETURN_TO_INITIATOR"
    ASSIGN_SPECIAL_APPROVER = "ASSIGN_SPECIAL_APPROVER"
    ASSIGN_COURT_OFFICER = "ASSIGN_COURT_OFFICER"
    SUBMIT_TO_LEGAL_OFFICER = "SUBMIT_TO_LEGAL_OFFICER"
    REASSIGN_OFFICER = "REASSIGN_OFFICER"
    ACKNOWLEDGE_HANDOVER = "ACKNOWLEDGE_HANDOVER"
    SET_DOCUMENT_STATUS = "SET_DOCUMENT_STATUS"
    REQUEST_DOCUMENT = "REQUEST_DOCUMENT"
    SAVE_OFFICIAL_USE = "SAVE_OFFICIAL_USE"
    COMPLETED = "COMPLETED"
    RESUBMIT = "RESUBMIT"

    @classmethod
    def parse(cls, value: Any) -> "Action":
        """Parse an action string, accepting the verb forms used by older clients.

        Raises:
            ValidationError: If the value is not a known action
        """
        if isinstance(value, Action):
            return value
        normalized = str(value or "").strip().upper()
        normalized = ACTION_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            from legalhub.errors import FieldError, ValidationError

            raise ValidationError(
                f"Unknown action '{value}'",
                fields=[
                    FieldError(
                        path="action",
                        code=FieldErrorCode.INVALID_VALUE,
                        message=f"Unknown action '{value}'",
                        received=value,
                    )
                ],
            )


ACTION_ALIASES: Dict[str, str] = {
    "APPROVE": "APPROVED",
    "SEND_BACK": "SENT_BACK",
    "REJECT": "SENT_BACK",
    "CANCEL": "CANCELLED",
    "COMPLETE": "COMPLETED",
    "RETURNED_TO_INITIATOR": "RETURN_TO_INITIATOR",
    "REASSIGN": "REASSIGN_OFFICER",
    "ACKNOWLEDGE": "ACKNOWLEDGE_HANDOVER",
}


class ApprovalStatus(str, Enum):
    """Status of an Approval Ledger or Special Approver row."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SENT_BACK = "SENT_BACK"
    CANCELLED = "CANCELLED"


class DocumentStatus(str, Enum):
    """Upload and review status of a document."""
    NONE = "NONE"
    UPLOADED = "UPLOADED"
    OK = "OK"
    ATTENTION = "ATTENTION"
    RESUBMIT = "RESUBMIT"

    @classmethod
    def parse(cls, value: Any) -> "DocumentStatus":
        """Parse a document status string from an untrusted source.

        Raises:
            ValidationError: If the value is not a known document status
        """
        if isinstance(value, DocumentStatus):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            from legalhub.errors import invalid_field_error

            raise invalid_field_error(
                "documentStatus",
                f"Unknown document status '{value}'",
                expected=[s.value for s in cls],
                received=value,
            )


# Statuses a reviewer may assign; NONE and UPLOADED are set by uploads only
REVIEW_STATUSES = frozenset({DocumentStatus.OK, DocumentStatus.ATTENTION, DocumentStatus.RESUBMIT})


class DocumentType(str, Enum):
    """Document categories that are not party types.

    Party-type categories ("Company", "Partnership", ...) are free strings from
    the form configuration and are stored as-is.
    """
    COMMON = "Common"
    LO_PREPARED_INITIAL = "LO_PREPARED_INITIAL"
    LO_PREPARED_FINAL = "LO_PREPARED_FINAL"
    LO_REQUESTED = "LO_REQUESTED"


class ErrorType(str, Enum):
    """Error categories returned to callers (see errors.py)."""
    NOT_FOUND = "not_found"
    INVALID_ACTOR = "invalid_actor"
    ALREADY_ACTIONED = "already_actioned"
    INVALID_STATE = "invalid_state"
    VALIDATION = "validation"
    STORE = "store"


class FieldErrorCode(str, Enum):
    """Validation error codes for individual field failures."""
    REQUIRED = "required"
    INVALID_TYPE = "invalid_type"
    INVALID_FORMAT = "invalid_format"
    INVALID_VALUE = "invalid_value"
    TOO_SHORT = "too_short"
    FILE_REQUIRED = "file_required"
    CUSTOM = "custom"


class EventType(str, Enum):
    """Notification event types emitted after a committed action."""
    SUBMISSION_CREATED = "submission.created"
    SUBMISSION_SUBMITTED = "submission.submitted"
    APPROVAL_RECORDED = "approval.recorded"
    STATUS_CHANGED = "status.changed"
    STAGE_CHANGED = "stage.changed"
    SPECIAL_APPROVER_ASSIGNED = "special_approver.assigned"
    OFFICER_REASSIGNED = "officer.reassigned"
    DOCUMENT_UPDATED = "document.updated"
    DOCUMENT_REQUESTED = "document.requested"
    COMMENT_ADDED = "comment.added"
    SUBMISSION_SENT_BACK = "submission.sent_back"
    SUBMISSION_CANCELLED = "submission.cancelled"
    SUBMISSION_COMPLETED = "submission.completed"
    SUBMISSION_RESUBMITTED = "submission.resubmitted"


@dataclass(frozen=True)
class Actor:
    """Identity of the person performing an action.

    Attributes:
        role: Role the actor is acting as
        name: Display name recorded on ledger rows and comments
        email: Email recorded on ledger rows; identifies special approvers
        user_id: Optional directory id, checked against assigned officers

    Examples:
        >>> bum = Actor(role=Role.BUM, name="Bimal Silva", email="bimal@example.com")
        >>> bum.display_name
        'Bimal Silva'
    """
    role: Role
    name: str = ""
    email: str = ""
    user_id: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.role.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "role": self.role.value,
            "name": self.name,
            "email": self.email,
        }
        if self.user_id is not None:
            result["userId"] = self.user_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Actor":
        """Create Actor from dict."""
        return cls(
            role=Role.parse(data["role"]),
            name=data.get("name") or data.get("approverName") or "",
            email=data.get("email") or data.get("approverEmail") or "",
            user_id=data.get("userId") or data.get("approverId"),
        )


__all__ = [
    "SubmissionStatus",
    "LOStage",
    "LegalGMStage",
    "Role",
    "Action",
    "ACTION_ALIASES",
    "ApprovalStatus",
    "DocumentStatus",
    "REVIEW_STATUSES",
    "DocumentType",
    "ErrorType",
    "FieldErrorCode",
    "EventType",
    "Actor",
]

"""Submission record and its ledgers.

A ``Submission`` is the unit the engine reads and writes. Form content is an
opaque ``content`` mapping; only status, stages, assignees and the ledgers
below are engine-visible state.

Serialization uses camelCase keys and ISO 8601 timestamps, matching the JSON
the view layer already consumes.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse

from legalhub.types import (
    ApprovalStatus,
    DocumentStatus,
    LegalGMStage,
    LOStage,
    Role,
    SubmissionStatus,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return isoparse(value)


@dataclass
class Party:
    """A contracting party; its type selects the required documents."""
    type: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Party":
        return cls(type=data.get("type", ""), name=data.get("name", ""))


@dataclass
class ApprovalRecord:
    """One Approval Ledger row for a fixed per-form approver role.

    A row is created ``PENDING`` with its submission and is written exactly
    once by the owning role.
    """
    role: Role
    approver_name: str = ""
    approver_email: str = ""
    status: ApprovalStatus = ApprovalStatus.PENDING
    comment: Optional[str] = None
    action_date: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "approverName": self.approver_name,
            "approverEmail": self.approver_email,
            "status": self.status.value,
            "comment": self.comment,
            "actionDate": _iso(self.action_date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalRecord":
        return cls(
            role=Role.parse(data["role"]),
            approver_name=data.get("approverName") or "",
            approver_email=data.get("approverEmail") or "",
            status=ApprovalStatus(data.get("status", ApprovalStatus.PENDING.value)),
            comment=data.get("comment"),
            action_date=_parse_ts(data.get("actionDate")),
        )


@dataclass
class SpecialApproverRecord:
    """A dynamically injected, department-scoped approver."""
    id: str
    approver_email: str
    approver_name: str = ""
    department: str = "Special Approver"
    assigned_by: Role = Role.LEGAL_OFFICER
    status: ApprovalStatus = ApprovalStatus.PENDING
    comment: Optional[str] = None
    assigned_at: Optional[datetime] = None
    action_date: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "approverEmail": self.approver_email,
            "approverName": self.approver_name,
            "department": self.department,
            "assignedBy": self.assigned_by.value,
            "status": self.status.value,
            "comment": self.comment,
            "assignedAt": _iso(self.assigned_at),
            "actionDate": _iso(self.action_date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpecialApproverRecord":
        return cls(
            id=data["id"],
            approver_email=data.get("approverEmail") or "",
            approver_name=data.get("approverName") or "",
            department=data.get("department") or "Special Approver",
            assigned_by=Role.parse(data.get("assignedBy") or Role.LEGAL_OFFICER.value),
            status=ApprovalStatus(data.get("status", ApprovalStatus.PENDING.value)),
            comment=data.get("comment"),
            assigned_at=_parse_ts(data.get("assignedAt")),
            action_date=_parse_ts(data.get("actionDate")),
        )


@dataclass
class DocumentRecord:
    """One Document Registry row.

    ``type`` is either a party-type category from the form configuration or
    one of the ``DocumentType`` values. A missing ``file_url`` means the
    upload has not landed yet, which is not an error.
    """
    id: str
    label: str
    type: str
    status: DocumentStatus = DocumentStatus.NONE
    mandatory: bool = False
    file_url: Optional[str] = None
    comment: Optional[str] = None
    requested_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "type": self.type,
            "status": self.status.value,
            "mandatory": self.mandatory,
            "fileUrl": self.file_url,
            "comment": self.comment,
            "requestedBy": self.requested_by,
            "uploadedAt": _iso(self.uploaded_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentRecord":
        return cls(
            id=data["id"],
            label=data["label"],
            type=data.get("type", ""),
            status=DocumentStatus(data.get("status", DocumentStatus.NONE.value)),
            mandatory=bool(data.get("mandatory", False)),
            file_url=data.get("fileUrl"),
            comment=data.get("comment"),
            requested_by=data.get("requestedBy"),
            uploaded_at=_parse_ts(data.get("uploadedAt")),
        )


@dataclass
class Comment:
    """Append-only note on a submission.

    Workflow actions that have no ledger row (Legal GM final review, Legal
    Officer hand-offs, reassignment) are recorded as comments with ``action``
    set, so the audit log can be rebuilt from ledgers and comments alone.
    """
    id: str
    author_name: str
    author_role: str
    text: str
    created_at: datetime
    action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "authorName": self.author_name,
            "authorRole": self.author_role,
            "text": self.text,
            "createdAt": _iso(self.created_at),
        }
        if self.action is not None:
            result["action"] = self.action
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Comment":
        return cls(
            id=data["id"],
            author_name=data.get("authorName", ""),
            author_role=data.get("authorRole", ""),
            text=data.get("text", ""),
            created_at=_parse_ts(data["createdAt"]),
            action=data.get("action"),
        )


@dataclass
class Submission:
    """One form instance routed through the approval workflow.

    Attributes:
        id: Opaque server-assigned identifier
        submission_no: Human-readable number (``LHD_<yyyyMMddHHmmss>_<seq>[_R<n>]``)
        form_id: Form type; selects the workflow shape
        status: Top-level lifecycle state
        lo_stage: Legal Officer sub-stage
        legal_gm_stage: Which Legal GM review is current
        content: Opaque form-specific fields
        version: Incremented by the store on every commit
    """
    id: str
    submission_no: str
    form_id: int
    form_name: str
    initiator_id: str
    created_at: datetime
    status: SubmissionStatus = SubmissionStatus.PENDING_APPROVAL
    lo_stage: LOStage = LOStage.PENDING_GM
    legal_gm_stage: LegalGMStage = LegalGMStage.INITIAL_REVIEW
    title: str = ""
    company_code: str = ""
    value: str = "0"
    content: Dict[str, Any] = field(default_factory=dict)
    parties: List[Party] = field(default_factory=list)
    approvals: List[ApprovalRecord] = field(default_factory=list)
    special_approvers: List[SpecialApproverRecord] = field(default_factory=list)
    documents: List[DocumentRecord] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    assigned_legal_officer: Optional[str] = None
    previous_legal_officer: Optional[str] = None
    court_officer_id: Optional[str] = None
    reassigned_from_stage: Optional[LOStage] = None
    special_approval_return_status: Optional[SubmissionStatus] = None
    official_use: Dict[str, Any] = field(default_factory=dict)
    parent_id: Optional[str] = None
    is_resubmission: bool = False
    updated_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    version: int = 0

    def approval_for(self, role: Role) -> Optional[ApprovalRecord]:
        for record in self.approvals:
            if record.role == role:
                return record
        return None

    def document(self, document_id: str) -> Optional[DocumentRecord]:
        for doc in self.documents:
            if doc.id == document_id:
                return doc
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase projection returned to callers."""
        return {
            "id": self.id,
            "submissionNo": self.submission_no,
            "formId": self.form_id,
            "formName": self.form_name,
            "initiatorId": self.initiator_id,
            "status": self.status.value,
            "loStage": self.lo_stage.value,
            "legalGmStage": self.legal_gm_stage.value,
            "title": self.title,
            "companyCode": self.company_code,
            "value": self.value,
            "content": copy.deepcopy(self.content),
            "parties": [p.to_dict() for p in self.parties],
            "approvals": [a.to_dict() for a in self.approvals],
            "specialApprovers": [s.to_dict() for s in self.special_approvers],
            "documents": [d.to_dict() for d in self.documents],
            "comments": [c.to_dict() for c in self.comments],
            "assignedLegalOfficer": self.assigned_legal_officer,
            "previousLegalOfficer": self.previous_legal_officer,
            "courtOfficerId": self.court_officer_id,
            "reassignedFromStage": (
                self.reassigned_from_stage.value if self.reassigned_from_stage else None
            ),
            "specialApprovalReturnStatus": (
                self.special_approval_return_status.value
                if self.special_approval_return_status
                else None
            ),
            "officialUse": copy.deepcopy(self.official_use),
            "parentId": self.parent_id,
            "isResubmission": self.is_resubmission,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "dueDate": _iso(self.due_date),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Submission":
        """Deserialize a submission produced by ``to_dict``."""
        reassigned_from = data.get("reassignedFromStage")
        return_status = data.get("specialApprovalReturnStatus")
        return cls(
            id=data["id"],
            submission_no=data["submissionNo"],
            form_id=int(data.get("formId", 1)),
            form_name=data.get("formName", ""),
            initiator_id=data.get("initiatorId", ""),
            created_at=_parse_ts(data["createdAt"]),
            status=SubmissionStatus(data.get("status", SubmissionStatus.PENDING_APPROVAL.value)),
            lo_stage=LOStage(data.get("loStage", LOStage.PENDING_GM.value)),
            legal_gm_stage=LegalGMStage(
                data.get("legalGmStage", LegalGMStage.INITIAL_REVIEW.value)
            ),
            title=data.get("title", ""),
            company_code=data.get("companyCode", ""),
            value=str(data.get("value", "0")),
            content=copy.deepcopy(data.get("content") or {}),
            parties=[Party.from_dict(p) for p in data.get("parties", [])],
            approvals=[ApprovalRecord.from_dict(a) for a in data.get("approvals", [])],
            special_approvers=[
                SpecialApproverRecord.from_dict(s) for s in data.get("specialApprovers", [])
            ],
            documents=[DocumentRecord.from_dict(d) for d in data.get("documents", [])],
            comments=[Comment.from_dict(c) for c in data.get("comments", [])],
            assigned_legal_officer=data.get("assignedLegalOfficer"),
            previous_legal_officer=data.get("previousLegalOfficer"),
            court_officer_id=data.get("courtOfficerId"),
            reassigned_from_stage=LOStage(reassigned_from) if reassigned_from else None,
            special_approval_return_status=(
                SubmissionStatus(return_status) if return_status else None
            ),
            official_use=copy.deepcopy(data.get("officialUse") or {}),
            parent_id=data.get("parentId"),
            is_resubmission=bool(data.get("isResubmission", False)),
            updated_at=_parse_ts(data.get("updatedAt")),
            due_date=_parse_ts(data.get("dueDate")),
            version=int(data.get("version", 0)),
        )


__all__ = [
    "Party",
    "ApprovalRecord",
    "SpecialApproverRecord",
    "DocumentRecord",
    "Comment",
    "Submission",
]

"""Audit log projection.

The audit log is not stored. It is rebuilt from the submission on request by
merging, in time order, the creation event, every resolved Approval Ledger
and Special Approver row, and every comment. The projection is a pure
function of the submission, so repeated calls on an unchanged submission
return equal results.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from legalhub.models import Submission
from legalhub.types import ApprovalStatus

SYSTEM_ACTOR = "System"

APPROVAL_LABELS: Dict[ApprovalStatus, str] = {
    ApprovalStatus.APPROVED: "Approved",
    ApprovalStatus.SENT_BACK: "Sent Back",
    ApprovalStatus.CANCELLED: "Cancelled",
}

# Display labels for comments recorded by workflow actions
ACTION_LABELS: Dict[str, str] = {
    "SUBMIT": "Submitted for approval",
    "APPROVED": "Approved",
    "SENT_BACK": "Sent Back",
    "CANCELLED": "Cancelled",
    "SUBMIT_TO_LEGAL_GM": "Submitted to Legal GM",
    "RETURN_TO_INITIATOR": "Returned to Initiator",
    "ASSIGN_SPECIAL_APPROVER": "Special Approver assigned",
    "ASSIGN_COURT_OFFICER": "Court Officer assigned",
    "SUBMIT_TO_LEGAL_OFFICER": "Submitted to Legal Officer",
    "REASSIGN_OFFICER": "Legal Officer reassigned",
    "ACKNOWLEDGE_HANDOVER": "Handover acknowledged",
    "REQUEST_DOCUMENT": "Additional document requested",
    "COMPLETED": "Completed",
    "RESUBMIT": "Resubmitted",
}

# Tie-break order for entries sharing a timestamp
_KIND_ORDER = {"approval": 0, "special_approval": 1, "comment": 2}


@dataclass(frozen=True)
class LogEntry:
    """One line of the audit log.

    Attributes:
        id: Position in the projected log (creation is 0)
        actor: Display name of who acted
        role: Role they acted as
        action: Human-readable action label
        timestamp: When it happened
        comment: Optional free text
    """
    id: int
    actor: str
    role: str
    action: str
    timestamp: datetime
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "actor": self.actor,
            "role": self.role,
            "action": self.action,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.comment:
            result["comment"] = self.comment
        return result


def project_log(submission: Submission) -> List[LogEntry]:
    """Project the audit log of ``submission``.

    The creation event is always first. Other entries are sorted by
    timestamp; entries with equal timestamps keep ledger rows before special
    approver rows before comments, each in stored order.

    Args:
        submission: The submission to project; it is not modified

    Returns:
        List of LogEntry objects in chronological order
    """
    pending: List[Tuple[datetime, int, int, str, str, str, Optional[str]]] = []

    for index, record in enumerate(submission.approvals):
        if record.action_date is None:
            continue
        pending.append((
            record.action_date,
            _KIND_ORDER["approval"],
            index,
            record.approver_name or record.role.value,
            record.role.value,
            APPROVAL_LABELS.get(record.status, record.status.value),
            record.comment,
        ))

    for index, special in enumerate(submission.special_approvers):
        if special.action_date is None:
            continue
        pending.append((
            special.action_date,
            _KIND_ORDER["special_approval"],
            index,
            special.approver_name or special.approver_email,
            f"Special Approver ({special.department})",
            APPROVAL_LABELS.get(special.status, special.status.value),
            special.comment,
        ))

    for index, comment in enumerate(submission.comments):
        if comment.action is not None:
            label = ACTION_LABELS.get(comment.action, comment.action)
        else:
            label = "Comment"
        pending.append((
            comment.created_at,
            _KIND_ORDER["comment"],
            index,
            comment.author_name,
            comment.author_role,
            label,
            comment.text,
        ))

    pending.sort(key=lambda item: (item[0], item[1], item[2]))

    entries = [
        LogEntry(
            id=0,
            actor=SYSTEM_ACTOR,
            role=SYSTEM_ACTOR,
            action="Submission created",
            timestamp=submission.created_at,
        )
    ]
    for position, (ts, _kind, _index, actor, role, action, text) in enumerate(pending, start=1):
        entries.append(
            LogEntry(id=position, actor=actor, role=role, action=action, timestamp=ts, comment=text)
        )
    return entries


__all__ = ["LogEntry", "project_log", "APPROVAL_LABELS", "ACTION_LABELS"]

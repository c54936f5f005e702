"""Approval Ledger and Special Approver mutation helpers.

These helpers only touch ledger rows. Status changes that follow from a
ledger write (the parallel group completing, every special approver having
signed off) are decided by the engine from the values returned here.
"""

from datetime import datetime
from typing import Iterable, Optional
import uuid

from legalhub.errors import (
    AlreadyActionedError,
    FieldError,
    NotFoundError,
    ValidationError,
)
from legalhub.models import ApprovalRecord, SpecialApproverRecord, Submission
from legalhub.types import Action, Actor, ApprovalStatus, FieldErrorCode, Role

ACTION_TO_APPROVAL_STATUS = {
    Action.APPROVED: ApprovalStatus.APPROVED,
    Action.SENT_BACK: ApprovalStatus.SENT_BACK,
    Action.CANCELLED: ApprovalStatus.CANCELLED,
}


def decision_status(action: Action) -> ApprovalStatus:
    """Map an approve/send-back/cancel action to the ledger status it writes."""
    try:
        return ACTION_TO_APPROVAL_STATUS[action]
    except KeyError:
        raise ValueError(f"Action '{action.value}' does not write a ledger row") from None


def pending_approval(submission: Submission, role: Role) -> ApprovalRecord:
    """Return the role's ledger row, which must still be pending.

    Raises:
        NotFoundError: If the submission has no row for ``role``
        AlreadyActionedError: If the row was already resolved
    """
    record = submission.approval_for(role)
    if record is None:
        raise NotFoundError(
            f"Submission {submission.submission_no} has no approval record for role '{role.value}'"
        )
    if not record.is_pending:
        raise AlreadyActionedError(
            f"Approval for role '{role.value}' was already recorded as '{record.status.value}'"
        )
    return record


def record_decision(
    record: ApprovalRecord,
    action: Action,
    actor: Actor,
    comment: Optional[str],
    now: datetime,
) -> ApprovalRecord:
    """Write the actor's decision onto a pending ledger row."""
    record.status = decision_status(action)
    record.comment = comment or None
    record.action_date = now
    if actor.name:
        record.approver_name = actor.name
    if actor.email:
        record.approver_email = actor.email
    return record


def group_outcome(submission: Submission, roles: Iterable[Role]) -> Optional[ApprovalStatus]:
    """Collective outcome of a parallel approver group.

    Any send-back or cancel decides the group immediately, whatever the
    other rows hold. Otherwise the group is approved only once every row is.

    Returns:
        The deciding status, or None while approvals are still outstanding
    """
    records = [r for r in submission.approvals if r.role in set(roles)]
    for record in records:
        if record.status in (ApprovalStatus.SENT_BACK, ApprovalStatus.CANCELLED):
            return record.status
    if records and all(r.status == ApprovalStatus.APPROVED for r in records):
        return ApprovalStatus.APPROVED
    return None


def add_special_approver(
    submission: Submission,
    email: str,
    name: str,
    assigned_by: Role,
    now: datetime,
    department: Optional[str] = None,
) -> SpecialApproverRecord:
    """Append a pending Special Approver row.

    Raises:
        ValidationError: If no email is given, or the person already has a
            pending row on this submission
    """
    email = (email or "").strip()
    if not email:
        raise ValidationError(
            "A special approver email is required",
            fields=[
                FieldError(
                    path="specialApproverEmail",
                    code=FieldErrorCode.REQUIRED,
                    message="Field 'specialApproverEmail' is required but was not provided",
                )
            ],
        )
    for existing in submission.special_approvers:
        if existing.approver_email.lower() == email.lower() and existing.is_pending:
            raise ValidationError(
                f"{email} is already a pending special approver",
                fields=[
                    FieldError(
                        path="specialApproverEmail",
                        code=FieldErrorCode.INVALID_VALUE,
                        message=f"{email} is already a pending special approver",
                        received=email,
                    )
                ],
            )
    record = SpecialApproverRecord(
        id=f"spa_{uuid.uuid4().hex[:16]}",
        approver_email=email,
        approver_name=name or "",
        department=department or "Special Approver",
        assigned_by=assigned_by,
        assigned_at=now,
    )
    submission.special_approvers.append(record)
    return record


def pending_special_approver(submission: Submission, email: str) -> SpecialApproverRecord:
    """Find the special approver row owned by ``email``.

    A person assigned more than once is matched to their pending row first.

    Raises:
        NotFoundError: If the email has no row on this submission
        AlreadyActionedError: If all of the email's rows are resolved
    """
    email = (email or "").strip().lower()
    matches = [s for s in submission.special_approvers if s.approver_email.lower() == email]
    if not matches:
        raise NotFoundError(f"No special approver '{email}' on submission {submission.submission_no}")
    for record in matches:
        if record.is_pending:
            return record
    raise AlreadyActionedError(
        f"Special approver '{email}' already recorded '{matches[-1].status.value}'"
    )


def record_special_decision(
    record: SpecialApproverRecord,
    action: Action,
    comment: Optional[str],
    now: datetime,
) -> SpecialApproverRecord:
    record.status = decision_status(action)
    record.comment = comment or None
    record.action_date = now
    return record


def all_special_approved(submission: Submission) -> bool:
    """Whether every special approver row is approved."""
    return all(s.status == ApprovalStatus.APPROVED for s in submission.special_approvers)


__all__ = [
    "ACTION_TO_APPROVAL_STATUS",
    "decision_status",
    "pending_approval",
    "record_decision",
    "group_outcome",
    "add_special_approver",
    "pending_special_approver",
    "record_special_decision",
    "all_special_approved",
]

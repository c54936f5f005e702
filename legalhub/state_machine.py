"""Approval workflow state machine for Legal Hub submissions.

This module holds the two declarative tables the engine consults:

- ``VALID_TRANSITIONS``: the top-level status graph. Every status change goes
  through ``WorkflowStateMachine.transition_to``, which refuses edges that are
  not in the graph.
- ``TRANSITION_TABLE``: who may do what, and where. Each ``TransitionRule``
  names a role, an action, the statuses (and optionally Legal Officer
  stages) in which it is legal, whether a comment is mandatory, and the
  engine handler that computes the resulting state.

Usage:
    >>> from legalhub.models import ApprovalRecord, Submission
    >>> from legalhub.types import Action, Role, SubmissionStatus
    >>> from datetime import datetime, timezone
    >>> sub = Submission(id="sub_1", submission_no="LHD_20250101120000_001", form_id=1,
    ...                  form_name="Contract Review Form", initiator_id="u_1",
    ...                  created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    ...                  approvals=[ApprovalRecord(role=Role.BUM)])
    >>> sm = WorkflowStateMachine(sub)
    >>> [a.value for a in sm.allowed_actions(Role.BUM)]
    ['APPROVED', 'SENT_BACK', 'CANCELLED']
    >>> sm.resolve(Role.CEO, Action.APPROVED)
    Traceback (most recent call last):
    ...
    legalhub.errors.InvalidActorError: Role 'CEO' cannot act on a submission in PENDING_APPROVAL (stage PENDING_GM)
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Set

from legalhub.errors import InvalidActorError, InvalidStateError
from legalhub.models import Submission
from legalhub.types import (
    Action,
    ApprovalStatus,
    LegalGMStage,
    LOStage,
    Role,
    SubmissionStatus,
)


# Valid top-level status changes; terminal statuses map to the empty set
VALID_TRANSITIONS: Dict[SubmissionStatus, Set[SubmissionStatus]] = {
    SubmissionStatus.DRAFT: {
        SubmissionStatus.PENDING_APPROVAL,
        SubmissionStatus.CANCELLED,
    },
    SubmissionStatus.PENDING_APPROVAL: {
        SubmissionStatus.PENDING_CEO,
        SubmissionStatus.PENDING_LEGAL_GM,
        SubmissionStatus.SENT_BACK,
        SubmissionStatus.CANCELLED,
    },
    SubmissionStatus.PENDING_CEO: {
        SubmissionStatus.PENDING_LEGAL_GM,
        SubmissionStatus.SENT_BACK,
    },
    SubmissionStatus.PENDING_LEGAL_GM: {
        SubmissionStatus.PENDING_LEGAL_OFFICER,
        SubmissionStatus.SENT_BACK,
        SubmissionStatus.CANCELLED,
    },
    SubmissionStatus.PENDING_LEGAL_OFFICER: {
        SubmissionStatus.PENDING_LEGAL_GM_FINAL,
        SubmissionStatus.PENDING_SPECIAL_APPROVER,
        SubmissionStatus.PENDING_COURT_OFFICER,
        SubmissionStatus.COMPLETED,
        SubmissionStatus.SENT_BACK,
        SubmissionStatus.CANCELLED,
    },
    SubmissionStatus.PENDING_COURT_OFFICER: {
        SubmissionStatus.PENDING_LEGAL_OFFICER,
        SubmissionStatus.PENDING_SPECIAL_APPROVER,
    },
    SubmissionStatus.PENDING_SPECIAL_APPROVER: {
        SubmissionStatus.PENDING_LEGAL_OFFICER,
        SubmissionStatus.PENDING_COURT_OFFICER,
        SubmissionStatus.PENDING_LEGAL_GM_FINAL,
        SubmissionStatus.SENT_BACK,
    },
    SubmissionStatus.PENDING_LEGAL_GM_FINAL: {
        SubmissionStatus.PENDING_LEGAL_OFFICER,
        SubmissionStatus.PENDING_SPECIAL_APPROVER,
        SubmissionStatus.SENT_BACK,
        SubmissionStatus.CANCELLED,
    },
    SubmissionStatus.SENT_BACK: {
        SubmissionStatus.RESUBMITTED,
    },
    # Terminal statuses - no transitions allowed
    SubmissionStatus.COMPLETED: set(),
    SubmissionStatus.CANCELLED: set(),
    SubmissionStatus.RESUBMITTED: set(),
}

TERMINAL_STATUSES: FrozenSet[SubmissionStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

# Stages in which the Legal Officer may annotate documents
DOCUMENT_REVIEW_STAGES: FrozenSet[LOStage] = frozenset({
    LOStage.ACTIVE,
    LOStage.ASSIGN_COURT_OFFICER,
    LOStage.REVIEW_FOR_GM,
})

COMMENT_REQUIRED_ACTIONS: FrozenSet[Action] = frozenset({
    Action.SENT_BACK,
    Action.CANCELLED,
    Action.RETURN_TO_INITIATOR,
})


@dataclass(frozen=True)
class TransitionRule:
    """One row of the transition table.

    Attributes:
        role: Role allowed to perform the action
        action: The action
        statuses: Top-level statuses in which the rule applies
        stages: Legal Officer stages in which the rule applies (None = any)
        handler: Name of the engine handler computing the next state
        ledger: Whether the action writes the role's Approval Ledger row
    """
    role: Role
    action: Action
    statuses: FrozenSet[SubmissionStatus]
    handler: str
    stages: Optional[FrozenSet[LOStage]] = None
    ledger: bool = False

    @property
    def requires_comment(self) -> bool:
        return self.action in COMMENT_REQUIRED_ACTIONS

    def applies_to(self, status: SubmissionStatus, stage: LOStage) -> bool:
        if status not in self.statuses:
            return False
        return self.stages is None or stage in self.stages


def _rules(
    role: Role,
    actions: List[Action],
    statuses: Set[SubmissionStatus],
    handler: str,
    stages: Optional[Set[LOStage]] = None,
    ledger: bool = False,
) -> List[TransitionRule]:
    return [
        TransitionRule(
            role=role,
            action=action,
            statuses=frozenset(statuses),
            handler=handler,
            stages=frozenset(stages) if stages is not None else None,
            ledger=ledger,
        )
        for action in actions
    ]


_DECISIONS = [Action.APPROVED, Action.SENT_BACK, Action.CANCELLED]
_OFFICER_WORKING_STAGES = {LOStage.ACTIVE, LOStage.REVIEW_FOR_GM}

TRANSITION_TABLE: List[TransitionRule] = [
    # Initiator
    *_rules(Role.INITIATOR, [Action.SUBMIT], {SubmissionStatus.DRAFT}, "submit_draft"),
    *_rules(Role.INITIATOR, [Action.RESUBMIT], {SubmissionStatus.SENT_BACK}, "resubmit"),
    # First-level approvers, in parallel
    *[
        rule
        for role in (Role.BUM, Role.FBP, Role.CLUSTER_HEAD)
        for rule in _rules(
            role, _DECISIONS, {SubmissionStatus.PENDING_APPROVAL}, "first_level", ledger=True
        )
    ],
    # CEO (forms with a CEO hop)
    *_rules(
        Role.CEO,
        [Action.APPROVED, Action.SENT_BACK],
        {SubmissionStatus.PENDING_CEO},
        "ceo_review",
        ledger=True,
    ),
    # Legal GM, initial review
    *_rules(
        Role.LEGAL_GM, _DECISIONS, {SubmissionStatus.PENDING_LEGAL_GM}, "gm_initial_review",
        ledger=True,
    ),
    # Legal GM, final approval
    *_rules(Role.LEGAL_GM, _DECISIONS, {SubmissionStatus.PENDING_LEGAL_GM_FINAL}, "gm_final_review"),
    *_rules(
        Role.LEGAL_GM,
        [Action.ASSIGN_SPECIAL_APPROVER],
        {SubmissionStatus.PENDING_LEGAL_GM_FINAL},
        "assign_special_approver",
    ),
    *_rules(
        Role.LEGAL_GM,
        [Action.REASSIGN_OFFICER],
        {SubmissionStatus.PENDING_LEGAL_OFFICER, SubmissionStatus.PENDING_LEGAL_GM_FINAL},
        "reassign_officer",
    ),
    # Legal Officer, working stages
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.SUBMIT_TO_LEGAL_GM],
        {SubmissionStatus.PENDING_LEGAL_OFFICER},
        "submit_to_legal_gm",
        stages=_OFFICER_WORKING_STAGES,
    ),
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.ASSIGN_SPECIAL_APPROVER],
        {SubmissionStatus.PENDING_LEGAL_OFFICER},
        "assign_special_approver",
        stages=_OFFICER_WORKING_STAGES,
    ),
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.CANCELLED],
        {SubmissionStatus.PENDING_LEGAL_OFFICER},
        "officer_cancel",
        stages=_OFFICER_WORKING_STAGES,
    ),
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.RETURN_TO_INITIATOR],
        {SubmissionStatus.PENDING_LEGAL_OFFICER},
        "return_to_initiator",
        stages=set(DOCUMENT_REVIEW_STAGES),
    ),
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.ASSIGN_COURT_OFFICER],
        {SubmissionStatus.PENDING_LEGAL_OFFICER},
        "assign_court_officer",
        stages={LOStage.ASSIGN_COURT_OFFICER},
    ),
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.SET_DOCUMENT_STATUS, Action.REQUEST_DOCUMENT],
        {SubmissionStatus.PENDING_LEGAL_OFFICER},
        "document_review",
        stages=set(DOCUMENT_REVIEW_STAGES),
    ),
    # Legal Officer, after reassignment
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.ACKNOWLEDGE_HANDOVER],
        {SubmissionStatus.PENDING_LEGAL_OFFICER, SubmissionStatus.PENDING_LEGAL_GM_FINAL},
        "acknowledge_handover",
        stages={LOStage.REASSIGNED},
    ),
    # Legal Officer, finalization
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.SAVE_OFFICIAL_USE],
        {SubmissionStatus.PENDING_LEGAL_OFFICER},
        "save_official_use",
        stages={LOStage.POST_GM_APPROVAL},
    ),
    *_rules(
        Role.LEGAL_OFFICER,
        [Action.COMPLETED],
        {SubmissionStatus.PENDING_LEGAL_OFFICER},
        "complete",
        stages={LOStage.POST_GM_APPROVAL},
    ),
    # Court Officer (litigation)
    *_rules(
        Role.COURT_OFFICER,
        [Action.SUBMIT_TO_LEGAL_OFFICER],
        {SubmissionStatus.PENDING_COURT_OFFICER},
        "court_officer_submit",
    ),
    *_rules(
        Role.COURT_OFFICER,
        [Action.ASSIGN_SPECIAL_APPROVER],
        {SubmissionStatus.PENDING_COURT_OFFICER},
        "assign_special_approver",
    ),
    # Special approvers
    *_rules(
        Role.SPECIAL_APPROVER,
        _DECISIONS,
        {SubmissionStatus.PENDING_SPECIAL_APPROVER},
        "special_approval",
    ),
]


@dataclass
class WorkflowStateMachine:
    """State machine view over one submission.

    Resolves ``(role, action)`` requests against the transition table and
    performs guarded status changes. It mutates the wrapped submission in
    place; the engine only ever wraps a private working copy.

    Attributes:
        submission: The submission being driven
    """

    submission: Submission

    @property
    def status(self) -> SubmissionStatus:
        return self.submission.status

    @property
    def stage(self) -> LOStage:
        return self.submission.lo_stage

    def is_terminal(self) -> bool:
        """Check if the current status is terminal (completed, cancelled, resubmitted)."""
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, target: SubmissionStatus) -> bool:
        """Check if moving to ``target`` is an edge of the status graph."""
        return target in VALID_TRANSITIONS.get(self.status, set())

    def transition_to(self, target: SubmissionStatus) -> None:
        """Move the submission to ``target``.

        Raises:
            InvalidStateError: If the status graph has no such edge
        """
        if target == self.status:
            return
        if not self.can_transition_to(target):
            valid = VALID_TRANSITIONS[self.status]
            raise InvalidStateError(
                (
                    f"Invalid status transition: cannot move from '{self.status.value}' "
                    f"to '{target.value}'. Valid targets are: "
                    f"{', '.join(sorted(s.value for s in valid))}"
                )
                if valid
                else (
                    f"Invalid status transition: '{self.status.value}' is a terminal "
                    f"status, no transitions are allowed."
                ),
                submission_id=self.submission.id,
                status=self.status.value,
            )
        self.submission.status = target

    def set_officer_stage(self, stage: LOStage) -> None:
        """Set the Legal Officer stage, respecting a pending handover.

        While the submission is ``REASSIGNED``, the new stage is remembered
        and applied when the new officer acknowledges.
        """
        if self.submission.lo_stage == LOStage.REASSIGNED and stage != LOStage.REASSIGNED:
            self.submission.reassigned_from_stage = stage
            return
        self.submission.lo_stage = stage

    def set_gm_stage(self, stage: LegalGMStage) -> None:
        self.submission.legal_gm_stage = stage

    def active_rules(self) -> List[TransitionRule]:
        """Rules applicable in the current status and stage.

        A ledger-backed rule applies only while its role has a pending ledger
        row: roles outside the form's approver set, and approvers who already
        decided, are not actors.
        """
        return [
            r
            for r in TRANSITION_TABLE
            if r.applies_to(self.status, self.stage) and self._has_pending_row(r)
        ]

    def _has_pending_row(self, rule: TransitionRule) -> bool:
        if not rule.ledger:
            return True
        record = self.submission.approval_for(rule.role)
        return record is not None and record.is_pending

    def resolved_decision(self, role: Role) -> Optional[ApprovalStatus]:
        """The role's recorded ledger decision, or None if it has no resolved row."""
        record = self.submission.approval_for(role)
        if record is None or record.is_pending:
            return None
        return record.status

    def required_actors(self) -> Set[Role]:
        """Roles able to act on the submission right now."""
        return {r.role for r in self.active_rules()}

    def allowed_actions(self, role: Role) -> List[Action]:
        """Actions ``role`` may request right now, in table order."""
        return [r.action for r in self.active_rules() if r.role == role]

    def resolve(self, role: Role, action: Action) -> TransitionRule:
        """Find the rule authorising ``role`` to perform ``action``.

        Raises:
            InvalidStateError: If nobody may act in the current state, or the
                role may act but not with this action
            InvalidActorError: If another role is the required actor
        """
        active = self.active_rules()
        context = f"{self.status.value} (stage {self.stage.value})"
        if not active:
            raise InvalidStateError(
                f"No actions are possible on a submission in {context}",
                submission_id=self.submission.id,
                status=self.status.value,
            )
        role_rules = [r for r in active if r.role == role]
        if not role_rules:
            raise InvalidActorError(
                f"Role '{role.value}' cannot act on a submission in {context}",
                submission_id=self.submission.id,
                status=self.status.value,
            )
        for rule in role_rules:
            if rule.action == action:
                return rule
        raise InvalidStateError(
            f"Action '{action.value}' is not allowed for role '{role.value}' in {context}; "
            f"allowed: {', '.join(r.action.value for r in role_rules)}",
            submission_id=self.submission.id,
            status=self.status.value,
        )


def is_document_reviewable(submission: Submission) -> bool:
    """Whether reviewer annotations may be written to the submission's documents."""
    return (
        submission.status == SubmissionStatus.PENDING_LEGAL_OFFICER
        and submission.lo_stage in DOCUMENT_REVIEW_STAGES
    )


__all__ = [
    "VALID_TRANSITIONS",
    "TERMINAL_STATUSES",
    "DOCUMENT_REVIEW_STAGES",
    "COMMENT_REQUIRED_ACTIONS",
    "TransitionRule",
    "TRANSITION_TABLE",
    "WorkflowStateMachine",
    "is_document_reviewable",
]

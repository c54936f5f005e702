"""Unit tests for Approval Ledger and Special Approver helpers."""

import pytest

from legalhub.errors import AlreadyActionedError, NotFoundError, ValidationError
from legalhub.ledger import (
    add_special_approver,
    all_special_approved,
    decision_status,
    group_outcome,
    pending_approval,
    pending_special_approver,
    record_decision,
    record_special_decision,
)
from legalhub.types import Action, Actor, ApprovalStatus, FieldErrorCode, Role

from tests.factories import FIXED_NOW, make_submission

PARALLEL = (Role.BUM, Role.FBP, Role.CLUSTER_HEAD)


class TestPendingApproval:
    """Test looking up a role's ledger row."""

    def test_returns_pending_row(self):
        """Should return the role's pending row."""
        record = pending_approval(make_submission(), Role.FBP)
        assert record.role == Role.FBP
        assert record.is_pending

    def test_missing_role_is_not_found(self):
        """A role without a row is NotFound."""
        with pytest.raises(NotFoundError):
            pending_approval(make_submission(), Role.CEO)

    def test_resolved_row_is_already_actioned(self):
        """A resolved row cannot be acted on again."""
        sub = make_submission()
        sub.approval_for(Role.BUM).status = ApprovalStatus.SENT_BACK
        with pytest.raises(AlreadyActionedError) as exc_info:
            pending_approval(sub, Role.BUM)
        assert "SENT_BACK" in exc_info.value.message


class TestRecordDecision:
    """Test writing a decision onto a row."""

    def test_writes_status_comment_and_date(self):
        """Should write status, comment, action date and approver identity."""
        sub = make_submission()
        record = pending_approval(sub, Role.BUM)
        actor = Actor(role=Role.BUM, name="Bimal Silva", email="bimal@example.com")
        record_decision(record, Action.SENT_BACK, actor, "Missing VAT certificate", FIXED_NOW)
        assert record.status == ApprovalStatus.SENT_BACK
        assert record.comment == "Missing VAT certificate"
        assert record.action_date == FIXED_NOW
        assert record.approver_name == "Bimal Silva"
        assert record.approver_email == "bimal@example.com"

    def test_empty_comment_stored_as_none(self):
        """An empty approval comment is stored as None."""
        record = pending_approval(make_submission(), Role.BUM)
        record_decision(record, Action.APPROVED, Actor(role=Role.BUM), "", FIXED_NOW)
        assert record.comment is None

    def test_decision_status_rejects_non_decisions(self):
        """Only approve, send back and cancel write ledger rows."""
        assert decision_status(Action.CANCELLED) == ApprovalStatus.CANCELLED
        with pytest.raises(ValueError):
            decision_status(Action.SUBMIT)


class TestGroupOutcome:
    """Test the parallel group's collective outcome."""

    def test_pending_until_all_approved(self):
        """The group is undecided while any approval is outstanding."""
        sub = make_submission()
        sub.approval_for(Role.BUM).status = ApprovalStatus.APPROVED
        sub.approval_for(Role.FBP).status = ApprovalStatus.APPROVED
        assert group_outcome(sub, PARALLEL) is None

    def test_all_approved(self):
        """The group is approved once every row is approved."""
        sub = make_submission()
        for role in PARALLEL:
            sub.approval_for(role).status = ApprovalStatus.APPROVED
        assert group_outcome(sub, PARALLEL) == ApprovalStatus.APPROVED

    def test_single_send_back_decides(self):
        """One send-back decides the group whatever the others hold."""
        sub = make_submission()
        sub.approval_for(Role.CLUSTER_HEAD).status = ApprovalStatus.SENT_BACK
        assert group_outcome(sub, PARALLEL) == ApprovalStatus.SENT_BACK

    def test_single_cancel_decides(self):
        """One cancel decides the group even after others approved."""
        sub = make_submission()
        sub.approval_for(Role.BUM).status = ApprovalStatus.APPROVED
        sub.approval_for(Role.FBP).status = ApprovalStatus.CANCELLED
        assert group_outcome(sub, PARALLEL) == ApprovalStatus.CANCELLED

    def test_legal_gm_row_not_part_of_group(self):
        """Rows outside the group are ignored."""
        sub = make_submission()
        sub.approval_for(Role.LEGAL_GM).status = ApprovalStatus.SENT_BACK
        assert group_outcome(sub, PARALLEL) is None


class TestSpecialApprovers:
    """Test special approver rows."""

    def test_add_special_approver(self):
        """Should append a pending row with the department."""
        sub = make_submission()
        record = add_special_approver(
            sub, "sa@example.com", "Finance Head", Role.LEGAL_OFFICER, FIXED_NOW, department="Finance"
        )
        assert record.id.startswith("spa_")
        assert record.status == ApprovalStatus.PENDING
        assert record.department == "Finance"
        assert record.assigned_by == Role.LEGAL_OFFICER
        assert sub.special_approvers == [record]

    def test_default_department(self):
        """Without a department the row is labelled as a special approver."""
        record = add_special_approver(make_submission(), "sa@example.com", "", Role.LEGAL_GM, FIXED_NOW)
        assert record.department == "Special Approver"

    def test_email_required(self):
        """An email is required to identify the approver."""
        with pytest.raises(ValidationError) as exc_info:
            add_special_approver(make_submission(), "  ", "X", Role.LEGAL_OFFICER, FIXED_NOW)
        assert exc_info.value.missing_fields == ["specialApproverEmail"]

    def test_duplicate_pending_rejected(self):
        """The same person cannot hold two pending rows."""
        sub = make_submission()
        add_special_approver(sub, "sa@example.com", "", Role.LEGAL_OFFICER, FIXED_NOW)
        with pytest.raises(ValidationError) as exc_info:
            add_special_approver(sub, "SA@example.com", "", Role.LEGAL_OFFICER, FIXED_NOW)
        assert exc_info.value.fields[0].code == FieldErrorCode.INVALID_VALUE

    def test_pending_lookup_is_case_insensitive(self):
        """Special approvers are matched by email, ignoring case."""
        sub = make_submission()
        add_special_approver(sub, "sa@example.com", "", Role.LEGAL_OFFICER, FIXED_NOW)
        assert pending_special_approver(sub, "SA@Example.com").approver_email == "sa@example.com"

    def test_unknown_email_is_not_found(self):
        """An email without a row is NotFound."""
        with pytest.raises(NotFoundError):
            pending_special_approver(make_submission(), "nobody@example.com")

    def test_resolved_row_is_already_actioned(self):
        """A special approver cannot decide twice."""
        sub = make_submission()
        record = add_special_approver(sub, "sa@example.com", "", Role.LEGAL_OFFICER, FIXED_NOW)
        record_special_decision(record, Action.APPROVED, None, FIXED_NOW)
        with pytest.raises(AlreadyActionedError):
            pending_special_approver(sub, "sa@example.com")

    def test_all_special_approved(self):
        """All rows must be approved."""
        sub = make_submission()
        first = add_special_approver(sub, "a@example.com", "", Role.LEGAL_OFFICER, FIXED_NOW)
        add_special_approver(sub, "b@example.com", "", Role.LEGAL_OFFICER, FIXED_NOW)
        record_special_decision(first, Action.APPROVED, "ok", FIXED_NOW)
        assert not all_special_approved(sub)
        record_special_decision(sub.special_approvers[1], Action.APPROVED, None, FIXED_NOW)
        assert all_special_approved(sub)

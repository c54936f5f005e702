"""Scenario tests for the workflow engine.

Tests cover:
- Submission creation (numbering, ledger, documents, SLA due date)
- First-level parallel approvals, send-back and cancellation races
- CEO hop (Form 2) and Court Officer routing (Form 3)
- Legal GM initial and final reviews, officer reassignment and handover
- Legal Officer document review, return to initiator and completion
- Special approvers injected by the Legal Officer, Court Officer and Legal GM
- Draft submission and resubmission chains
"""

import pytest

from legalhub.audit import project_log
from legalhub.collaborators import StaticFormConfiguration
from legalhub.engine import WorkflowEngine
from legalhub.errors import (
    AlreadyActionedError,
    InvalidActorError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from legalhub.types import (
    Action,
    Actor,
    ApprovalStatus,
    DocumentStatus,
    DocumentType,
    FieldErrorCode,
    LegalGMStage,
    LOStage,
    Role,
    SubmissionStatus,
)

from tests.factories import (
    FIXED_NOW,
    FORM1_OFFICIAL_USE,
    SECOND_SPECIAL_APPROVER_EMAIL,
    SPECIAL_APPROVER_EMAIL,
    FakeClock,
    act,
    creation_payload,
    make_engine,
    make_settings,
    new_submission,
    to_gm_final,
    to_legal_gm,
    to_legal_officer,
    to_post_gm_approval,
)


class TestCreateSubmission:
    """Test building new submissions."""

    def test_initial_state(self):
        """A new submission waits for the first-level approvers."""
        sub = new_submission(make_engine())
        assert sub.submission_no == "LHD_20250101120000_001"
        assert sub.status == SubmissionStatus.PENDING_APPROVAL
        assert sub.lo_stage == LOStage.PENDING_GM
        assert sub.legal_gm_stage == LegalGMStage.INITIAL_REVIEW
        assert sub.form_name == "Contract Review Form"
        assert sub.created_at == FIXED_NOW

    def test_ledger_rows_follow_form_shape(self):
        """Each form gets one pending row per approver role."""
        engine = make_engine()
        form1 = new_submission(engine, form_id=1)
        form2 = new_submission(engine, form_id=2)
        form3 = new_submission(engine, form_id=3)
        assert [r.role for r in form1.approvals] == [
            Role.BUM, Role.FBP, Role.CLUSTER_HEAD, Role.LEGAL_GM,
        ]
        assert [r.role for r in form2.approvals] == [
            Role.BUM, Role.FBP, Role.CLUSTER_HEAD, Role.CEO, Role.LEGAL_GM,
        ]
        assert [r.role for r in form3.approvals] == [Role.BUM, Role.FBP, Role.LEGAL_GM]
        assert all(r.status == ApprovalStatus.PENDING for r in form1.approvals)

    def test_documents_built_for_party_types(self):
        """Company documents plus the Common ones are required."""
        sub = new_submission(make_engine())
        assert len(sub.documents) == 8
        assert sum(1 for d in sub.documents if d.mandatory) == 6
        assert "Partnership Agreement" not in [d.label for d in sub.documents]

    def test_due_date_uses_sla(self):
        """The due date is the creation time plus the SLA."""
        sub = new_submission(make_engine(sla_days=7))
        assert (sub.due_date - sub.created_at).days == 7

    def test_named_approver_comes_from_directory(self):
        """A chosen approver's name and email fill the ledger row."""
        sub = new_submission(make_engine(), bumId="bum_1")
        bum = sub.approval_for(Role.BUM)
        assert bum.approver_name == "Bimal Silva"
        assert bum.approver_email == "bimal@example.com"

    def test_unknown_legal_officer_rejected(self):
        """A pre-assigned officer must be an active Legal Officer."""
        with pytest.raises(ValidationError) as exc_info:
            new_submission(make_engine(), legalOfficerId="lo_9")
        assert exc_info.value.fields[0].path == "legalOfficerId"

    def test_invalid_payload_rejected(self):
        """Missing required keys are reported together."""
        payload = creation_payload()
        del payload["title"]
        with pytest.raises(ValidationError) as exc_info:
            make_engine().create_submission(payload)
        assert exc_info.value.missing_fields == ["title"]

    def test_sequence_and_prefix(self):
        """The daily sequence and prefix shape the number."""
        engine = make_engine(submission_prefix="DIMO")
        sub = engine.create_submission(creation_payload(), sequence=12)
        assert sub.submission_no == "DIMO_20250101120000_012"


class TestFirstLevelApproval:
    """Test the parallel BUM / FBP / Cluster Head group."""

    def test_all_approve_moves_to_legal_gm(self):
        """The group approves only when the last approver does."""
        engine = make_engine()
        sub = new_submission(engine)
        sub = act(engine, sub, Role.CLUSTER_HEAD, Action.APPROVED)
        sub = act(engine, sub, Role.FBP, Action.APPROVED)
        assert sub.status == SubmissionStatus.PENDING_APPROVAL
        sub = act(engine, sub, Role.BUM, Action.APPROVED, name="Bimal Silva")
        assert sub.status == SubmissionStatus.PENDING_LEGAL_GM
        assert sub.approval_for(Role.BUM).approver_name == "Bimal Silva"
        assert sub.approval_for(Role.BUM).action_date is not None

    def test_send_back_decides_immediately(self):
        """One send-back returns the submission whatever the others did."""
        engine = make_engine()
        sub = new_submission(engine)
        sub = act(engine, sub, Role.BUM, Action.APPROVED)
        sub = act(engine, sub, Role.FBP, Action.SENT_BACK, comment="VAT certificate missing")
        assert sub.status == SubmissionStatus.SENT_BACK
        assert sub.approval_for(Role.FBP).comment == "VAT certificate missing"
        assert sub.approval_for(Role.CLUSTER_HEAD).status == ApprovalStatus.PENDING

    def test_late_approver_cannot_resurrect(self):
        """After a send-back the remaining approver is no longer an actor."""
        engine = make_engine()
        sub = new_submission(engine)
        sub = act(engine, sub, Role.FBP, Action.SENT_BACK, comment="No")
        with pytest.raises(InvalidActorError):
            act(engine, sub, Role.CLUSTER_HEAD, Action.APPROVED)
        assert sub.status == SubmissionStatus.SENT_BACK

    def test_second_decision_is_already_actioned(self):
        """An approver who decided cannot decide again."""
        engine = make_engine()
        sub = act(engine, new_submission(engine), Role.BUM, Action.APPROVED)
        with pytest.raises(AlreadyActionedError) as exc_info:
            act(engine, sub, Role.BUM, Action.SENT_BACK, comment="changed my mind")
        assert exc_info.value.submission_id == sub.id
        assert exc_info.value.status == "PENDING_APPROVAL"

    def test_first_cancel_wins(self):
        """A cancel after an approval cancels the submission."""
        engine = make_engine()
        sub = new_submission(engine)
        sub = act(engine, sub, Role.BUM, Action.APPROVED)
        sub = act(engine, sub, Role.FBP, Action.CANCELLED, comment="Deal abandoned")
        assert sub.status == SubmissionStatus.CANCELLED
        assert sub.approval_for(Role.CLUSTER_HEAD).status == ApprovalStatus.PENDING
        with pytest.raises(InvalidStateError):
            act(engine, sub, Role.CLUSTER_HEAD, Action.APPROVED)

    def test_comment_required_for_send_back(self):
        """Send-back and cancel need a non-blank comment."""
        engine = make_engine()
        sub = new_submission(engine)
        with pytest.raises(ValidationError) as exc_info:
            act(engine, sub, Role.BUM, Action.SENT_BACK, comment="   ")
        assert exc_info.value.missing_fields == ["comment"]

    def test_wrong_role_is_invalid_actor(self):
        """The Legal GM cannot act before the first level is done."""
        engine = make_engine()
        with pytest.raises(InvalidActorError):
            act(engine, new_submission(engine), Role.LEGAL_GM, Action.APPROVED)

    def test_input_is_never_mutated(self):
        """Successful and failed actions leave the input untouched."""
        engine = make_engine()
        sub = new_submission(engine)
        snapshot = sub.to_dict()
        act(engine, sub, Role.BUM, Action.APPROVED)
        with pytest.raises(ValidationError):
            act(engine, sub, Role.FBP, Action.CANCELLED)
        assert sub.to_dict() == snapshot

    def test_action_strings_are_parsed(self):
        """Verb forms from older clients are accepted."""
        engine = make_engine()
        outcome = engine.apply_action(new_submission(engine), Actor(role=Role.BUM), "approve")
        assert outcome.action == Action.APPROVED
        assert outcome.submission.approval_for(Role.BUM).status == ApprovalStatus.APPROVED


class TestApplyApproval:
    """Test the approval-only entry point."""

    def test_records_decision(self):
        """Should write the ledger row for the given role."""
        engine = make_engine()
        sub = engine.apply_approval(new_submission(engine), Role.FBP, Action.APPROVED)
        assert sub.approval_for(Role.FBP).status == ApprovalStatus.APPROVED

    def test_non_decision_rejected(self):
        """Only approve, send back and cancel are approvals."""
        engine = make_engine()
        with pytest.raises(ValidationError):
            engine.apply_approval(new_submission(engine), Role.BUM, Action.COMPLETED)

    def test_actor_must_match_role(self):
        """An actor cannot decide for another role."""
        engine = make_engine()
        with pytest.raises(InvalidActorError):
            engine.apply_approval(
                new_submission(engine), Role.BUM, Action.APPROVED, actor=Actor(role=Role.FBP)
            )


class TestCeoReview:
    """Test the CEO hop on Form 2."""

    def test_parallel_approval_goes_to_ceo(self):
        """Form 2 waits for the CEO before the Legal GM."""
        engine = make_engine()
        sub = new_submission(engine, form_id=2)
        for role in (Role.BUM, Role.FBP, Role.CLUSTER_HEAD):
            sub = act(engine, sub, role, Action.APPROVED)
        assert sub.status == SubmissionStatus.PENDING_CEO
        assert engine.required_actors(sub) == {Role.CEO}
        sub = act(engine, sub, Role.CEO, Action.APPROVED)
        assert sub.status == SubmissionStatus.PENDING_LEGAL_GM

    def test_ceo_send_back(self):
        """The CEO may send the submission back."""
        engine = make_engine()
        sub = new_submission(engine, form_id=2)
        for role in (Role.BUM, Role.FBP, Role.CLUSTER_HEAD):
            sub = act(engine, sub, role, Action.APPROVED)
        sub = act(engine, sub, Role.CEO, Action.SENT_BACK, comment="Rent too high")
        assert sub.status == SubmissionStatus.SENT_BACK
        assert sub.approval_for(Role.CEO).status == ApprovalStatus.SENT_BACK

    def test_ceo_cannot_cancel(self):
        """Cancellation is not a CEO action."""
        engine = make_engine()
        sub = new_submission(engine, form_id=2)
        for role in (Role.BUM, Role.FBP, Role.CLUSTER_HEAD):
            sub = act(engine, sub, role, Action.APPROVED)
        with pytest.raises(InvalidStateError):
            act(engine, sub, Role.CEO, Action.CANCELLED, comment="no")


class TestLegalGmInitialReview:
    """Test the Legal GM's initial review."""

    def test_approve_assigns_officer(self):
        """Approval assigns the Legal Officer and activates them."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER
        assert sub.lo_stage == LOStage.ACTIVE
        assert sub.assigned_legal_officer == "lo_1"
        assert sub.approval_for(Role.LEGAL_GM).status == ApprovalStatus.APPROVED

    def test_officer_required(self):
        """Approval without an officer is rejected and nothing changes."""
        engine = make_engine()
        sub = to_legal_gm(engine, new_submission(engine))
        with pytest.raises(ValidationError) as exc_info:
            act(engine, sub, Role.LEGAL_GM, Action.APPROVED)
        assert exc_info.value.missing_fields == ["assignedOfficer"]
        assert sub.approval_for(Role.LEGAL_GM).is_pending

    def test_inactive_officer_rejected(self):
        """An inactive Legal Officer cannot be assigned."""
        engine = make_engine()
        sub = to_legal_gm(engine, new_submission(engine))
        with pytest.raises(ValidationError) as exc_info:
            act(engine, sub, Role.LEGAL_GM, Action.APPROVED, assignedOfficer="lo_9")
        assert exc_info.value.fields[0].code == FieldErrorCode.INVALID_VALUE

    def test_preassigned_officer_is_kept(self):
        """An officer chosen at creation is used when none is given."""
        engine = make_engine()
        sub = to_legal_gm(engine, new_submission(engine, legalOfficerId="lo_2"))
        sub = act(engine, sub, Role.LEGAL_GM, Action.APPROVED)
        assert sub.assigned_legal_officer == "lo_2"

    def test_without_directory_any_officer_is_accepted(self):
        """With no directory configured, assignees are not checked."""
        engine = WorkflowEngine(
            settings=make_settings(), form_config=StaticFormConfiguration(), clock=FakeClock()
        )
        sub = to_legal_gm(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_GM, Action.APPROVED, assignedOfficer="anyone")
        assert sub.assigned_legal_officer == "anyone"

    def test_cancel(self):
        """The Legal GM may cancel at the initial review."""
        engine = make_engine()
        sub = to_legal_gm(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_GM, Action.CANCELLED, comment="Out of scope")
        assert sub.status == SubmissionStatus.CANCELLED
        assert sub.approval_for(Role.LEGAL_GM).status == ApprovalStatus.CANCELLED


class TestLegalOfficerAndFinalReview:
    """Test the Legal Officer's work and the Legal GM's final review."""

    def test_submit_to_legal_gm(self):
        """Submitting moves to the final review and keeps the officer stage."""
        engine = make_engine()
        sub = to_gm_final(engine, new_submission(engine))
        assert sub.status == SubmissionStatus.PENDING_LEGAL_GM_FINAL
        assert sub.legal_gm_stage == LegalGMStage.FINAL_APPROVAL
        assert sub.lo_stage == LOStage.ACTIVE
        assert sub.comments[-1].action == "SUBMIT_TO_LEGAL_GM"

    def test_final_approval_unlocks_completion(self):
        """Final approval hands the matter back for finalization."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER
        assert sub.lo_stage == LOStage.POST_GM_APPROVAL
        assert set(engine.allowed_actions(sub, Role.LEGAL_OFFICER)) == {
            Action.SAVE_OFFICIAL_USE, Action.COMPLETED,
        }

    def test_final_send_back(self):
        """The Legal GM may send back at the final review."""
        engine = make_engine()
        sub = to_gm_final(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_GM, Action.SENT_BACK, comment="Clause 4 unclear")
        assert sub.status == SubmissionStatus.SENT_BACK
        assert sub.comments[-1].text == "Clause 4 unclear"

    def test_officer_identity_checked(self):
        """Only the assigned Legal Officer may act."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(InvalidActorError):
            act(engine, sub, Role.LEGAL_OFFICER, Action.SUBMIT_TO_LEGAL_GM, user_id="lo_2")
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.SUBMIT_TO_LEGAL_GM, user_id="lo_1")
        assert sub.status == SubmissionStatus.PENDING_LEGAL_GM_FINAL

    def test_officer_cancel(self):
        """The Legal Officer may cancel while working."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.CANCELLED, comment="Withdrawn")
        assert sub.status == SubmissionStatus.CANCELLED
        doc_id = sub.documents[0].id
        with pytest.raises(InvalidStateError):
            engine.attach_document_file(sub, doc_id, "memory://late.pdf")

    def test_legal_gm_already_decided_initial_review(self):
        """The Legal GM's initial approval cannot be repeated."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(AlreadyActionedError):
            act(engine, sub, Role.LEGAL_GM, Action.APPROVED, assignedOfficer="lo_2")


class TestCompletion:
    """Test official-use fields and completion."""

    def test_complete_with_all_fields(self):
        """Completion succeeds when every official-use field is filled."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.COMPLETED, officialUse=FORM1_OFFICIAL_USE)
        assert sub.status == SubmissionStatus.COMPLETED
        assert sub.official_use["legalRefNumber"] == "LR-2025-001"

    def test_missing_field_blocks_completion(self):
        """A blank field is named and the submission is unchanged."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        fields = dict(FORM1_OFFICIAL_USE, registeredBy="")
        with pytest.raises(ValidationError) as exc_info:
            act(engine, sub, Role.LEGAL_OFFICER, Action.COMPLETED, officialUse=fields)
        assert exc_info.value.missing_fields == ["registeredBy"]
        assert exc_info.value.submission_id == sub.id
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER

    def test_saved_fields_count_towards_completion(self):
        """Fields saved earlier are merged with the completion payload."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        partial = {k: v for k, v in FORM1_OFFICIAL_USE.items() if k != "registeredBy"}
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.SAVE_OFFICIAL_USE, officialUse=partial)
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER
        sub = act(
            engine, sub, Role.LEGAL_OFFICER, Action.COMPLETED,
            officialUse={"registeredBy": "Nadee Fernando"},
        )
        assert sub.status == SubmissionStatus.COMPLETED

    def test_saving_same_fields_is_noop(self):
        """Saving unchanged fields reports no change."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.SAVE_OFFICIAL_USE, officialUse={"legalRefNumber": "X"})
        outcome = engine.apply_action(
            sub, Actor(role=Role.LEGAL_OFFICER), Action.SAVE_OFFICIAL_USE,
            {"officialUse": {"legalRefNumber": "X"}},
        )
        assert outcome.changed is False
        assert outcome.to_commit == []

    def test_official_use_must_be_an_object(self):
        """A non-object officialUse is a validation error for save and complete."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        for action in (Action.SAVE_OFFICIAL_USE, Action.COMPLETED):
            with pytest.raises(ValidationError) as exc_info:
                act(engine, sub, Role.LEGAL_OFFICER, action, officialUse=["registeredBy"])
            assert exc_info.value.fields[0].path == "officialUse"
        assert sub.official_use == {}

    def test_completion_before_final_approval_rejected(self):
        """The Legal Officer cannot complete while still reviewing."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(InvalidStateError):
            act(engine, sub, Role.LEGAL_OFFICER, Action.COMPLETED, officialUse=FORM1_OFFICIAL_USE)

    def test_completed_submission_is_terminal(self):
        """Nothing can happen after completion."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.COMPLETED, officialUse=FORM1_OFFICIAL_USE)
        with pytest.raises(InvalidStateError):
            act(engine, sub, Role.LEGAL_GM, Action.REASSIGN_OFFICER, assignedOfficer="lo_2")

    def test_audit_log_of_full_run(self):
        """The projected log lists every step in order."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.COMPLETED, officialUse=FORM1_OFFICIAL_USE)
        log = project_log(sub)
        assert [e.role for e in log] == [
            "System", "BUM", "FBP", "CLUSTER_HEAD", "LEGAL_GM",
            "LEGAL_OFFICER", "LEGAL_GM", "LEGAL_OFFICER",
        ]
        assert log[0].action == "Submission created"
        assert log[-1].action == "Completed"
        assert [e.timestamp for e in log] == sorted(e.timestamp for e in log)


class TestReassignment:
    """Test Legal Officer reassignment and handover."""

    def test_reassign_and_acknowledge(self):
        """The new officer must acknowledge before working."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_GM, Action.REASSIGN_OFFICER, assignedOfficer="lo_2")
        assert sub.assigned_legal_officer == "lo_2"
        assert sub.previous_legal_officer == "lo_1"
        assert sub.lo_stage == LOStage.REASSIGNED
        assert sub.reassigned_from_stage == LOStage.ACTIVE
        assert engine.allowed_actions(sub, Role.LEGAL_OFFICER) == [Action.ACKNOWLEDGE_HANDOVER]

        with pytest.raises(InvalidStateError):
            act(engine, sub, Role.LEGAL_OFFICER, Action.SUBMIT_TO_LEGAL_GM, user_id="lo_2")
        with pytest.raises(InvalidActorError):
            act(engine, sub, Role.LEGAL_OFFICER, Action.ACKNOWLEDGE_HANDOVER, user_id="lo_1")

        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.ACKNOWLEDGE_HANDOVER, user_id="lo_2")
        assert sub.lo_stage == LOStage.ACTIVE
        assert sub.reassigned_from_stage is None

    def test_same_officer_rejected(self):
        """Reassigning to the current officer is rejected."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(ValidationError):
            act(engine, sub, Role.LEGAL_GM, Action.REASSIGN_OFFICER, assignedOfficer="lo_1")

    def test_inactive_officer_rejected(self):
        """The new officer must be active."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(ValidationError):
            act(engine, sub, Role.LEGAL_GM, Action.REASSIGN_OFFICER, assignedOfficer="lo_9")

    def test_final_approval_during_handover(self):
        """Final approval while reassigned waits for the acknowledgement."""
        engine = make_engine()
        sub = to_gm_final(engine, new_submission(engine))
        sub = act(engine, sub, Role.LEGAL_GM, Action.REASSIGN_OFFICER, assignedOfficer="lo_2")
        sub = act(engine, sub, Role.LEGAL_GM, Action.APPROVED)
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER
        assert sub.lo_stage == LOStage.REASSIGNED
        assert sub.reassigned_from_stage == LOStage.POST_GM_APPROVAL
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.ACKNOWLEDGE_HANDOVER)
        assert sub.lo_stage == LOStage.POST_GM_APPROVAL


class TestDocumentReview:
    """Test Legal Officer document actions through the engine."""

    def test_set_document_status_action(self):
        """Setting a status is applied and idempotent."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        doc_id = sub.documents[0].id
        actor = Actor(role=Role.LEGAL_OFFICER)
        payload = {"documentId": doc_id, "documentStatus": "ATTENTION", "comment": "Blurry scan"}
        outcome = engine.apply_action(sub, actor, Action.SET_DOCUMENT_STATUS, payload)
        doc = outcome.submission.document(doc_id)
        assert doc.status == DocumentStatus.ATTENTION
        assert doc.comment == "Blurry scan"
        again = engine.apply_action(outcome.submission, actor, Action.SET_DOCUMENT_STATUS, payload)
        assert again.changed is False

    def test_set_document_status_needs_document(self):
        """The document id and status are both required."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(ValidationError) as exc_info:
            act(engine, sub, Role.LEGAL_OFFICER, Action.SET_DOCUMENT_STATUS, documentStatus="OK")
        assert exc_info.value.missing_fields == ["documentId"]

    def test_review_closed_after_final_approval(self):
        """Documents cannot be reviewed once the Legal GM approved."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        with pytest.raises(InvalidStateError):
            act(
                engine, sub, Role.LEGAL_OFFICER, Action.SET_DOCUMENT_STATUS,
                documentId=sub.documents[0].id, documentStatus="OK",
            )
        with pytest.raises(InvalidStateError):
            engine.set_document_status(sub, sub.documents[0].id, DocumentStatus.OK)

    def test_request_document_action(self):
        """Requesting a document appends it and records the request."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        sub = act(
            engine, sub, Role.LEGAL_OFFICER, Action.REQUEST_DOCUMENT,
            name="Lakmal Perera", documentLabel="Board approval letter",
        )
        doc = sub.documents[-1]
        assert doc.label == "Board approval letter"
        assert doc.type == DocumentType.LO_REQUESTED.value
        assert doc.requested_by == "Lakmal Perera"
        assert sub.comments[-1].action == "REQUEST_DOCUMENT"
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER

    def test_return_to_initiator(self):
        """Returning flags documents and sends the submission back."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        doc_id = sub.documents[0].id
        sub = act(
            engine, sub, Role.LEGAL_OFFICER, Action.RETURN_TO_INITIATOR,
            comment="Please re-upload",
            docStatuses=[{"documentId": doc_id, "status": "RESUBMIT", "comment": "Expired"}],
        )
        assert sub.status == SubmissionStatus.SENT_BACK
        assert sub.lo_stage == LOStage.PENDING_GM
        assert sub.document(doc_id).status == DocumentStatus.RESUBMIT
        assert sub.comments[-1].action == "RETURN_TO_INITIATOR"

    def test_return_with_unknown_document(self):
        """An unknown document aborts the whole return."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(NotFoundError):
            act(
                engine, sub, Role.LEGAL_OFFICER, Action.RETURN_TO_INITIATOR,
                comment="x", docStatuses=[{"documentId": "doc_404", "status": "OK"}],
            )
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER

    def test_engine_set_document_status_returns_copy(self):
        """The direct helper leaves its input alone."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        doc_id = sub.documents[0].id
        updated = engine.set_document_status(sub, doc_id, "OK")
        assert updated.document(doc_id).status == DocumentStatus.OK
        assert sub.document(doc_id).status == DocumentStatus.NONE

    def test_unknown_status_is_validation_error(self):
        """An unknown status string is a typed failure, not a ValueError."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        doc_id = sub.documents[0].id
        with pytest.raises(ValidationError) as exc_info:
            engine.set_document_status(sub, doc_id, "BOGUS")
        assert exc_info.value.fields[0].path == "documentStatus"
        assert exc_info.value.fields[0].code == FieldErrorCode.INVALID_VALUE
        assert exc_info.value.submission_id == sub.id
        with pytest.raises(ValidationError):
            act(
                engine, sub, Role.LEGAL_OFFICER, Action.SET_DOCUMENT_STATUS,
                documentId=doc_id, documentStatus="BOGUS",
            )

    def test_malformed_doc_statuses_rejected(self):
        """Return entries without a document id or valid status are validation errors."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        doc_id = sub.documents[0].id
        bad_entries = [
            [{"status": "OK"}],
            ["not-an-object"],
            [{"documentId": doc_id}],
            [{"documentId": doc_id, "status": "BOGUS"}],
        ]
        for entries in bad_entries:
            with pytest.raises(ValidationError):
                act(
                    engine, sub, Role.LEGAL_OFFICER, Action.RETURN_TO_INITIATOR,
                    comment="Please re-upload", docStatuses=entries,
                )
        with pytest.raises(ValidationError) as exc_info:
            act(
                engine, sub, Role.LEGAL_OFFICER, Action.RETURN_TO_INITIATOR,
                comment="Please re-upload", docStatuses={"documentId": doc_id},
            )
        assert exc_info.value.fields[0].path == "docStatuses"
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER

    def test_request_additional_document_helper(self):
        """The direct helper appends a requested document."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        updated = engine.request_additional_document(sub, "Lease deed", "Lakmal Perera")
        assert len(updated.documents) == len(sub.documents) + 1


class TestPreparedDocuments:
    """Test Legal Officer prepared documents."""

    def test_attach_draft(self):
        """The assigned officer may attach a draft while working."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        actor = Actor(role=Role.LEGAL_OFFICER, name="Lakmal Perera", user_id="lo_1")
        updated = engine.add_prepared_document(
            sub, actor, "Draft agreement", DocumentType.LO_PREPARED_INITIAL, "memory://d.docx"
        )
        doc = updated.documents[-1]
        assert doc.type == "LO_PREPARED_INITIAL"
        assert doc.status == DocumentStatus.UPLOADED

    def test_attach_final_after_approval(self):
        """Final copies may be attached after the Legal GM approved."""
        engine = make_engine()
        sub = to_post_gm_approval(engine, new_submission(engine))
        updated = engine.add_prepared_document(
            sub, Actor(role=Role.LEGAL_OFFICER), "Signed copy", "LO_PREPARED_FINAL", "memory://f.pdf"
        )
        assert updated.documents[-1].type == "LO_PREPARED_FINAL"

    def test_other_roles_and_officers_rejected(self):
        """Only the assigned Legal Officer may attach prepared documents."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(InvalidActorError):
            engine.add_prepared_document(
                sub, Actor(role=Role.BUM), "X", DocumentType.LO_PREPARED_INITIAL, "memory://x"
            )
        with pytest.raises(InvalidActorError):
            engine.add_prepared_document(
                sub, Actor(role=Role.LEGAL_OFFICER, user_id="lo_2"), "X",
                DocumentType.LO_PREPARED_INITIAL, "memory://x",
            )

    def test_not_while_with_legal_gm(self):
        """Prepared documents wait until the officer holds the matter."""
        engine = make_engine()
        sub = to_legal_gm(engine, new_submission(engine))
        with pytest.raises(InvalidStateError):
            engine.add_prepared_document(
                sub, Actor(role=Role.LEGAL_OFFICER), "X", DocumentType.LO_PREPARED_INITIAL, "memory://x"
            )


class TestSpecialApprovers:
    """Test special approver injection and decisions."""

    def assign(self, engine, sub, role=Role.LEGAL_OFFICER, email=SPECIAL_APPROVER_EMAIL):
        return act(engine, sub, role, Action.ASSIGN_SPECIAL_APPROVER, specialApproverEmail=email)

    def test_officer_assigns_and_approval_returns(self):
        """Approval returns the matter to the Legal Officer's stage."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        sub = self.assign(engine, sub)
        assert sub.status == SubmissionStatus.PENDING_SPECIAL_APPROVER
        assert sub.special_approval_return_status == SubmissionStatus.PENDING_LEGAL_OFFICER
        record = sub.special_approvers[0]
        assert record.approver_name == "Finance Head"
        assert record.department == "Finance"
        assert record.assigned_by == Role.LEGAL_OFFICER
        assert engine.required_actors(sub) == {Role.SPECIAL_APPROVER}

        sub = act(engine, sub, Role.SPECIAL_APPROVER, Action.APPROVED, email=SPECIAL_APPROVER_EMAIL)
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER
        assert sub.lo_stage == LOStage.ACTIVE
        assert sub.special_approval_return_status is None
        assert sub.special_approvers[0].status == ApprovalStatus.APPROVED

    def test_officer_blocked_while_pending(self):
        """The Legal Officer waits while a special approver is pending."""
        engine = make_engine()
        sub = self.assign(engine, to_legal_officer(engine, new_submission(engine)))
        with pytest.raises(InvalidActorError):
            act(engine, sub, Role.LEGAL_OFFICER, Action.SUBMIT_TO_LEGAL_GM)

    def test_special_approver_send_back(self):
        """A special approver's send-back returns the submission to the initiator."""
        engine = make_engine()
        sub = self.assign(engine, to_legal_officer(engine, new_submission(engine)))
        sub = act(
            engine, sub, Role.SPECIAL_APPROVER, Action.SENT_BACK,
            email=SPECIAL_APPROVER_EMAIL, comment="Budget not approved",
        )
        assert sub.status == SubmissionStatus.SENT_BACK
        assert sub.special_approvers[0].comment == "Budget not approved"

    def test_unknown_special_approver(self):
        """Assignees must be active special approvers in the directory."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        with pytest.raises(ValidationError):
            self.assign(engine, sub, email="stranger@example.com")

    def test_decision_requires_matching_email(self):
        """Special approvers act by their own email."""
        engine = make_engine()
        sub = self.assign(engine, to_legal_officer(engine, new_submission(engine)))
        with pytest.raises(ValidationError):
            act(engine, sub, Role.SPECIAL_APPROVER, Action.APPROVED)
        with pytest.raises(NotFoundError):
            act(engine, sub, Role.SPECIAL_APPROVER, Action.APPROVED, email=SECOND_SPECIAL_APPROVER_EMAIL)

    def test_legal_gm_assigns_at_final_review(self):
        """A Legal GM assignment returns to the final review."""
        engine = make_engine()
        sub = to_gm_final(engine, new_submission(engine))
        sub = self.assign(engine, sub, role=Role.LEGAL_GM, email=SECOND_SPECIAL_APPROVER_EMAIL)
        assert sub.special_approvers[0].assigned_by == Role.LEGAL_GM
        sub = act(
            engine, sub, Role.SPECIAL_APPROVER, Action.APPROVED, email=SECOND_SPECIAL_APPROVER_EMAIL
        )
        assert sub.status == SubmissionStatus.PENDING_LEGAL_GM_FINAL

    def test_second_round(self):
        """A second approver may be added after the first signs off."""
        engine = make_engine()
        sub = self.assign(engine, to_legal_officer(engine, new_submission(engine)))
        sub = act(engine, sub, Role.SPECIAL_APPROVER, Action.APPROVED, email=SPECIAL_APPROVER_EMAIL)
        sub = self.assign(engine, sub, email=SECOND_SPECIAL_APPROVER_EMAIL)
        assert len(sub.special_approvers) == 2
        with pytest.raises(AlreadyActionedError):
            act(engine, sub, Role.SPECIAL_APPROVER, Action.APPROVED, email=SPECIAL_APPROVER_EMAIL)


class TestCourtOfficerFlow:
    """Test the Form 3 litigation route."""

    def test_full_route(self):
        """Court Officer work happens between the two Legal GM reviews."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine, form_id=3))
        assert sub.lo_stage == LOStage.ASSIGN_COURT_OFFICER
        with pytest.raises(InvalidStateError):
            act(engine, sub, Role.LEGAL_OFFICER, Action.SUBMIT_TO_LEGAL_GM)

        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.ASSIGN_COURT_OFFICER, courtOfficerId="co_1")
        assert sub.status == SubmissionStatus.PENDING_COURT_OFFICER
        assert sub.lo_stage == LOStage.PENDING_COURT_OFFICER
        assert sub.court_officer_id == "co_1"

        with pytest.raises(InvalidActorError):
            act(engine, sub, Role.COURT_OFFICER, Action.SUBMIT_TO_LEGAL_OFFICER, user_id="co_2")
        sub = act(engine, sub, Role.COURT_OFFICER, Action.SUBMIT_TO_LEGAL_OFFICER, user_id="co_1")
        assert sub.status == SubmissionStatus.PENDING_LEGAL_OFFICER
        assert sub.lo_stage == LOStage.REVIEW_FOR_GM

        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.SUBMIT_TO_LEGAL_GM)
        sub = act(engine, sub, Role.LEGAL_GM, Action.APPROVED)
        sub = act(
            engine, sub, Role.LEGAL_OFFICER, Action.COMPLETED,
            officialUse={"legalRefNumber": "LIT-7", "registeredBy": "Nadee Fernando"},
        )
        assert sub.status == SubmissionStatus.COMPLETED

    def test_unknown_court_officer(self):
        """The Court Officer must exist in the directory."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine, form_id=3))
        with pytest.raises(ValidationError):
            act(engine, sub, Role.LEGAL_OFFICER, Action.ASSIGN_COURT_OFFICER, courtOfficerId="co_404")

    def test_court_officer_assigns_special_approver(self):
        """Approval returns the matter to the Court Officer."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine, form_id=3))
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.ASSIGN_COURT_OFFICER, courtOfficerId="co_1")
        sub = act(
            engine, sub, Role.COURT_OFFICER, Action.ASSIGN_SPECIAL_APPROVER,
            specialApproverEmail=SPECIAL_APPROVER_EMAIL,
        )
        sub = act(engine, sub, Role.SPECIAL_APPROVER, Action.APPROVED, email=SPECIAL_APPROVER_EMAIL)
        assert sub.status == SubmissionStatus.PENDING_COURT_OFFICER

    def test_form_3_has_no_cluster_head(self):
        """Form 3 moves on after BUM and FBP."""
        engine = make_engine()
        sub = new_submission(engine, form_id=3)
        with pytest.raises(InvalidActorError):
            act(engine, sub, Role.CLUSTER_HEAD, Action.APPROVED)
        sub = act(engine, sub, Role.BUM, Action.APPROVED)
        sub = act(engine, sub, Role.FBP, Action.APPROVED)
        assert sub.status == SubmissionStatus.PENDING_LEGAL_GM


class TestDraftsAndResubmission:
    """Test drafts, resubmission chains and comments."""

    def test_draft_needs_mandatory_files(self):
        """A draft cannot be submitted until mandatory documents have files."""
        engine = make_engine()
        sub = new_submission(engine, status="DRAFT")
        assert sub.status == SubmissionStatus.DRAFT
        with pytest.raises(ValidationError) as exc_info:
            act(engine, sub, Role.INITIATOR, Action.SUBMIT)
        assert len(exc_info.value.fields) == 6
        assert exc_info.value.fields[0].code == FieldErrorCode.FILE_REQUIRED

        for doc in sub.documents:
            if doc.mandatory:
                sub = engine.attach_document_file(sub, doc.id, f"memory://{sub.id}/{doc.id}.pdf")
        sub = act(engine, sub, Role.INITIATOR, Action.SUBMIT)
        assert sub.status == SubmissionStatus.PENDING_APPROVAL
        assert sub.comments[-1].action == "SUBMIT"

    def test_resubmission_chain(self):
        """Each resubmission creates a fresh submission with a suffixed number."""
        engine = make_engine()
        sub = new_submission(engine)
        sub = act(engine, sub, Role.BUM, Action.APPROVED)
        sub = act(engine, sub, Role.FBP, Action.SENT_BACK, comment="Wrong value")

        outcome = engine.resubmit(sub, content={"scopeOfAgreement": "Western province only"})
        original, first = outcome.submission, outcome.created
        assert original.status == SubmissionStatus.RESUBMITTED
        assert [s.id for s in outcome.to_commit] == [original.id, first.id]
        assert first.submission_no == "LHD_20250101120000_001_R1"
        assert first.parent_id == sub.id
        assert first.is_resubmission is True
        assert first.status == SubmissionStatus.PENDING_APPROVAL
        assert first.content == {"scopeOfAgreement": "Western province only"}
        assert all(r.status == ApprovalStatus.PENDING for r in first.approvals)

        first = act(engine, first, Role.CLUSTER_HEAD, Action.SENT_BACK, comment="Again")
        second = engine.resubmit(first).created
        assert second.submission_no == "LHD_20250101120000_001_R2"
        assert second.content == first.content

    def test_resubmission_drops_prepared_documents(self):
        """Prepared drafts stay with the old submission; the officer carries over."""
        engine = make_engine()
        sub = to_legal_officer(engine, new_submission(engine))
        sub = engine.add_prepared_document(
            sub, Actor(role=Role.LEGAL_OFFICER), "Draft", DocumentType.LO_PREPARED_INITIAL, "memory://d"
        )
        sub = act(engine, sub, Role.LEGAL_OFFICER, Action.RETURN_TO_INITIATOR, comment="Fix parties")
        created = engine.resubmit(sub).created
        assert "Draft" not in [d.label for d in created.documents]
        assert len(created.documents) == len(sub.documents) - 1
        assert created.assigned_legal_officer == "lo_1"

    def test_only_initiator_resubmits(self):
        """Other roles cannot resubmit, and a resubmitted original is final."""
        engine = make_engine()
        sub = act(engine, new_submission(engine), Role.BUM, Action.SENT_BACK, comment="No")
        with pytest.raises(InvalidActorError):
            act(engine, sub, Role.BUM, Action.RESUBMIT)
        original = engine.resubmit(sub).submission
        with pytest.raises(InvalidStateError):
            engine.resubmit(original)

    def test_add_comment(self):
        """Free comments are trimmed and carry no action."""
        engine = make_engine()
        sub = new_submission(engine)
        updated = engine.add_comment(sub, Actor(role=Role.BUM, name="Bimal Silva"), "  Looks fine ")
        comment = updated.comments[-1]
        assert comment.text == "Looks fine"
        assert comment.action is None
        assert comment.author_name == "Bimal Silva"
        assert sub.comments == []

    def test_blank_comment_rejected(self):
        """Blank comment text is a validation error with context."""
        engine = make_engine()
        sub = new_submission(engine)
        with pytest.raises(ValidationError) as exc_info:
            engine.add_comment(sub, Actor(role=Role.BUM), "  ")
        assert exc_info.value.submission_id == sub.id
        assert exc_info.value.missing_fields == ["text"]

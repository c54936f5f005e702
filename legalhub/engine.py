"""Workflow engine for Legal Hub submissions.

``WorkflowEngine`` applies one request to one submission and returns the new
state. It never writes to a store: the runtime reads a submission, hands it to
the engine, and commits what comes back in a single compare-and-swap write.

Every operation works on a deep copy of its input, so a raised
``WorkflowError`` leaves the caller's submission exactly as it was and a
half-applied copy is never returned.

Usage:
    >>> engine = WorkflowEngine()
    >>> sub = engine.create_submission(
    ...     {"formId": 1, "initiatorId": "u_1", "companyCode": "DIMO", "title": "NDA"},
    ...     sequence=1,
    ... )
    >>> sub.status.value
    'PENDING_APPROVAL'
    >>> [a.value for a in engine.allowed_actions(sub, Role.BUM)]
    ['APPROVED', 'SENT_BACK', 'CANCELLED']
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Union
import copy
import uuid

from legalhub import documents, ledger
from legalhub.collaborators import (
    DirectoryUser,
    FormConfiguration,
    StaticFormConfiguration,
    UserDirectory,
    find_active_user,
)
from legalhub.config import Settings, get_settings
from legalhub.errors import (
    AlreadyActionedError,
    FieldError,
    InvalidActorError,
    InvalidStateError,
    ValidationError,
    WorkflowError,
    invalid_field_error,
    missing_field_error,
)
from legalhub.log import get_logger
from legalhub.models import (
    ApprovalRecord,
    Comment,
    DocumentRecord,
    Party,
    Submission,
)
from legalhub.numbering import generate_submission_no, resubmission_no
from legalhub.state_machine import (
    DOCUMENT_REVIEW_STAGES,
    TransitionRule,
    WorkflowStateMachine,
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
from legalhub.validation import CREATE_SUBMISSION_VALIDATOR, check_official_use
from legalhub.workflows import FormWorkflow, workflow_for

LOGGER = get_logger(__name__, get_settings().log_level)

DECISION_ACTIONS = frozenset({Action.APPROVED, Action.SENT_BACK, Action.CANCELLED})

# Payload keys naming the approver chosen for each ledger role at creation
APPROVER_ID_KEYS: Dict[Role, str] = {
    Role.BUM: "bumId",
    Role.FBP: "fbpId",
    Role.CLUSTER_HEAD: "clusterHeadId",
    Role.CEO: "ceoId",
}

# Stages in which the Legal Officer may attach prepared drafts and final copies
PREPARATION_STAGES = DOCUMENT_REVIEW_STAGES | {LOStage.POST_GM_APPROVAL}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _official_use_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    fields = payload.get("officialUse") or {}
    if not isinstance(fields, dict):
        raise invalid_field_error(
            "officialUse", "officialUse must be an object", expected="object", received=fields
        )
    return fields


@dataclass
class ActionOutcome:
    """Result of applying one action.

    Attributes:
        submission: The acted-on submission after the action
        action: The action applied
        actor: Who acted
        changed: False when the action was an idempotent no-op
        created: A new submission created by the action (resubmission)
    """
    submission: Submission
    action: Action
    actor: Actor
    changed: bool = True
    created: Optional[Submission] = None

    @property
    def to_commit(self) -> List[Submission]:
        """Submissions the caller must write together, in one commit."""
        if not self.changed:
            return []
        if self.created is not None:
            return [self.submission, self.created]
        return [self.submission]


@dataclass
class _ActionContext:
    submission: Submission
    machine: WorkflowStateMachine
    workflow: FormWorkflow
    rule: TransitionRule
    actor: Actor
    payload: Dict[str, Any]
    comment: str
    now: datetime
    changed: bool = True
    created: Optional[Submission] = None

    @property
    def action(self) -> Action:
        return self.rule.action


class WorkflowEngine:
    """Applies workflow actions to submissions.

    Attributes:
        settings: Engine settings (numbering prefix, SLA, official-use fields)
        directory: User/department directory used to validate assignees; when
            None, assignees are accepted as given
        form_config: Source of each form's required documents
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        directory: Optional[UserDirectory] = None,
        form_config: Optional[FormConfiguration] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        self.directory = directory
        self.form_config = form_config or StaticFormConfiguration()
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_submission(
        self,
        payload: Dict[str, Any],
        sequence: int = 1,
        now: Optional[datetime] = None,
    ) -> Submission:
        """Build a new submission from a creation payload.

        The approval ledger gets one pending row per role of the form's
        workflow shape, and the document registry is built from the form
        configuration for the payload's party types.

        Args:
            payload: Creation payload (see ``CREATE_SUBMISSION_SCHEMA``)
            sequence: One-based number of the submission within its day
            now: Creation time; defaults to the engine clock

        Raises:
            ValidationError: If the payload is malformed or incomplete
        """
        CREATE_SUBMISSION_VALIDATOR.check(payload, "Invalid submission")
        now = now or self.now()
        form_id = int(payload.get("formId", 1))
        workflow = workflow_for(form_id)

        parties = [Party.from_dict(p) for p in payload.get("parties", [])]
        party_types = [p.type for p in parties]
        required = self.form_config.get_required_documents(form_id, party_types)

        approvals = [
            self._ledger_row(role, payload.get(APPROVER_ID_KEYS.get(role, "")))
            for role in workflow.ledger_roles
        ]

        assigned_officer = payload.get("legalOfficerId") or None
        if assigned_officer:
            self._require_user(Role.LEGAL_OFFICER, "legalOfficerId", user_id=assigned_officer)

        status = SubmissionStatus(payload.get("status") or SubmissionStatus.PENDING_APPROVAL.value)
        value = payload.get("value", payload.get("lkrValue"))

        submission = Submission(
            id=f"sub_{uuid.uuid4().hex[:16]}",
            submission_no=payload.get("submissionNo")
            or generate_submission_no(now, sequence, self.settings.submission_prefix),
            form_id=form_id,
            form_name=payload.get("formName") or workflow.name,
            initiator_id=payload["initiatorId"],
            created_at=now,
            status=status,
            lo_stage=LOStage.PENDING_GM,
            legal_gm_stage=LegalGMStage.INITIAL_REVIEW,
            title=payload["title"],
            company_code=payload["companyCode"],
            value=str(value) if value is not None else "0",
            content=copy.deepcopy(payload.get("content") or {}),
            parties=parties,
            approvals=approvals,
            documents=documents.build_documents(required, party_types),
            assigned_legal_officer=assigned_officer,
            updated_at=now,
            due_date=now + timedelta(days=self.settings.sla_days),
        )
        LOGGER.debug(
            "Built submission no=%s form=%s status=%s",
            submission.submission_no,
            form_id,
            status.value,
        )
        return submission

    def _ledger_row(self, role: Role, user_id: Optional[str]) -> ApprovalRecord:
        record = ApprovalRecord(role=role)
        if user_id:
            user = self._require_user(role, APPROVER_ID_KEYS[role], user_id=user_id)
            if user is not None:
                record.approver_name = user.name
                record.approver_email = user.email
        return record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def allowed_actions(self, submission: Submission, role: Role) -> List[Action]:
        """Actions ``role`` may request on ``submission`` right now."""
        return WorkflowStateMachine(submission).allowed_actions(Role.parse(role))

    def required_actors(self, submission: Submission) -> Set[Role]:
        """Roles able to act on ``submission`` right now."""
        return WorkflowStateMachine(submission).required_actors()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def apply_action(
        self,
        submission: Submission,
        actor: Actor,
        action: Action,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ActionOutcome:
        """Validate and apply one ``(role, action, payload)`` request.

        Checks run in this order: the role has a rule for the action in the
        current status and stage (a role whose ledger row is already resolved
        gets ``AlreadyActioned``), a comment is present where required, the
        actor is the person named on the submission, and finally the
        handler's own payload checks. Only then is the copy mutated.

        Args:
            submission: Submission as read from the store; never modified
            actor: Who is acting, and as which role
            action: Requested action (strings are parsed)
            payload: Action-specific fields (comment, assignee, document...)

        Returns:
            ActionOutcome holding the updated copy

        Raises:
            WorkflowError: Any subclass; nothing has been changed
        """
        action = Action.parse(action)
        payload = payload or {}
        try:
            working = copy.deepcopy(submission)
            machine = WorkflowStateMachine(working)
            self._check_already_actioned(machine, actor.role, action)
            rule = machine.resolve(actor.role, action)
            comment = _text(payload.get("comment"))
            if rule.requires_comment and not comment:
                raise missing_field_error(
                    ["comment"], f"A comment is required to {action.value}"
                )
            self._check_identity(working, actor)

            ctx = _ActionContext(
                submission=working,
                machine=machine,
                workflow=workflow_for(working.form_id),
                rule=rule,
                actor=actor,
                payload=payload,
                comment=comment,
                now=self.now(),
            )
            handler = getattr(self, f"_handle_{rule.handler}")
            handler(ctx)
        except WorkflowError as exc:
            exc.with_context(submission.id, submission.status.value)
            raise

        if ctx.changed:
            working.updated_at = ctx.now
        LOGGER.debug(
            "Applied action=%s role=%s no=%s status=%s->%s stage=%s",
            action.value,
            actor.role.value,
            submission.submission_no,
            submission.status.value,
            working.status.value,
            working.lo_stage.value,
        )
        return ActionOutcome(
            submission=working,
            action=action,
            actor=actor,
            changed=ctx.changed,
            created=ctx.created,
        )

    def apply_approval(
        self,
        submission: Submission,
        role: Role,
        action: Action,
        comment: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> Submission:
        """Record an approve, send-back or cancel decision for ``role``.

        The ledger write and any status change it triggers are returned
        together in one submission.

        Raises:
            ValidationError: If ``action`` is not a decision, or a required
                comment is missing
            InvalidActorError: If ``actor`` does not act as ``role``
        """
        role = Role.parse(role)
        action = Action.parse(action)
        if action not in DECISION_ACTIONS:
            raise ValidationError(
                f"'{action.value}' is not an approval decision",
                fields=[
                    FieldError(
                        path="action",
                        code=FieldErrorCode.INVALID_VALUE,
                        message=f"'{action.value}' is not an approval decision",
                        expected=sorted(a.value for a in DECISION_ACTIONS),
                        received=action.value,
                    )
                ],
                submission_id=submission.id,
                status=submission.status.value,
            )
        actor = actor or Actor(role=role)
        if actor.role != role:
            raise InvalidActorError(
                f"Actor acting as '{actor.role.value}' cannot decide for role '{role.value}'",
                submission_id=submission.id,
                status=submission.status.value,
            )
        return self.apply_action(submission, actor, action, {"comment": comment}).submission

    def _check_already_actioned(
        self, machine: WorkflowStateMachine, role: Role, action: Action
    ) -> None:
        # A decided ledger row wins over the generic role check
        if action not in DECISION_ACTIONS:
            return
        decided = machine.resolved_decision(role)
        if decided is None:
            return
        if any(r.role == role and r.action == action for r in machine.active_rules()):
            return
        raise AlreadyActionedError(
            f"Approval for role '{role.value}' was already recorded as '{decided.value}'"
        )

    def _check_identity(self, submission: Submission, actor: Actor) -> None:
        if actor.user_id is None:
            return
        expected = None
        if actor.role == Role.LEGAL_OFFICER:
            expected = submission.assigned_legal_officer
        elif actor.role == Role.COURT_OFFICER:
            expected = submission.court_officer_id
        if expected and actor.user_id != expected:
            raise InvalidActorError(
                f"User '{actor.user_id}' is not the {actor.role.value} assigned to "
                f"submission {submission.submission_no}"
            )

    def _require_user(
        self,
        role: Role,
        path: str,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[DirectoryUser]:
        """Look up an active directory user for ``role``.

        Returns None when no directory is configured.

        Raises:
            ValidationError: If the directory has no such active user
        """
        if self.directory is None:
            return None
        user = find_active_user(self.directory, role, user_id=user_id, email=email)
        if user is None:
            who = user_id or email
            raise ValidationError(
                f"'{who}' is not an active {role.value}",
                fields=[
                    FieldError(
                        path=path,
                        code=FieldErrorCode.INVALID_VALUE,
                        message=f"'{who}' is not an active {role.value}",
                        received=who,
                    )
                ],
            )
        return user

    def _record_action(self, ctx: _ActionContext, text: Optional[str] = None) -> None:
        ctx.submission.comments.append(
            Comment(
                id=f"cmt_{uuid.uuid4().hex[:16]}",
                author_name=ctx.actor.display_name,
                author_role=ctx.actor.role.value,
                text=ctx.comment if text is None else text,
                created_at=ctx.now,
                action=ctx.action.value,
            )
        )

    def _apply_decision_status(self, ctx: _ActionContext, decision: ApprovalStatus) -> None:
        if decision == ApprovalStatus.SENT_BACK:
            ctx.machine.transition_to(SubmissionStatus.SENT_BACK)
        elif decision == ApprovalStatus.CANCELLED:
            ctx.machine.transition_to(SubmissionStatus.CANCELLED)

    # Initiator ---------------------------------------------------------

    def _handle_submit_draft(self, ctx: _ActionContext) -> None:
        documents.check_mandatory_uploaded(ctx.submission)
        ctx.machine.transition_to(SubmissionStatus.PENDING_APPROVAL)
        self._record_action(ctx)

    def _handle_resubmit(self, ctx: _ActionContext) -> None:
        original = ctx.submission
        content = ctx.payload.get("content")
        created = self._build_resubmission(original, ctx.now, content)
        ctx.machine.transition_to(SubmissionStatus.RESUBMITTED)
        self._record_action(ctx)
        ctx.created = created

    def _build_resubmission(
        self,
        original: Submission,
        now: datetime,
        content: Optional[Dict[str, Any]] = None,
    ) -> Submission:
        workflow = workflow_for(original.form_id)
        carried = {r.role: r for r in original.approvals}
        approvals = []
        for role in workflow.ledger_roles:
            previous = carried.get(role)
            approvals.append(
                ApprovalRecord(
                    role=role,
                    approver_name=previous.approver_name if previous else "",
                    approver_email=previous.approver_email if previous else "",
                )
            )
        docs = [
            DocumentRecord(
                id=f"doc_{uuid.uuid4().hex[:16]}",
                label=d.label,
                type=d.type,
                status=DocumentStatus.UPLOADED if d.file_url else DocumentStatus.NONE,
                mandatory=d.mandatory,
                file_url=d.file_url,
                requested_by=d.requested_by,
                uploaded_at=d.uploaded_at,
            )
            for d in original.documents
            if d.type not in (DocumentType.LO_PREPARED_INITIAL, DocumentType.LO_PREPARED_FINAL)
        ]
        return Submission(
            id=f"sub_{uuid.uuid4().hex[:16]}",
            submission_no=resubmission_no(original.submission_no),
            form_id=original.form_id,
            form_name=original.form_name,
            initiator_id=original.initiator_id,
            created_at=now,
            status=SubmissionStatus.PENDING_APPROVAL,
            lo_stage=LOStage.PENDING_GM,
            legal_gm_stage=LegalGMStage.INITIAL_REVIEW,
            title=original.title,
            company_code=original.company_code,
            value=original.value,
            content=copy.deepcopy(content if content is not None else original.content),
            parties=copy.deepcopy(original.parties),
            approvals=approvals,
            documents=docs,
            assigned_legal_officer=original.assigned_legal_officer,
            parent_id=original.id,
            is_resubmission=True,
            updated_at=now,
            due_date=now + timedelta(days=self.settings.sla_days),
        )

    # First-level approvers and CEO -------------------------------------

    def _handle_first_level(self, ctx: _ActionContext) -> None:
        record = ledger.pending_approval(ctx.submission, ctx.actor.role)
        ledger.record_decision(record, ctx.action, ctx.actor, ctx.comment, ctx.now)
        outcome = ledger.group_outcome(ctx.submission, ctx.workflow.parallel_roles)
        if outcome == ApprovalStatus.APPROVED:
            ctx.machine.transition_to(ctx.workflow.after_parallel_approval)
        elif outcome is not None:
            self._apply_decision_status(ctx, outcome)

    def _handle_ceo_review(self, ctx: _ActionContext) -> None:
        record = ledger.pending_approval(ctx.submission, Role.CEO)
        ledger.record_decision(record, ctx.action, ctx.actor, ctx.comment, ctx.now)
        if ctx.action == Action.APPROVED:
            ctx.machine.transition_to(SubmissionStatus.PENDING_LEGAL_GM)
        else:
            self._apply_decision_status(ctx, record.status)

    # Legal GM ----------------------------------------------------------

    def _handle_gm_initial_review(self, ctx: _ActionContext) -> None:
        sub = ctx.submission
        record = ledger.pending_approval(sub, Role.LEGAL_GM)
        officer = None
        if ctx.action == Action.APPROVED:
            officer = ctx.payload.get("assignedOfficer") or sub.assigned_legal_officer
            if not officer:
                raise missing_field_error(
                    ["assignedOfficer"], "A Legal Officer must be assigned on approval"
                )
            self._require_user(Role.LEGAL_OFFICER, "assignedOfficer", user_id=officer)

        ledger.record_decision(record, ctx.action, ctx.actor, ctx.comment, ctx.now)
        if ctx.action == Action.APPROVED:
            sub.assigned_legal_officer = officer
            ctx.machine.transition_to(SubmissionStatus.PENDING_LEGAL_OFFICER)
            ctx.machine.set_officer_stage(ctx.workflow.first_officer_stage)
        else:
            self._apply_decision_status(ctx, record.status)

    def _handle_gm_final_review(self, ctx: _ActionContext) -> None:
        if ctx.action == Action.APPROVED:
            ctx.machine.transition_to(SubmissionStatus.PENDING_LEGAL_OFFICER)
            ctx.machine.set_officer_stage(LOStage.POST_GM_APPROVAL)
        else:
            self._apply_decision_status(ctx, ledger.decision_status(ctx.action))
        self._record_action(ctx)

    def _handle_reassign_officer(self, ctx: _ActionContext) -> None:
        sub = ctx.submission
        officer = _text(ctx.payload.get("assignedOfficer"))
        if not officer:
            raise missing_field_error(["assignedOfficer"], "A new Legal Officer is required")
        if officer == sub.assigned_legal_officer:
            raise ValidationError(
                f"'{officer}' is already the assigned Legal Officer",
                fields=[
                    FieldError(
                        path="assignedOfficer",
                        code=FieldErrorCode.INVALID_VALUE,
                        message=f"'{officer}' is already the assigned Legal Officer",
                        received=officer,
                    )
                ],
            )
        self._require_user(Role.LEGAL_OFFICER, "assignedOfficer", user_id=officer)

        sub.previous_legal_officer = sub.assigned_legal_officer
        sub.assigned_legal_officer = officer
        if sub.lo_stage != LOStage.REASSIGNED:
            sub.reassigned_from_stage = sub.lo_stage
            sub.lo_stage = LOStage.REASSIGNED
        self._record_action(ctx)

    # Legal Officer -----------------------------------------------------

    def _handle_acknowledge_handover(self, ctx: _ActionContext) -> None:
        sub = ctx.submission
        sub.lo_stage = sub.reassigned_from_stage or LOStage.ACTIVE
        sub.reassigned_from_stage = None
        self._record_action(ctx)

    def _handle_submit_to_legal_gm(self, ctx: _ActionContext) -> None:
        ctx.machine.transition_to(SubmissionStatus.PENDING_LEGAL_GM_FINAL)
        ctx.machine.set_gm_stage(LegalGMStage.FINAL_APPROVAL)
        self._record_action(ctx)

    def _handle_officer_cancel(self, ctx: _ActionContext) -> None:
        ctx.machine.transition_to(SubmissionStatus.CANCELLED)
        self._record_action(ctx)

    def _handle_return_to_initiator(self, ctx: _ActionContext) -> None:
        updates = ctx.payload.get("docStatuses") or []
        if not isinstance(updates, list):
            raise invalid_field_error(
                "docStatuses", "docStatuses must be a list", expected="array", received=updates
            )
        for index, update in enumerate(updates):
            if not isinstance(update, dict) or not update.get("documentId"):
                raise invalid_field_error(
                    f"docStatuses.{index}",
                    "Each document status needs a documentId and status",
                    expected={"documentId": "string", "status": "string"},
                    received=update,
                )
            documents.set_document_status(
                ctx.submission,
                update["documentId"],
                update.get("status"),
                update.get("comment"),
            )
        ctx.machine.transition_to(SubmissionStatus.SENT_BACK)
        ctx.submission.lo_stage = LOStage.PENDING_GM
        self._record_action(ctx)

    def _handle_assign_court_officer(self, ctx: _ActionContext) -> None:
        officer = _text(ctx.payload.get("courtOfficerId"))
        if not officer:
            raise missing_field_error(["courtOfficerId"], "A Court Officer is required")
        self._require_user(Role.COURT_OFFICER, "courtOfficerId", user_id=officer)
        ctx.submission.court_officer_id = officer
        ctx.machine.transition_to(SubmissionStatus.PENDING_COURT_OFFICER)
        ctx.machine.set_officer_stage(LOStage.PENDING_COURT_OFFICER)
        self._record_action(ctx)

    def _handle_document_review(self, ctx: _ActionContext) -> None:
        if ctx.action == Action.SET_DOCUMENT_STATUS:
            missing = [
                key for key in ("documentId", "documentStatus") if not ctx.payload.get(key)
            ]
            if missing:
                raise missing_field_error(missing, "Document status update is incomplete")
            ctx.changed = documents.set_document_status(
                ctx.submission,
                ctx.payload["documentId"],
                ctx.payload["documentStatus"],
                ctx.comment or None,
            )
            return
        document = documents.request_additional_document(
            ctx.submission,
            ctx.payload.get("documentLabel") or "",
            ctx.actor.display_name,
        )
        self._record_action(ctx, ctx.comment or document.label)

    def _handle_save_official_use(self, ctx: _ActionContext) -> None:
        fields = _official_use_fields(ctx.payload)
        if not fields:
            raise missing_field_error(["officialUse"], "No official use fields were given")
        merged = dict(ctx.submission.official_use)
        merged.update(fields)
        ctx.changed = merged != ctx.submission.official_use
        ctx.submission.official_use = merged

    def _handle_complete(self, ctx: _ActionContext) -> None:
        merged = dict(ctx.submission.official_use)
        merged.update(_official_use_fields(ctx.payload))
        check_official_use(merged, self.settings.required_official_fields(ctx.submission.form_id))
        ctx.submission.official_use = merged
        ctx.machine.transition_to(SubmissionStatus.COMPLETED)
        self._record_action(ctx)

    # Court Officer -----------------------------------------------------

    def _handle_court_officer_submit(self, ctx: _ActionContext) -> None:
        ctx.machine.transition_to(SubmissionStatus.PENDING_LEGAL_OFFICER)
        ctx.machine.set_officer_stage(LOStage.REVIEW_FOR_GM)
        self._record_action(ctx)

    # Special approvers -------------------------------------------------

    def _handle_assign_special_approver(self, ctx: _ActionContext) -> None:
        sub = ctx.submission
        email = _text(ctx.payload.get("specialApproverEmail"))
        name = _text(ctx.payload.get("specialApproverName"))
        department = _text(ctx.payload.get("specialApproverDepartment")) or None
        if email:
            user = self._require_user(Role.SPECIAL_APPROVER, "specialApproverEmail", email=email)
            if user is not None:
                name = name or user.name
                department = department or user.department or None
        record = ledger.add_special_approver(
            sub, email, name, ctx.actor.role, ctx.now, department=department
        )
        if sub.status != SubmissionStatus.PENDING_SPECIAL_APPROVER:
            sub.special_approval_return_status = sub.status
            ctx.machine.transition_to(SubmissionStatus.PENDING_SPECIAL_APPROVER)
        self._record_action(ctx, ctx.comment or f"{record.approver_name or email} ({record.department})")

    def _handle_special_approval(self, ctx: _ActionContext) -> None:
        sub = ctx.submission
        if not ctx.actor.email:
            raise missing_field_error(["approverEmail"], "Special approvers act by email")
        record = ledger.pending_special_approver(sub, ctx.actor.email)
        ledger.record_special_decision(record, ctx.action, ctx.comment, ctx.now)
        if ctx.action != Action.APPROVED:
            ctx.machine.transition_to(SubmissionStatus.SENT_BACK)
            sub.special_approval_return_status = None
            return
        if ledger.all_special_approved(sub):
            target = sub.special_approval_return_status or SubmissionStatus.PENDING_LEGAL_OFFICER
            ctx.machine.transition_to(target)
            sub.special_approval_return_status = None

    # ------------------------------------------------------------------
    # Registry and comments
    # ------------------------------------------------------------------

    def set_document_status(
        self,
        submission: Submission,
        document_id: str,
        status: Union[DocumentStatus, str],
        comment: Optional[str] = None,
    ) -> Submission:
        """Write a reviewer status onto a document of a copy of ``submission``.

        Setting the same status again returns an unchanged copy.

        Raises:
            InvalidStateError: If the Legal Officer is not reviewing documents
            ValidationError: If ``status`` is not a reviewer document status
            NotFoundError: If the document does not exist
        """
        working = copy.deepcopy(submission)
        try:
            if documents.set_document_status(working, document_id, status, comment):
                working.updated_at = self.now()
        except WorkflowError as exc:
            exc.with_context(submission.id, submission.status.value)
            raise
        return working

    def request_additional_document(
        self, submission: Submission, label: str, requested_by: str
    ) -> Submission:
        """Append an ``LO_REQUESTED`` document; the workflow status is unchanged."""
        working = copy.deepcopy(submission)
        try:
            documents.request_additional_document(working, label, requested_by)
        except WorkflowError as exc:
            exc.with_context(submission.id, submission.status.value)
            raise
        working.updated_at = self.now()
        return working

    def add_prepared_document(
        self,
        submission: Submission,
        actor: Actor,
        label: str,
        doc_type: DocumentType,
        file_url: str,
    ) -> Submission:
        """Attach a Legal Officer's draft or final document.

        Raises:
            InvalidActorError: If the actor is not the assigned Legal Officer
            InvalidStateError: If the Legal Officer is not working the matter
        """
        try:
            if actor.role != Role.LEGAL_OFFICER:
                raise InvalidActorError(
                    f"Role '{actor.role.value}' cannot attach prepared documents"
                )
            self._check_identity(submission, actor)
            if (
                submission.status != SubmissionStatus.PENDING_LEGAL_OFFICER
                or submission.lo_stage not in PREPARATION_STAGES
            ):
                raise InvalidStateError(
                    f"Prepared documents cannot be attached in {submission.status.value} "
                    f"(stage {submission.lo_stage.value})"
                )
            working = copy.deepcopy(submission)
            now = self.now()
            documents.add_prepared_document(
                working, label, doc_type, file_url, actor.display_name, now
            )
        except WorkflowError as exc:
            exc.with_context(submission.id, submission.status.value)
            raise
        working.updated_at = now
        return working

    def attach_document_file(
        self, submission: Submission, document_id: str, file_url: str
    ) -> Submission:
        """Record a finished upload against a document of a copy of ``submission``.

        Raises:
            InvalidStateError: If the submission is terminal
            NotFoundError: If the document does not exist
        """
        working = copy.deepcopy(submission)
        now = self.now()
        try:
            documents.attach_file(working, document_id, file_url, now)
        except WorkflowError as exc:
            exc.with_context(submission.id, submission.status.value)
            raise
        working.updated_at = now
        return working

    def add_comment(self, submission: Submission, author: Actor, text: str) -> Submission:
        """Append a free-text comment.

        Raises:
            ValidationError: If ``text`` is blank
        """
        text = _text(text)
        if not text:
            raise missing_field_error(["text"], "Comment text is required").with_context(
                submission.id, submission.status.value
            )
        working = copy.deepcopy(submission)
        now = self.now()
        working.comments.append(
            Comment(
                id=f"cmt_{uuid.uuid4().hex[:16]}",
                author_name=author.display_name,
                author_role=author.role.value,
                text=text,
                created_at=now,
            )
        )
        working.updated_at = now
        return working

    def resubmit(
        self,
        submission: Submission,
        actor: Optional[Actor] = None,
        content: Optional[Dict[str, Any]] = None,
    ) -> ActionOutcome:
        """Resubmit a sent-back submission.

        Returns:
            ActionOutcome whose ``submission`` is the original (now
            ``RESUBMITTED``) and whose ``created`` is the new submission
        """
        payload: Dict[str, Any] = {}
        if content is not None:
            payload["content"] = content
        return self.apply_action(
            submission, actor or Actor(role=Role.INITIATOR), Action.RESUBMIT, payload
        )


__all__ = [
    "ActionOutcome",
    "WorkflowEngine",
    "DECISION_ACTIONS",
]

"""LegalHubRuntime orchestrator for the action endpoint.

The runtime is what the HTTP layer calls. For each request it validates the
payload, reads the submission from the store, lets the ``WorkflowEngine``
compute the new state, commits it in one compare-and-swap write, and then
notifies listeners. Responses are plain dicts: ``{"ok": True, "data": ...}``
on success, or the error envelope from ``WorkflowError.to_dict`` on failure.

Usage:
    >>> from legalhub.runtime import LegalHubRuntime
    >>> runtime = LegalHubRuntime()
    >>> created = runtime.create_submission(
    ...     {"initiatorId": "u_1", "companyCode": "DIMO", "title": "NDA"}
    ... )
    >>> created["data"]["status"]
    'PENDING_APPROVAL'
    >>> result = runtime.handle_action(created["data"]["id"], {"role": "CEO", "action": "APPROVED"})
    >>> result["error"]["type"]
    'invalid_actor'
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from legalhub.audit import project_log
from legalhub.collaborators import (
    FileStorage,
    FormConfiguration,
    InMemoryFileStorage,
    InMemorySubmissionStore,
    SubmissionStore,
    UserDirectory,
)
from legalhub.config import Settings, get_settings
from legalhub.engine import WorkflowEngine
from legalhub.errors import WorkflowError
from legalhub.events import EventEmitter, derive_event
from legalhub.log import get_logger
from legalhub.models import Submission
from legalhub.stats import dashboard_stats
from legalhub.types import Action, Actor, Role
from legalhub.validation import ACTION_REQUEST_VALIDATOR

LOGGER = get_logger(__name__, get_settings().log_level)


class LegalHubRuntime:
    """Orchestrator for the Legal Hub submission lifecycle.

    Attributes:
        settings: Engine settings
        store: Submission store (in memory unless given)
        engine: Workflow engine
        emitter: Event emitter notified after each commit
        file_storage: Blob storage for uploads

    Examples:
        >>> runtime = LegalHubRuntime()
        >>> runtime.get_submission("sub_missing")["error"]["type"]
        'not_found'
    """

    def __init__(
        self,
        store: Optional[SubmissionStore] = None,
        engine: Optional[WorkflowEngine] = None,
        emitter: Optional[EventEmitter] = None,
        settings: Optional[Settings] = None,
        file_storage: Optional[FileStorage] = None,
        directory: Optional[UserDirectory] = None,
        form_config: Optional[FormConfiguration] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or InMemorySubmissionStore()
        self.engine = engine or WorkflowEngine(
            settings=self.settings, directory=directory, form_config=form_config
        )
        self.emitter = emitter or EventEmitter()
        self.file_storage = file_storage or InMemoryFileStorage()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _projection(self, submission: Submission) -> Dict[str, Any]:
        data = submission.to_dict()
        data["requiredActors"] = sorted(
            r.value for r in self.engine.required_actors(submission)
        )
        return data

    def get_submission(self, submission_id: str) -> Dict[str, Any]:
        """Retrieve a submission with its projected audit log.

        Returns:
            ``{"ok": True, "data": {...submission, "log": [...]}}`` or an
            error envelope
        """
        try:
            submission = self.store.get(submission_id)
        except WorkflowError as exc:
            return self._reject(exc, submission_id, "get")
        data = self._projection(submission)
        data["log"] = [entry.to_dict() for entry in project_log(submission)]
        return {"ok": True, "data": data}

    def allowed_actions(self, submission_id: str, role: str) -> Dict[str, Any]:
        """List the actions ``role`` may take on a submission right now."""
        try:
            submission = self.store.get(submission_id)
            actions = self.engine.allowed_actions(submission, Role.parse(role))
        except WorkflowError as exc:
            return self._reject(exc, submission_id, "allowed_actions")
        return {"ok": True, "data": [a.value for a in actions]}

    def dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Dashboard figures over every stored submission."""
        names: Dict[str, str] = {}
        directory = self.engine.directory
        if directory is not None:
            names = {u.id: u.name for u in directory.lookup_users_by_role(Role.LEGAL_OFFICER)}
        stats = dashboard_stats(
            self.store.list_all(),
            now or self.engine.now(),
            sla_days=self.settings.sla_days,
            officer_names=names,
        )
        return {"ok": True, "data": stats.to_dict()}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_submission(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create and store a new submission.

        The daily sequence in the submission number is taken from the
        number of submissions the store already holds for the same day.
        """
        try:
            now = self.engine.now()
            day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
            sequence = self.store.count_created_between(day_start, day_start + timedelta(days=1)) + 1
            submission = self.engine.create_submission(payload, sequence=sequence, now=now)
            committed = self.store.commit([submission])[0]
        except WorkflowError as exc:
            return self._reject(exc, None, "create")

        actor = Actor(role=Role.INITIATOR, user_id=committed.initiator_id)
        LOGGER.info(
            "Created submission no=%s form=%s status=%s",
            committed.submission_no,
            committed.form_id,
            committed.status.value,
        )
        self._notify(None, committed, actor, None, now)
        return {"ok": True, "data": self._projection(committed)}

    def handle_action(self, submission_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        """Apply one action request to a submission.

        Args:
            submission_id: Target submission
            request: ``{role, action, comment?, approverName?, approverEmail?,
                approverId?, ...action-specific fields}``

        Returns:
            ``{"ok": True, "data": <submission>}``; a resubmission also
            returns the new submission under ``"resubmission"``. On failure
            the error envelope, with nothing written.
        """
        try:
            ACTION_REQUEST_VALIDATOR.check(request, "Invalid action request")
            actor = Actor.from_dict(request)
            action = Action.parse(request["action"])
            before = self.store.get(submission_id)
            outcome = self.engine.apply_action(before, actor, action, request)
            committed = self.store.commit(outcome.to_commit) if outcome.changed else [before]
        except WorkflowError as exc:
            return self._reject(exc, submission_id, str(request.get("action")))

        after = committed[0]
        if outcome.changed:
            ts = after.updated_at or self.engine.now()
            LOGGER.info(
                "Committed action=%s role=%s no=%s status=%s->%s stage=%s",
                action.value,
                actor.role.value,
                after.submission_no,
                before.status.value,
                after.status.value,
                after.lo_stage.value,
            )
            self._notify(before, after, actor, action, ts)
            if len(committed) > 1:
                self._notify(None, committed[1], actor, action, ts)
        response: Dict[str, Any] = {"ok": True, "data": self._projection(after)}
        if len(committed) > 1:
            response["resubmission"] = self._projection(committed[1])
        return response

    def add_comment(
        self, submission_id: str, author: Dict[str, Any], text: str
    ) -> Dict[str, Any]:
        """Append a comment by ``author`` (``{role, name?, email?}``)."""
        try:
            actor = Actor.from_dict(author)
            before = self.store.get(submission_id)
            after = self.store.commit([self.engine.add_comment(before, actor, text)])[0]
        except WorkflowError as exc:
            return self._reject(exc, submission_id, "comment")
        self._notify(before, after, actor, None, after.updated_at or self.engine.now())
        return {"ok": True, "data": self._projection(after)}

    def attach_document_file(
        self, submission_id: str, document_id: str, file_url: str
    ) -> Dict[str, Any]:
        """Record a finished upload against a document."""
        try:
            before = self.store.get(submission_id)
            updated = self.engine.attach_document_file(before, document_id, file_url)
            after = self.store.commit([updated])[0]
        except WorkflowError as exc:
            return self._reject(exc, submission_id, "attach")
        LOGGER.info("Attached file no=%s document=%s", after.submission_no, document_id)
        return {"ok": True, "data": self._projection(after)}

    def upload_document(
        self,
        submission_id: str,
        document_id: str,
        content: bytes,
        filename: str,
    ) -> Dict[str, Any]:
        """Store an uploaded file, then attach its URL to the document."""
        url = self.file_storage.upload_file(content, submission_id, filename)
        return self.attach_document_file(submission_id, document_id, url)

    def add_prepared_document(
        self,
        submission_id: str,
        author: Dict[str, Any],
        label: str,
        doc_type: str,
        content: bytes,
        filename: str,
    ) -> Dict[str, Any]:
        """Upload and attach a Legal Officer's draft or final document."""
        try:
            actor = Actor.from_dict(author)
            before = self.store.get(submission_id)
            url = self.file_storage.upload_file(content, submission_id, filename)
            updated = self.engine.add_prepared_document(before, actor, label, doc_type, url)
            after = self.store.commit([updated])[0]
        except WorkflowError as exc:
            return self._reject(exc, submission_id, "prepared_document")
        LOGGER.info("Attached prepared document no=%s type=%s", after.submission_no, doc_type)
        return {"ok": True, "data": self._projection(after)}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _notify(
        self,
        before: Optional[Submission],
        after: Submission,
        actor: Actor,
        action: Optional[Action],
        ts: datetime,
    ) -> None:
        self.emitter.emit(derive_event(before, after, actor, action, ts))

    def _reject(
        self, exc: WorkflowError, submission_id: Optional[str], operation: str
    ) -> Dict[str, Any]:
        exc.with_context(submission_id, None)
        LOGGER.warning(
            "Rejected %s submission=%s error=%s message=%s",
            operation,
            exc.submission_id,
            exc.error_type.value,
            exc.message,
        )
        return exc.to_dict()


__all__ = ["LegalHubRuntime"]

"""Notification events for Legal Hub submissions.

After the runtime commits an action it derives a ``WorkflowEvent`` from the
before and after snapshots and dispatches it through an ``EventEmitter``.
Notifiers subscribe to decide who to alert; the event carries the roles able
to act next so they need no knowledge of the transition table.

Events are fire-and-forget: listener failures are logged and never reach the
caller, and nothing in the engine depends on them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import json
import uuid

from dateutil.parser import isoparse

from legalhub.config import get_settings
from legalhub.log import get_logger
from legalhub.models import Submission
from legalhub.state_machine import WorkflowStateMachine
from legalhub.types import Action, Actor, EventType, SubmissionStatus

LOGGER = get_logger(__name__, get_settings().log_level)


@dataclass(frozen=True)
class WorkflowEvent:
    """A committed change to a submission.

    Attributes:
        event_id: Unique event identifier (e.g., "evt_3f2a...")
        type: Event type
        submission_id: Submission the event relates to
        submission_no: Human-readable submission number
        ts: UTC timestamp of the commit
        actor: Who acted
        status: Submission status after the change
        payload: Event details (previous status/stage, action, next actors)

    Examples:
        >>> from datetime import datetime, timezone
        >>> from legalhub.types import Role
        >>> event = WorkflowEvent(
        ...     event_id="evt_001",
        ...     type=EventType.STATUS_CHANGED,
        ...     submission_id="sub_001",
        ...     submission_no="LHD_20250101120000_001",
        ...     ts=datetime.now(timezone.utc),
        ...     actor=Actor(role=Role.BUM, name="Bimal"),
        ...     status=SubmissionStatus.PENDING_LEGAL_GM,
        ... )
    """
    event_id: str
    type: EventType
    submission_id: str
    submission_no: str
    ts: datetime
    actor: Actor
    status: SubmissionStatus
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Normalize enum fields given as strings."""
        if isinstance(self.type, str):
            object.__setattr__(self, "type", EventType(self.type))
        if isinstance(self.status, str):
            object.__setattr__(self, "status", SubmissionStatus(self.status))

    @property
    def next_actors(self) -> List[str]:
        return list(self.payload.get("nextActors", []))

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "eventId": self.event_id,
            "type": self.type.value,
            "submissionId": self.submission_id,
            "submissionNo": self.submission_no,
            "ts": self.ts.isoformat(),
            "actor": self.actor.to_dict(),
            "status": self.status.value,
            "payload": self.payload,
        }

    def to_jsonl(self) -> str:
        """Convert event to a single JSON line."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowEvent":
        """Create WorkflowEvent from dictionary."""
        return cls(
            event_id=data["eventId"],
            type=EventType(data["type"]),
            submission_id=data["submissionId"],
            submission_no=data.get("submissionNo", ""),
            ts=isoparse(data["ts"]),
            actor=Actor.from_dict(data["actor"]),
            status=SubmissionStatus(data["status"]),
            payload=data.get("payload") or {},
        )


# Event type for a committed action, by the status it produced
STATUS_EVENT_TYPES: Dict[SubmissionStatus, EventType] = {
    SubmissionStatus.SENT_BACK: EventType.SUBMISSION_SENT_BACK,
    SubmissionStatus.CANCELLED: EventType.SUBMISSION_CANCELLED,
    SubmissionStatus.COMPLETED: EventType.SUBMISSION_COMPLETED,
    SubmissionStatus.RESUBMITTED: EventType.SUBMISSION_RESUBMITTED,
}

ACTION_EVENT_TYPES: Dict[Action, EventType] = {
    Action.SUBMIT: EventType.SUBMISSION_SUBMITTED,
    Action.ASSIGN_SPECIAL_APPROVER: EventType.SPECIAL_APPROVER_ASSIGNED,
    Action.REASSIGN_OFFICER: EventType.OFFICER_REASSIGNED,
    Action.SET_DOCUMENT_STATUS: EventType.DOCUMENT_UPDATED,
    Action.REQUEST_DOCUMENT: EventType.DOCUMENT_REQUESTED,
}


def derive_event(
    before: Optional[Submission],
    after: Submission,
    actor: Actor,
    action: Optional[Action],
    ts: datetime,
) -> WorkflowEvent:
    """Describe the change from ``before`` to ``after`` as one event.

    Args:
        before: Snapshot read before the action (None for a creation)
        after: Snapshot committed by the action
        actor: Who acted
        action: The action performed, if any
        ts: Commit time
    """
    if before is None:
        event_type = EventType.SUBMISSION_CREATED
    elif after.status != before.status and after.status in STATUS_EVENT_TYPES:
        event_type = STATUS_EVENT_TYPES[after.status]
    elif action is not None and action in ACTION_EVENT_TYPES:
        event_type = ACTION_EVENT_TYPES[action]
    elif after.status != before.status:
        event_type = EventType.STATUS_CHANGED
    elif after.lo_stage != before.lo_stage:
        event_type = EventType.STAGE_CHANGED
    elif action in (Action.APPROVED, Action.SENT_BACK, Action.CANCELLED):
        event_type = EventType.APPROVAL_RECORDED
    else:
        event_type = EventType.COMMENT_ADDED

    payload: Dict[str, Any] = {
        "loStage": after.lo_stage.value,
        "nextActors": sorted(r.value for r in WorkflowStateMachine(after).required_actors()),
    }
    if action is not None:
        payload["action"] = action.value
    if before is not None:
        payload["fromStatus"] = before.status.value
        payload["fromStage"] = before.lo_stage.value
    if after.assigned_legal_officer:
        payload["assignedLegalOfficer"] = after.assigned_legal_officer

    return WorkflowEvent(
        event_id=f"evt_{uuid.uuid4().hex[:16]}",
        type=event_type,
        submission_id=after.id,
        submission_no=after.submission_no,
        ts=ts,
        actor=actor,
        status=after.status,
        payload=payload,
    )


EventListener = Callable[[WorkflowEvent], None]
"""Type alias for event listener callbacks.

Listeners are called synchronously after the commit. They should not
perform long-running operations.
"""


class EventEmitter:
    """Event emitter for managing event listeners and dispatching events.

    Features:
    - Type-specific subscriptions (listen to specific event types)
    - Wildcard subscriptions (listen to all events)
    - Synchronous dispatch (listeners called in registration order)
    - Error isolation (a failing listener is logged and skipped)

    Examples:
        >>> emitter = EventEmitter()
        >>> emitter.on(EventType.SUBMISSION_COMPLETED, lambda e: print(e.submission_no))
        >>> emitter.listener_count()
        1
    """

    def __init__(self):
        """Initialize event emitter with empty listener registries."""
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        """Subscribe to a specific event type."""
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        """Subscribe to all event types (wildcard subscription)."""
        self._any_listeners.append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        """Unsubscribe from a specific event type."""
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: EventListener) -> None:
        """Unsubscribe from wildcard subscription."""
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, event: WorkflowEvent) -> None:
        """Dispatch an event to all registered listeners.

        Type-specific listeners run first, then wildcard listeners. A
        listener that raises is logged and does not stop the others.
        """
        for listener in list(self._listeners.get(event.type, [])) + list(self._any_listeners):
            try:
                listener(event)
            except Exception:
                LOGGER.exception(
                    "Event listener failed event=%s submission=%s",
                    event.type.value,
                    event.submission_no,
                )

    def clear(self) -> None:
        """Remove all event listeners."""
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Count registered listeners, for one type or in total (including wildcard)."""
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return len(self._any_listeners) + sum(len(v) for v in self._listeners.values())


__all__ = [
    "WorkflowEvent",
    "EventListener",
    "EventEmitter",
    "derive_event",
]

"""Dashboard statistics for the Legal GM home screen.

Computed on request from the stored submissions; nothing here is persisted.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from legalhub.models import Submission
from legalhub.types import SubmissionStatus
from legalhub.workflows import FORM_WORKFLOWS

# Stage shown for an ongoing task, by status
STAGE_LABELS: Dict[SubmissionStatus, str] = {
    SubmissionStatus.DRAFT: "Draft",
    SubmissionStatus.PENDING_APPROVAL: "Awaiting BUM / FBP / Cluster Head Approvals",
    SubmissionStatus.PENDING_CEO: "Awaiting CEO Approval",
    SubmissionStatus.PENDING_LEGAL_GM: "Pending Legal GM Initial Review",
    SubmissionStatus.PENDING_LEGAL_GM_FINAL: "Pending Legal GM Final Approval",
    SubmissionStatus.PENDING_LEGAL_OFFICER: "Under Legal Review",
    SubmissionStatus.PENDING_SPECIAL_APPROVER: "Awaiting Special Approver",
    SubmissionStatus.PENDING_COURT_OFFICER: "With Court Officer",
    SubmissionStatus.SENT_BACK: "Sent Back - Awaiting Resubmission",
}

CLOSED_STATUSES = frozenset({
    SubmissionStatus.COMPLETED,
    SubmissionStatus.CANCELLED,
    SubmissionStatus.RESUBMITTED,
})

ON_TRACK = "ON_TRACK"
LATE = "LATE"


def display_stage(status: SubmissionStatus) -> str:
    return STAGE_LABELS.get(status, status.value)


@dataclass(frozen=True)
class FormCount:
    form_id: int
    label: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"formId": self.form_id, "label": self.label, "count": self.count}


@dataclass(frozen=True)
class OngoingTask:
    """A submission still moving through the workflow.

    Attributes:
        id: Submission id
        request_no: Submission number
        title: Form name shown on the card
        stage: Human-readable stage
        filter: ``LATE`` or ``ON_TRACK``
        days_overdue: Whole days past the SLA, when past it
    """
    id: str
    request_no: str
    title: str
    stage: str
    filter: str
    days_overdue: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "requestNo": self.request_no,
            "title": self.title,
            "stage": self.stage,
            "filter": self.filter,
        }
        if self.days_overdue is not None:
            result["daysOverdue"] = self.days_overdue
        return result


@dataclass
class OfficerWorkload:
    """Per-Legal-Officer counts; sent back and cancelled matters count as late."""
    officer_id: str
    name: str
    on_track: int = 0
    late: int = 0
    completed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "officerId": self.officer_id,
            "name": self.name,
            "onTrack": self.on_track,
            "late": self.late,
            "completed": self.completed,
        }


@dataclass
class DashboardStats:
    stats_cards: List[FormCount] = field(default_factory=list)
    ongoing_tasks: List[OngoingTask] = field(default_factory=list)
    officer_stats: List[OfficerWorkload] = field(default_factory=list)
    completed_counts: Dict[int, int] = field(default_factory=dict)
    early_counts: Dict[int, int] = field(default_factory=dict)
    late_counts: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statsCards": [c.to_dict() for c in self.stats_cards],
            "ongoingTasks": [t.to_dict() for t in self.ongoing_tasks],
            "loStats": [o.to_dict() for o in self.officer_stats],
            "completedCounts": dict(self.completed_counts),
            "earlyCount": dict(self.early_counts),
            "lateCount": dict(self.late_counts),
        }


def _days_between(start: datetime, end: datetime) -> int:
    return (end - start) // timedelta(days=1)


def ongoing_task(submission: Submission, now: datetime, sla_days: int) -> OngoingTask:
    """Classify one open submission against the SLA.

    Examples:
        >>> from datetime import timezone
        >>> from legalhub.models import Submission
        >>> created = datetime(2025, 1, 1, tzinfo=timezone.utc)
        >>> sub = Submission(id="s", submission_no="LHD_1", form_id=1,
        ...                  form_name="Contract Review Form", initiator_id="u",
        ...                  created_at=created)
        >>> task = ongoing_task(sub, created + timedelta(days=20), 14)
        >>> task.filter, task.days_overdue
        ('LATE', 6)
    """
    days_since = _days_between(submission.created_at, now)
    overdue = days_since > sla_days
    late = overdue or submission.status == SubmissionStatus.SENT_BACK
    return OngoingTask(
        id=submission.id,
        request_no=submission.submission_no,
        title=submission.form_name or FORM_WORKFLOWS[1].name,
        stage=display_stage(submission.status),
        filter=LATE if late else ON_TRACK,
        days_overdue=days_since - sla_days if overdue else None,
    )


def _completed_on_time(submission: Submission, sla_days: int) -> bool:
    completed_at = submission.updated_at or submission.created_at
    due = submission.due_date or submission.created_at + timedelta(days=sla_days)
    return completed_at <= due


def dashboard_stats(
    submissions: Iterable[Submission],
    now: datetime,
    sla_days: int = 14,
    officer_names: Optional[Mapping[str, str]] = None,
) -> DashboardStats:
    """Compute the dashboard figures.

    Args:
        submissions: Every stored submission
        now: Reference time for SLA checks
        sla_days: Days a submission may stay open before it is late
        officer_names: Legal Officer id to display name; unknown ids are shown as-is

    Returns:
        DashboardStats with per-form counts over all known forms, the open
        tasks, per-officer workload, and completion counts split into on time
        and late by due date
    """
    submissions = list(submissions)
    officer_names = officer_names or {}
    stats = DashboardStats()

    per_form = Counter(s.form_id for s in submissions)
    stats.stats_cards = [
        FormCount(form_id=form_id, label=workflow.name, count=per_form.get(form_id, 0))
        for form_id, workflow in sorted(FORM_WORKFLOWS.items())
    ]

    stats.ongoing_tasks = [
        ongoing_task(s, now, sla_days) for s in submissions if s.status not in CLOSED_STATUSES
    ]

    workloads: Dict[str, OfficerWorkload] = {}
    for submission in submissions:
        officer = submission.assigned_legal_officer
        if not officer or submission.status == SubmissionStatus.RESUBMITTED:
            continue
        workload = workloads.get(officer)
        if workload is None:
            workload = OfficerWorkload(officer_id=officer, name=officer_names.get(officer, officer))
            workloads[officer] = workload
        if submission.status == SubmissionStatus.COMPLETED:
            workload.completed += 1
        elif submission.status in (SubmissionStatus.SENT_BACK, SubmissionStatus.CANCELLED):
            workload.late += 1
        else:
            workload.on_track += 1
    stats.officer_stats = list(workloads.values())

    for submission in submissions:
        if submission.status != SubmissionStatus.COMPLETED:
            continue
        form_id = submission.form_id
        stats.completed_counts[form_id] = stats.completed_counts.get(form_id, 0) + 1
        bucket = stats.early_counts if _completed_on_time(submission, sla_days) else stats.late_counts
        bucket[form_id] = bucket.get(form_id, 0) + 1

    return stats


__all__ = [
    "STAGE_LABELS",
    "display_stage",
    "FormCount",
    "OngoingTask",
    "OfficerWorkload",
    "DashboardStats",
    "ongoing_task",
    "dashboard_stats",
]

"""Per-form workflow shapes.

All forms share one state machine; they differ only in which roles form the
parallel first-level group, whether a CEO hop follows it, and whether the
Legal Officer must route the matter through a Court Officer.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from legalhub.types import LOStage, Role, SubmissionStatus


@dataclass(frozen=True)
class FormWorkflow:
    """Workflow shape of one form type.

    Attributes:
        form_id: Form identifier
        name: Default form name
        parallel_roles: First-level approvers acting in parallel
        ceo_review: Whether a CEO approval follows the parallel group
        court_officer: Whether the Legal Officer works through a Court Officer
    """
    form_id: int
    name: str
    parallel_roles: Tuple[Role, ...] = (Role.BUM, Role.FBP, Role.CLUSTER_HEAD)
    ceo_review: bool = False
    court_officer: bool = False

    @property
    def ledger_roles(self) -> Tuple[Role, ...]:
        """Roles that get an Approval Ledger row at creation, in order."""
        roles = list(self.parallel_roles)
        if self.ceo_review:
            roles.append(Role.CEO)
        roles.append(Role.LEGAL_GM)
        return tuple(roles)

    @property
    def after_parallel_approval(self) -> SubmissionStatus:
        if self.ceo_review:
            return SubmissionStatus.PENDING_CEO
        return SubmissionStatus.PENDING_LEGAL_GM

    @property
    def first_officer_stage(self) -> LOStage:
        """Legal Officer stage entered when the Legal GM's initial review passes."""
        if self.court_officer:
            return LOStage.ASSIGN_COURT_OFFICER
        return LOStage.ACTIVE


FORM_WORKFLOWS: Dict[int, FormWorkflow] = {
    1: FormWorkflow(form_id=1, name="Contract Review Form"),
    2: FormWorkflow(form_id=2, name="Lease Agreement", ceo_review=True),
    3: FormWorkflow(
        form_id=3,
        name="Instruction For Litigation",
        parallel_roles=(Role.BUM, Role.FBP),
        court_officer=True,
    ),
    4: FormWorkflow(form_id=4, name="Vehicle Rent Agreement"),
    5: FormWorkflow(form_id=5, name="Request for Power of Attorney"),
    6: FormWorkflow(form_id=6, name="Registration of a Trademark"),
    7: FormWorkflow(form_id=7, name="Termination of agreements/lease agreements"),
    8: FormWorkflow(form_id=8, name="Handing over of the leased premises"),
    9: FormWorkflow(form_id=9, name="Approval for Purchasing of a Premises"),
    10: FormWorkflow(form_id=10, name="Instruction to Issue Letter of Demand"),
}


def workflow_for(form_id: int) -> FormWorkflow:
    """Return the workflow shape for ``form_id``; unknown forms use Form 1's shape."""
    workflow = FORM_WORKFLOWS.get(form_id)
    if workflow is None:
        return FormWorkflow(form_id=form_id, name=f"Form {form_id}")
    return workflow


__all__ = ["FormWorkflow", "FORM_WORKFLOWS", "workflow_for"]

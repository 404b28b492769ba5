"""
Lead stage state machine.

new -> contacted -> qualified -> opportunity -> customer, plus lost.
`customer` and `lost` are terminal: automated re-evaluation leaves them alone.
"""
from datetime import datetime, timezone
from typing import List, Optional

from common.enums import LeadStage, TERMINAL_STAGES
from common.schemas import Lead, LeadWorkflow, QualificationCriteria, StageTransition
from lifecycle_engine.classifiers import BaseLeadClassifier
from lifecycle_engine.qualification import calculate_qualification_score


OPPORTUNITY_MIN_SCORE = 80
OPPORTUNITY_MIN_INTEREST = 4
QUALIFIED_MIN_SCORE = 60
CONTACTED_MIN_INTEREST = 3

SECONDS_PER_DAY = 60 * 60 * 24

STAGE_ORDER = {
    LeadStage.NEW: 0,
    LeadStage.CONTACTED: 1,
    LeadStage.QUALIFIED: 2,
    LeadStage.OPPORTUNITY: 3,
    LeadStage.CUSTOMER: 4,
}

_STAGE_ACTIONS = {
    LeadStage.NEW: [
        "Make initial contact",
        "Send introductory email",
        "Schedule discovery call",
    ],
    LeadStage.CONTACTED: [
        "Conduct needs assessment",
        "Identify decision makers",
        "Determine budget range",
        "Establish timeline",
    ],
    LeadStage.QUALIFIED: [
        "Schedule product demo",
        "Prepare custom proposal",
        "Conduct stakeholder meeting",
        "Address specific pain points",
    ],
    LeadStage.OPPORTUNITY: [
        "Finalize proposal",
        "Negotiate terms",
        "Get buy-in from all stakeholders",
        "Schedule closing meeting",
    ],
    LeadStage.CUSTOMER: [
        "Send onboarding materials",
        "Schedule implementation",
        "Assign customer success manager",
        "Set up regular check-ins",
    ],
    LeadStage.LOST: [
        "Conduct loss analysis",
        "Add to nurture campaign",
        "Schedule future follow-up",
    ],
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_stage(
    lead: Lead,
    score: int,
    current_stage: Optional[LeadStage] = None
) -> LeadStage:
    """Target stage for the lead given its score and the stage it is in."""
    if current_stage in TERMINAL_STAGES:
        return current_stage

    if lead.signed_up:
        return LeadStage.CUSTOMER

    if score >= OPPORTUNITY_MIN_SCORE and lead.interest_level >= OPPORTUNITY_MIN_INTEREST:
        target = LeadStage.OPPORTUNITY
    elif score >= QUALIFIED_MIN_SCORE:
        target = LeadStage.QUALIFIED
    elif lead.package_seen or lead.interest_level >= CONTACTED_MIN_INTEREST:
        target = LeadStage.CONTACTED
    else:
        target = LeadStage.NEW

    # Stages only move forward
    if current_stage is not None and STAGE_ORDER[target] < STAGE_ORDER[current_stage]:
        return current_stage
    return target


def _transition_date(history: List[StageTransition], now: datetime) -> datetime:
    # History must stay chronologically non-decreasing
    if history and history[-1].transition_date > now:
        return history[-1].transition_date
    return now


def advance_workflow(
    workflow: LeadWorkflow,
    lead: Lead,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
    performed_by: Optional[str] = None,
    classifier: Optional[BaseLeadClassifier] = None
) -> LeadWorkflow:
    """
    Recomputes the score and stage of a workflow.

    Args:
        workflow: Current snapshot, not modified
        lead: Lead the workflow belongs to
        now: Evaluation time, defaults to current UTC time
        reason: Stored on the appended transition
        performed_by: Stored on the appended transition
        classifier: Free-text classifier used for scoring

    Returns:
        LeadWorkflow: New snapshot. A stage change appends exactly one
                      transition; an unchanged stage appends nothing.
    """
    now = now or _utcnow()
    score = calculate_qualification_score(lead, workflow.criteria, classifier=classifier)
    target = next_stage(lead, score, workflow.current_stage)

    history = list(workflow.stage_history)
    if target != workflow.current_stage:
        history.append(StageTransition(
            from_stage=workflow.current_stage,
            to_stage=target,
            transition_date=_transition_date(history, now),
            reason=reason,
            performed_by=performed_by,
        ))
    elif score == workflow.qualification_score:
        return workflow

    return workflow.model_copy(update={
        "current_stage": target,
        "qualification_score": score,
        "stage_history": history,
        "updated_at": now,
    })


def start_workflow(
    lead: Lead,
    criteria: Optional[QualificationCriteria] = None,
    now: Optional[datetime] = None,
    classifier: Optional[BaseLeadClassifier] = None
) -> LeadWorkflow:
    """Builds the first workflow of a lead and resolves its initial stage."""
    now = now or _utcnow()
    workflow = LeadWorkflow(
        lead_id=lead.id,
        current_stage=LeadStage.NEW,
        criteria=criteria or QualificationCriteria(),
        assigned_to=lead.assigned_rep_id,
        created_at=now,
        updated_at=now,
    )
    return advance_workflow(workflow, lead, now=now, reason="Initial qualification", classifier=classifier)


def get_next_actions(workflow: LeadWorkflow) -> List[str]:
    """Stage checklist followed by actions for missing criteria."""
    actions = list(_STAGE_ACTIONS.get(workflow.current_stage, []))

    if not workflow.criteria.has_budget:
        actions.append("Discuss budget requirements")
    if not workflow.criteria.has_authority:
        actions.append("Identify and engage decision makers")
    if not workflow.criteria.has_timeline:
        actions.append("Establish implementation timeline")

    return actions


def _whole_days(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // SECONDS_PER_DAY)


def calculate_days_in_stage(
    stage_history: List[StageTransition],
    stage: LeadStage,
    now: Optional[datetime] = None
) -> int:
    """Total whole days spent in `stage` across all visits."""
    now = now or _utcnow()
    total_days = 0
    entry_date = None

    for transition in stage_history:
        if transition.to_stage == stage and entry_date is None:
            entry_date = transition.transition_date
        elif transition.from_stage == stage and entry_date is not None:
            total_days += _whole_days(entry_date, transition.transition_date)
            entry_date = None

    # Still in the stage
    if entry_date is not None:
        total_days += _whole_days(entry_date, now)

    return total_days


def days_in_current_stage(workflow: LeadWorkflow, now: Optional[datetime] = None) -> int:
    """Whole days since the last transition, or since creation without history."""
    now = now or _utcnow()
    if workflow.stage_history:
        started = workflow.stage_history[-1].transition_date
    else:
        started = workflow.created_at
    return _whole_days(started, now)

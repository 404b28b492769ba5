"""
Follow-up recommendations for sales reps.

Stage-specific suggestions come first, then checks that apply in any stage.
The result is stably sorted urgent > high > medium > low. Advisory only.
"""
from datetime import datetime
from typing import List, Optional

from common.enums import LeadStage, RecommendationPriority, RecommendationType
from common.schemas import FollowUpRecommendation, Lead, LeadWorkflow
from lifecycle_engine.classifiers import BaseLeadClassifier, KeywordLeadClassifier
from lifecycle_engine.stage_resolver import days_in_current_stage


STALLED_CONTACT_DAYS = 3
STALLED_OPPORTUNITY_DAYS = 7
EXECUTIVE_SPONSOR_BUDGET = 25000
HIGH_INTEREST_LEVEL = 4

PRIORITY_ORDER = {
    RecommendationPriority.URGENT: 0,
    RecommendationPriority.HIGH: 1,
    RecommendationPriority.MEDIUM: 2,
    RecommendationPriority.LOW: 3,
}

INTRO_EMAIL_TEMPLATE = (
    "Hi {name},\n\n"
    "I noticed you expressed interest in our solution. I'd love to learn more "
    "about your business needs and show you how we can help.\n\n"
    "Do you have 15 minutes this week for a quick call?"
)

_default_classifier = KeywordLeadClassifier()


def _recommendation(
    id: str,
    type: RecommendationType,
    priority: RecommendationPriority,
    action: str,
    reason: str,
    suggested_timing: str,
    icon: str,
    template: Optional[str] = None
) -> FollowUpRecommendation:
    return FollowUpRecommendation(
        id=id,
        type=type,
        priority=priority,
        action=action,
        reason=reason,
        suggested_timing=suggested_timing,
        template=template,
        icon=icon,
    )


def _new_stage(workflow: LeadWorkflow, lead: Lead, days_in_stage: int) -> List[FollowUpRecommendation]:
    return [_recommendation(
        "initial-contact", RecommendationType.EMAIL, RecommendationPriority.HIGH,
        "Send introductory email",
        "First contact establishes relationship",
        "Within 24 hours", "📧",
        template=INTRO_EMAIL_TEMPLATE.format(name=lead.name or "there"),
    )]


def _contacted_stage(workflow: LeadWorkflow, lead: Lead, days_in_stage: int) -> List[FollowUpRecommendation]:
    recommendations = []
    if days_in_stage > STALLED_CONTACT_DAYS:
        recommendations.append(_recommendation(
            "follow-up-call", RecommendationType.CALL, RecommendationPriority.URGENT,
            "Schedule discovery call",
            "Lead has been contacted but not qualified for 3+ days",
            "Today", "📞",
        ))
    if not workflow.criteria.has_budget:
        recommendations.append(_recommendation(
            "budget-discussion", RecommendationType.MEETING, RecommendationPriority.HIGH,
            "Discuss budget requirements",
            "Budget not yet identified",
            "Next meeting", "💰",
        ))
    if not workflow.criteria.has_authority:
        recommendations.append(_recommendation(
            "identify-dm", RecommendationType.TASK, RecommendationPriority.HIGH,
            "Identify decision makers",
            "Decision maker not yet identified",
            "Before next call", "👥",
        ))
    return recommendations


def _qualified_stage(workflow: LeadWorkflow, lead: Lead, days_in_stage: int) -> List[FollowUpRecommendation]:
    recommendations = [_recommendation(
        "demo-schedule", RecommendationType.MEETING, RecommendationPriority.HIGH,
        "Schedule product demonstration",
        "Qualified leads should see the product quickly",
        "Within 48 hours", "🖥️",
    )]
    if lead.specific_needs:
        recommendations.append(_recommendation(
            "custom-proposal", RecommendationType.TASK, RecommendationPriority.MEDIUM,
            "Prepare customized proposal",
            "Lead has specific needs that require tailored solution",
            "Before demo", "📋",
        ))
    return recommendations


def _opportunity_playbook(workflow: LeadWorkflow, lead: Lead, days_in_stage: int) -> List[FollowUpRecommendation]:
    recommendations = []
    if days_in_stage > STALLED_OPPORTUNITY_DAYS:
        recommendations.append(_recommendation(
            "close-urgency", RecommendationType.CALL, RecommendationPriority.URGENT,
            "Address any remaining concerns",
            "Opportunity has been open for 7+ days",
            "Today", "🚨",
        ))
    recommendations.append(_recommendation(
        "roi-analysis", RecommendationType.CONTENT, RecommendationPriority.HIGH,
        "Share ROI analysis or case study",
        "Build confidence in solution value",
        "This week", "📊",
    ))
    budget_range = workflow.criteria.budget_range
    if budget_range and budget_range.min >= EXECUTIVE_SPONSOR_BUDGET:
        recommendations.append(_recommendation(
            "executive-involvement", RecommendationType.MEETING, RecommendationPriority.MEDIUM,
            "Involve executive sponsor",
            "High-value deal benefits from executive alignment",
            "Final negotiation", "👔",
        ))
    return recommendations


def _customer_stage(workflow: LeadWorkflow, lead: Lead, days_in_stage: int) -> List[FollowUpRecommendation]:
    return [
        _recommendation(
            "onboarding", RecommendationType.TASK, RecommendationPriority.URGENT,
            "Begin onboarding process",
            "Quick onboarding improves customer satisfaction",
            "Immediately", "🎯",
        ),
        _recommendation(
            "success-checkin", RecommendationType.MEETING, RecommendationPriority.MEDIUM,
            "Schedule 30-day success check-in",
            "Early engagement prevents churn",
            "30 days post-sale", "✅",
        ),
    ]


def _lost_stage(workflow: LeadWorkflow, lead: Lead, days_in_stage: int) -> List[FollowUpRecommendation]:
    return [
        _recommendation(
            "loss-analysis", RecommendationType.TASK, RecommendationPriority.MEDIUM,
            "Conduct loss analysis",
            "Learn from lost opportunities",
            "This week", "📝",
        ),
        _recommendation(
            "nurture-campaign", RecommendationType.EMAIL, RecommendationPriority.LOW,
            "Add to nurture campaign",
            "Keep relationship warm for future opportunities",
            "Quarterly", "🌱",
        ),
    ]


_STAGE_RECOMMENDATIONS = {
    LeadStage.NEW: _new_stage,
    LeadStage.CONTACTED: _contacted_stage,
    LeadStage.QUALIFIED: _qualified_stage,
    LeadStage.CUSTOMER: _customer_stage,
    LeadStage.LOST: _lost_stage,
}


def generate_follow_up_recommendations(
    workflow: LeadWorkflow,
    lead: Lead,
    days_in_stage: Optional[int] = None,
    now: Optional[datetime] = None,
    opportunity_playbook: bool = False,
    classifier: Optional[BaseLeadClassifier] = None
) -> List[FollowUpRecommendation]:
    """
    Builds the follow-up list for a lead.

    Args:
        workflow: Workflow snapshot, not modified
        lead: Lead the workflow belongs to
        days_in_stage: Overrides the days computed from the stage history
        now: Reference time for days in stage
        opportunity_playbook: Emit closing recommendations for the
                              opportunity stage, which otherwise gets none
        classifier: Free-text classifier for decision makers

    Returns:
        List[FollowUpRecommendation]: Sorted by priority, stable within one
    """
    classifier = classifier or _default_classifier
    if days_in_stage is None:
        days_in_stage = days_in_current_stage(workflow, now)

    stage = workflow.current_stage
    handler = _STAGE_RECOMMENDATIONS.get(stage)
    if stage == LeadStage.OPPORTUNITY and opportunity_playbook:
        handler = _opportunity_playbook

    recommendations = handler(workflow, lead, days_in_stage) if handler else []

    if lead.interest_level >= HIGH_INTEREST_LEVEL and stage != LeadStage.CUSTOMER:
        recommendations.append(_recommendation(
            "high-interest-fast-track", RecommendationType.CALL, RecommendationPriority.HIGH,
            "Fast-track high-interest lead",
            f"Interest level {lead.interest_level}/5 indicates strong buying intent",
            "Within 24 hours", "🔥",
        ))

    if not lead.package_seen and stage == LeadStage.QUALIFIED:
        recommendations.append(_recommendation(
            "share-materials", RecommendationType.EMAIL, RecommendationPriority.MEDIUM,
            "Share marketing materials",
            "Qualified lead hasn't seen our package yet",
            "Today", "📦",
        ))

    if classifier.classify(lead.decision_makers, None).multiple_decision_makers:
        recommendations.append(_recommendation(
            "stakeholder-meeting", RecommendationType.MEETING, RecommendationPriority.MEDIUM,
            "Organize stakeholder alignment meeting",
            "Multiple decision makers need to be aligned",
            "Before closing", "🤝",
        ))

    recommendations.sort(key=lambda r: PRIORITY_ORDER[r.priority])
    return recommendations

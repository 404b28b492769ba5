"""
Deal close-probability estimate.

Stage base score plus four bonus buckets minus penalties, clamped to 0..100,
with the insights that explain each contribution. Read-only over the workflow.
"""
from datetime import datetime, timezone
from typing import List, Optional

from common.enums import Confidence, LeadStage
from common.schemas import DealFactors, Lead, LeadWorkflow, ProbabilityBreakdown
from lifecycle_engine.classifiers import BaseLeadClassifier, KeywordLeadClassifier
from lifecycle_engine.qualification import count_bant


STAGE_BASE_PROBABILITY = {
    LeadStage.NEW: 5,
    LeadStage.CONTACTED: 15,
    LeadStage.QUALIFIED: 35,
    LeadStage.OPPORTUNITY: 65,
    LeadStage.CUSTOMER: 95,
    LeadStage.LOST: 0,
}

SIGNIFICANT_BUDGET = 25000
URGENT_TIMELINE_MONTHS = 3
FAST_PROGRESSION_DAYS = 7
STALLED_CONTACT_DAYS = 14

SECONDS_PER_DAY = 60 * 60 * 24

_default_classifier = KeywordLeadClassifier()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _days_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // SECONDS_PER_DAY)


def _headline(probability: int) -> str:
    if probability >= 70:
        return "🔥 Hot deal - prioritize immediate action"
    if probability >= 50:
        return "💼 Good opportunity - maintain momentum"
    if probability >= 30:
        return "🌱 Needs nurturing - focus on qualification"
    return "❄️ Cold lead - consider re-qualification"


def _confidence(history_length: int, bant_count: int) -> Confidence:
    if history_length >= 3 and bant_count >= 3:
        return Confidence.HIGH
    if history_length >= 2 and bant_count >= 2:
        return Confidence.MEDIUM
    return Confidence.LOW


def calculate_deal_probability(
    workflow: LeadWorkflow,
    lead: Lead,
    factors: Optional[DealFactors] = None,
    now: Optional[datetime] = None,
    classifier: Optional[BaseLeadClassifier] = None
) -> ProbabilityBreakdown:
    """
    Estimates the probability that the lead closes.

    Args:
        workflow: Workflow snapshot, not modified
        lead: Lead the workflow belongs to
        factors: Facts known outside the workflow (previous customer, referral)
        now: Reference time for the stalled-contact check
        classifier: Free-text classifier for decision makers and needs

    Returns:
        ProbabilityBreakdown with bucket totals, the clamped final probability,
        a confidence level and insights (headline first, then factors in
        evaluation order).
    """
    now = now or _utcnow()
    classifier = classifier or _default_classifier
    criteria = workflow.criteria
    history = workflow.stage_history
    signals = classifier.classify(lead.decision_makers, lead.specific_needs)
    insights: List[str] = []

    base_score = STAGE_BASE_PROBABILITY.get(workflow.current_stage, 5)

    # Lead quality
    quality_bonus = 0
    if workflow.qualification_score >= 80:
        quality_bonus += 10
        insights.append("High qualification score indicates strong fit")
    elif workflow.qualification_score >= 60:
        quality_bonus += 5

    if lead.interest_level >= 4:
        quality_bonus += 10
        insights.append("Very high interest level")
    elif lead.interest_level >= 3:
        quality_bonus += 5

    bant_count = count_bant(criteria)
    if bant_count == 4:
        quality_bonus += 5
        insights.append("All BANT criteria met")

    # Engagement
    engagement_bonus = 0
    if lead.package_seen:
        engagement_bonus += 5
        insights.append("Engaged with marketing materials")

    if signals.multiple_decision_makers:
        engagement_bonus += 5
        insights.append("Multiple stakeholders involved")

    if signals.needs_detailed:
        engagement_bonus += 5
        insights.append("Clear pain points identified")

    # Business
    business_bonus = 0
    if criteria.has_budget:
        business_bonus += 5
        if criteria.budget_range and criteria.budget_range.min >= SIGNIFICANT_BUDGET:
            business_bonus += 5
            insights.append("Significant budget available")

    if criteria.has_timeline and criteria.timeline_months:
        if criteria.timeline_months <= URGENT_TIMELINE_MONTHS:
            business_bonus += 5
            insights.append("Urgent timeline increases close probability")

    # History
    historical_bonus = 0
    if len(history) >= 2:
        progression_days = _days_between(history[0].transition_date, history[-1].transition_date)
        if progression_days <= FAST_PROGRESSION_DAYS:
            historical_bonus += 5
            insights.append("Fast progression through sales stages")

    if factors is not None:
        if factors.previous_customer:
            historical_bonus += 5
            insights.append("Previous customer relationship")
        if factors.referral_source:
            historical_bonus += 5
            insights.append("Referral leads have higher close rates")

    penalties = 0
    if not criteria.has_budget:
        penalties += 10
        insights.append("No budget identified (major risk)")

    if not criteria.has_authority:
        penalties += 5
        insights.append("Decision maker not identified")

    if workflow.current_stage == LeadStage.CONTACTED and history:
        # Measured from the last workflow write, which a score-only refresh also moves
        if _days_between(workflow.updated_at, now) > STALLED_CONTACT_DAYS:
            penalties += 5
            insights.append("Stalled in contact stage")

    total_bonus = quality_bonus + engagement_bonus + business_bonus + historical_bonus
    final_probability = max(0, min(100, base_score + total_bonus - penalties))

    insights.insert(0, _headline(final_probability))

    return ProbabilityBreakdown(
        base_score=base_score,
        quality_bonus=quality_bonus,
        engagement_bonus=engagement_bonus,
        business_bonus=business_bonus,
        historical_bonus=historical_bonus,
        penalties=penalties,
        final_probability=final_probability,
        confidence=_confidence(len(history), bant_count),
        insights=insights,
    )


def probability_label(probability: int) -> str:
    if probability >= 80:
        return "Very Likely"
    if probability >= 60:
        return "Likely"
    if probability >= 40:
        return "Possible"
    if probability >= 20:
        return "Unlikely"
    return "Very Unlikely"

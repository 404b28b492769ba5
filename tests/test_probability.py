from datetime import timedelta

import pytest

from common.enums import Confidence, LeadStage
from common.schemas import BudgetRange, DealFactors, QualificationCriteria
from lifecycle_engine.probability import calculate_deal_probability, probability_label

from conftest import NOW


DETAILED_NEEDS = "Need a CRM for 40 agents with call recording, dashboards and WhatsApp support now"


@pytest.fixture
def hot_deal(lead_factory, workflow_factory):
    criteria = QualificationCriteria(
        has_budget=True,
        has_authority=True,
        has_need=True,
        has_timeline=True,
        budget_range=BudgetRange(min=30000, max=60000),
        timeline_months=2,
    )
    workflow = workflow_factory(
        stages=[LeadStage.CONTACTED, LeadStage.QUALIFIED, LeadStage.OPPORTUNITY],
        criteria=criteria,
        score=100,
    )
    lead = lead_factory(
        interest_level=5,
        package_seen=True,
        decision_makers="CEO, CFO",
        specific_needs=DETAILED_NEEDS,
    )
    return workflow, lead


def test_hot_deal_breakdown(hot_deal):
    workflow, lead = hot_deal

    result = calculate_deal_probability(
        workflow,
        lead,
        DealFactors(previous_customer=True, referral_source=True),
        now=NOW,
    )

    assert result.base_score == 65
    assert result.quality_bonus == 25
    assert result.engagement_bonus == 15
    assert result.business_bonus == 15
    assert result.historical_bonus == 15
    assert result.penalties == 0
    assert result.final_probability == 100
    assert result.confidence == Confidence.HIGH
    assert result.insights == [
        "🔥 Hot deal - prioritize immediate action",
        "High qualification score indicates strong fit",
        "Very high interest level",
        "All BANT criteria met",
        "Engaged with marketing materials",
        "Multiple stakeholders involved",
        "Clear pain points identified",
        "Significant budget available",
        "Urgent timeline increases close probability",
        "Fast progression through sales stages",
        "Previous customer relationship",
        "Referral leads have higher close rates",
    ]


def test_cold_lead_is_clamped_to_zero(lead_factory, workflow_factory):
    workflow = workflow_factory()

    result = calculate_deal_probability(workflow, lead_factory(interest_level=1), now=NOW)

    assert result.base_score == 5
    assert result.penalties == 15
    assert result.final_probability == 0
    assert result.confidence == Confidence.LOW
    assert result.insights == [
        "❄️ Cold lead - consider re-qualification",
        "No budget identified (major risk)",
        "Decision maker not identified",
    ]
    assert probability_label(result.final_probability) == "Very Unlikely"


@pytest.mark.parametrize("idle_days,penalised", [(15, True), (14, False)])
def test_stalled_contact_penalty(lead_factory, workflow_factory, idle_days, penalised):
    workflow = workflow_factory(
        stages=[LeadStage.CONTACTED],
        criteria=QualificationCriteria(has_budget=True, has_authority=True),
        updated_at=NOW - timedelta(days=idle_days),
    )

    result = calculate_deal_probability(workflow, lead_factory(interest_level=3), now=NOW)

    # 15 base, 5 for interest, 5 for budget
    assert result.final_probability == (20 if penalised else 25)
    assert ("Stalled in contact stage" in result.insights) is penalised


def test_stall_clock_restarts_on_workflow_refresh(lead_factory, workflow_factory):
    workflow = workflow_factory(
        stages=[LeadStage.CONTACTED],
        criteria=QualificationCriteria(has_budget=True, has_authority=True),
        updated_at=NOW - timedelta(days=1),
    )
    entered = workflow.stage_history[0].model_copy(update={"transition_date": NOW - timedelta(days=30)})
    workflow = workflow.model_copy(update={"stage_history": [entered]})

    result = calculate_deal_probability(workflow, lead_factory(interest_level=3), now=NOW)

    assert "Stalled in contact stage" not in result.insights


def test_slow_progression_earns_no_history_bonus(lead_factory, workflow_factory):
    workflow = workflow_factory(stages=[LeadStage.CONTACTED, LeadStage.QUALIFIED])
    slow_history = [
        workflow.stage_history[0].model_copy(update={"transition_date": NOW - timedelta(days=30)}),
        workflow.stage_history[1],
    ]
    slow = workflow.model_copy(update={"stage_history": slow_history})

    assert calculate_deal_probability(workflow, lead_factory(), now=NOW).historical_bonus == 5
    assert calculate_deal_probability(slow, lead_factory(), now=NOW).historical_bonus == 0


def test_medium_confidence(lead_factory, workflow_factory):
    workflow = workflow_factory(
        stages=[LeadStage.CONTACTED, LeadStage.QUALIFIED],
        criteria=QualificationCriteria(has_budget=True, has_need=True),
    )

    result = calculate_deal_probability(workflow, lead_factory(), now=NOW)

    assert result.confidence == Confidence.MEDIUM


def test_estimate_does_not_modify_workflow(hot_deal):
    workflow, lead = hot_deal
    snapshot = workflow.model_copy(deep=True)

    calculate_deal_probability(workflow, lead, now=NOW)

    assert workflow == snapshot


@pytest.mark.parametrize("factors", [None, DealFactors(previous_customer=True, referral_source=True)])
def test_repeated_estimate_is_identical(hot_deal, factors):
    workflow, lead = hot_deal

    first = calculate_deal_probability(workflow, lead, factors, now=NOW)
    second = calculate_deal_probability(workflow, lead, factors, now=NOW)

    assert first == second
    assert first.insights == second.insights
    assert first.model_dump_json() == second.model_dump_json()


def test_final_probability_always_in_range(lead_factory, workflow_factory):
    for stage in LeadStage:
        stages = [] if stage == LeadStage.NEW else [stage]
        workflow = workflow_factory(stages=stages)
        for interest in range(6):
            result = calculate_deal_probability(workflow, lead_factory(interest_level=interest), now=NOW)
            assert 0 <= result.final_probability <= 100


@pytest.mark.parametrize("probability,label", [
    (95, "Very Likely"),
    (80, "Very Likely"),
    (79, "Likely"),
    (60, "Likely"),
    (45, "Possible"),
    (20, "Unlikely"),
    (19, "Very Unlikely"),
    (0, "Very Unlikely"),
])
def test_probability_label(probability, label):
    assert probability_label(probability) == label

from datetime import timedelta

import pytest

from common.enums import Availability, RoutingRuleKind, WorkloadStatus
from common.schemas import RoutingRule
from lifecycle_engine.exceptions import RuleDefinitionError
from lifecycle_engine.routing import (
    DEFAULT_ROUTING_RULES,
    assign_lead_to_rep,
    calculate_rep_workload,
    suggest_territory_reassignment,
    validate_rules,
)
from lifecycle_engine.territory_graph import TerritoryGraph

from conftest import NOW


def test_territory_match_prefers_lower_load_ratio(lead_factory, rep_factory):
    busy = rep_factory("rep-busy", current_load=18, max_capacity=20)
    free = rep_factory("rep-free", current_load=5, max_capacity=20)

    assignment = assign_lead_to_rep(lead_factory(), [busy, free], now=NOW)

    assert assignment.assigned_to == "rep-free"
    assert assignment.assigned_by == "system"
    assert assignment.reason == "Assigned by Territory-Based Assignment: Assign leads to reps in the same territory"
    assert assignment.territory == "Kingston"
    assert assignment.timestamp == NOW
    assert assignment.fallback is False
    assert assignment.alternative_reps == ["rep-busy"]


def test_territory_match_breaks_load_ties_by_conversion(lead_factory, rep_factory):
    average = rep_factory("rep-average", current_load=5, performance={"conversion_rate": 0.2})
    closer = rep_factory("rep-closer", current_load=5, performance={"conversion_rate": 0.4})

    assignment = assign_lead_to_rep(lead_factory(), [average, closer], now=NOW)

    assert assignment.assigned_to == "rep-closer"


def test_fallback_to_adjacent_territory(lead_factory, rep_factory):
    lead = lead_factory(territory="Portland")
    neighbor = rep_factory("rep-st-thomas", territories=["St. Thomas"])
    far_away = rep_factory("rep-hanover", territories=["Hanover"])

    assignment = assign_lead_to_rep(lead, [far_away, neighbor], now=NOW)

    assert assignment is not None
    assert assignment.assigned_to == "rep-st-thomas"
    assert assignment.fallback is True
    assert "nearby territory" in assignment.reason
    assert "Portland" in assignment.reason
    assert assignment.territory == "Portland"


def test_fallback_ranks_by_conversion_and_lists_runners_up(lead_factory, rep_factory):
    lead = lead_factory(territory="Portland")
    reps = [
        rep_factory("rep-a", territories=["St. Mary"], performance={"conversion_rate": 0.1}),
        rep_factory("rep-b", territories=["St. Thomas"], performance={"conversion_rate": 0.5}),
        rep_factory("rep-c", territories=["St. Mary"], performance={"conversion_rate": 0.3}),
        rep_factory("rep-d", territories=["St. Thomas"], performance={"conversion_rate": 0.2}),
    ]

    assignment = assign_lead_to_rep(lead, reps, now=NOW)

    assert assignment.assigned_to == "rep-b"
    assert assignment.alternative_reps == ["rep-c", "rep-d"]


def test_fallback_not_used_when_a_rule_matches(lead_factory, rep_factory):
    local = rep_factory("rep-local", performance={"conversion_rate": 0.1})
    neighbor = rep_factory("rep-neighbor", territories=["St. Andrew"], performance={"conversion_rate": 0.9})

    assignment = assign_lead_to_rep(lead_factory(), [neighbor, local], now=NOW)

    assert assignment.assigned_to == "rep-local"
    assert assignment.fallback is False


def test_no_eligible_rep_returns_none(lead_factory, rep_factory):
    reps = [
        rep_factory("rep-full", current_load=20, max_capacity=20),
        rep_factory("rep-away", availability=Availability.UNAVAILABLE),
        rep_factory("rep-busy", availability=Availability.BUSY),
        rep_factory("rep-no-seats", max_capacity=0),
    ]

    assert assign_lead_to_rep(lead_factory(), reps, now=NOW) is None
    assert assign_lead_to_rep(lead_factory(), [], now=NOW) is None


def test_never_assigns_unavailable_or_full_reps(lead_factory, rep_factory):
    lead = lead_factory(
        deal_size=80000,
        industry="finance",
        requires_specialization=["finance"],
    )
    reps = [
        rep_factory("rep-full", current_load=20, specializations=["finance"], performance={"avg_deal_size": 90000}),
        rep_factory("rep-away", availability=Availability.UNAVAILABLE, specializations=["finance"],
                    performance={"avg_deal_size": 90000}),
        rep_factory("rep-ok", current_load=19),
    ]

    assignment = assign_lead_to_rep(lead, reps, now=NOW)

    assert assignment.assigned_to == "rep-ok"


def test_lower_priority_number_wins(lead_factory, rep_factory):
    """Both rules would assign; the first in priority order decides."""
    never_assigned = rep_factory("rep-new", current_load=10)
    least_loaded = rep_factory("rep-light", current_load=0, last_assignment=NOW - timedelta(days=1))
    rules = [
        RoutingRule(id="territory", name="Territory", priority=2, kind=RoutingRuleKind.TERRITORY_MATCH),
        RoutingRule(id="rr", name="Round Robin", priority=1, kind=RoutingRuleKind.ROUND_ROBIN),
    ]

    assignment = assign_lead_to_rep(lead_factory(), [least_loaded, never_assigned], rules=rules, now=NOW)

    assert assignment.assigned_to == "rep-new"
    assert assignment.reason.startswith("Assigned by Round Robin")


def test_equal_priorities_keep_declared_order(lead_factory, rep_factory):
    lead = lead_factory(
        deal_size=60000,
        industry="finance",
        requires_specialization=["finance"],
    )
    big_deals = rep_factory("rep-big-deals", performance={"avg_deal_size": 45000, "conversion_rate": 0.1})
    finance = rep_factory("rep-finance", specializations=["finance"], performance={"conversion_rate": 0.6})

    assignment = assign_lead_to_rep(lead, [finance, big_deals], now=NOW)

    # high-value-specialist is declared before industry-specialist
    assert assignment.assigned_to == "rep-big-deals"
    assert assignment.reason.startswith("Assigned by High-Value Deal Specialist")


def test_industry_specialist_for_regular_deal(lead_factory, rep_factory):
    lead = lead_factory(deal_size=5000, industry="finance", requires_specialization=["finance"])
    generalist = rep_factory("rep-generalist", performance={"conversion_rate": 0.9})
    finance = rep_factory("rep-finance", current_load=15, specializations=["finance"])

    assignment = assign_lead_to_rep(lead, [generalist, finance], now=NOW)

    assert assignment.assigned_to == "rep-finance"
    assert assignment.reason.startswith("Assigned by Industry Specialization")


def test_rule_params_override_defaults(lead_factory, rep_factory):
    rules = [
        RoutingRule(
            id="mid-value",
            name="Mid-Value",
            priority=1,
            kind=RoutingRuleKind.HIGH_VALUE_SPECIALIST,
            params={"min_deal_size": 10000, "min_avg_deal_size": 20000},
        ),
    ]
    lead = lead_factory(deal_size=15000)
    rep = rep_factory("rep-mid", performance={"avg_deal_size": 25000})

    assignment = assign_lead_to_rep(lead, [rep], rules=rules, now=NOW)

    assert assignment.assigned_to == "rep-mid"
    assert assignment.fallback is False


def test_round_robin_picks_oldest_assignment(lead_factory, rep_factory):
    rules = [RoutingRule(id="rr", name="Round Robin", priority=1, kind=RoutingRuleKind.ROUND_ROBIN)]
    recent = rep_factory("rep-recent", last_assignment=NOW - timedelta(hours=1))
    oldest = rep_factory("rep-oldest", last_assignment=NOW - timedelta(days=3))

    assignment = assign_lead_to_rep(lead_factory(), [recent, oldest], rules=rules, now=NOW)

    assert assignment.assigned_to == "rep-oldest"


def test_alternatives_include_busy_reps_with_capacity(lead_factory, rep_factory):
    reps = [
        rep_factory("rep-winner"),
        rep_factory("rep-busy", current_load=3, availability=Availability.BUSY),
        rep_factory("rep-away", current_load=1, availability=Availability.UNAVAILABLE),
        rep_factory("rep-full", current_load=20),
        rep_factory("rep-other", current_load=4),
        rep_factory("rep-extra", current_load=5),
    ]

    assignment = assign_lead_to_rep(lead_factory(), reps, now=NOW)

    assert assignment.assigned_to == "rep-winner"
    assert assignment.alternative_reps == ["rep-busy", "rep-other"]


def test_custom_territory_graph(lead_factory, rep_factory):
    graph = TerritoryGraph({"North": ("South",), "South": ("North",)})
    rep = rep_factory("rep-south", territories=["South"])

    assignment = assign_lead_to_rep(lead_factory(territory="North"), [rep], now=NOW, graph=graph)

    assert assignment.assigned_to == "rep-south"
    assert assignment.fallback is True


def test_default_rules_are_valid():
    validate_rules(DEFAULT_ROUTING_RULES)


def test_validate_rules_rejects_duplicate_ids():
    rule = RoutingRule(id="dup", name="Dup", priority=1, kind=RoutingRuleKind.ROUND_ROBIN)

    with pytest.raises(RuleDefinitionError, match="Duplicate"):
        validate_rules([rule, rule.model_copy()])


def test_validate_rules_rejects_unknown_params():
    rule = RoutingRule(
        id="tm",
        name="Territory",
        priority=1,
        kind=RoutingRuleKind.TERRITORY_MATCH,
        params={"min_deal_size": 1},
    )

    with pytest.raises(RuleDefinitionError, match="unknown params"):
        validate_rules([rule])


@pytest.mark.parametrize("value", ["50000", True, None, [50000]])
def test_validate_rules_rejects_non_numeric_params(value):
    rule = RoutingRule(
        id="hv",
        name="High Value",
        priority=1,
        kind=RoutingRuleKind.HIGH_VALUE_SPECIALIST,
        params={"min_deal_size": value},
    )

    with pytest.raises(RuleDefinitionError, match="must be a number"):
        validate_rules([rule])


def test_validate_rules_accepts_int_and_float_params():
    rule = RoutingRule(
        id="hv",
        name="High Value",
        priority=1,
        kind=RoutingRuleKind.HIGH_VALUE_SPECIALIST,
        params={"min_deal_size": 50000, "min_avg_deal_size": 25000.5},
    )

    validate_rules([rule])


@pytest.mark.parametrize("load,capacity,percentage,status", [
    (5, 20, 25.0, WorkloadStatus.UNDERUTILIZED),
    (10, 20, 50.0, WorkloadStatus.OPTIMAL),
    (16, 20, 80.0, WorkloadStatus.BUSY),
    (20, 20, 100.0, WorkloadStatus.OVERLOADED),
    (0, 0, 100.0, WorkloadStatus.OVERLOADED),
])
def test_rep_workload_bands(rep_factory, load, capacity, percentage, status):
    workload = calculate_rep_workload(rep_factory("rep", current_load=load, max_capacity=capacity))

    assert workload.load_percentage == percentage
    assert workload.status == status


def test_reassignment_suggestions_for_uncovered_and_overloaded_territories(rep_factory):
    reps = [
        rep_factory("rep-west-1", territories=["Westmoreland"], current_load=3),
        rep_factory("rep-west-2", territories=["St. James"], current_load=1),
        rep_factory("rep-west-3", territories=["St. Elizabeth"], current_load=7),
        rep_factory("rep-kingston", territories=["Kingston"], current_load=0),
        rep_factory("rep-andrew", territories=["St. Andrew"], current_load=16),
    ]

    suggestions = suggest_territory_reassignment(reps, ["Hanover", "St. Andrew", "Kingston"])

    assert suggestions == {
        "Hanover": ["rep-west-2", "rep-west-1"],
        "St. Andrew": ["rep-kingston"],
    }

"""
Lead routing.

Rules are evaluated in ascending priority (stable for equal priorities). The
first rule whose condition holds and which yields a rep wins. When no rule
yields a rep, reps covering adjacent territories are tried. No eligible rep
is a normal outcome and returns None.
"""
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from common.enums import Availability, RoutingRuleKind, WorkloadStatus
from common.schemas import Lead, RepWorkload, RoutingAssignment, RoutingRule, SalesRep
from lifecycle_engine.exceptions import RuleDefinitionError
from lifecycle_engine.territory_graph import DEFAULT_TERRITORY_GRAPH, TerritoryGraph


HIGH_VALUE_DEAL_SIZE = 50000
HIGH_VALUE_REP_AVG_DEAL_SIZE = 40000
MAX_ALTERNATIVE_REPS = 2
REASSIGNMENT_LOAD_THRESHOLD = 15
MAX_REASSIGNMENT_SUGGESTIONS = 2

DEFAULT_ROUTING_RULES: List[RoutingRule] = [
    RoutingRule(
        id="high-value-specialist",
        name="High-Value Deal Specialist",
        priority=1,
        description="Route high-value deals to specialized reps",
        kind=RoutingRuleKind.HIGH_VALUE_SPECIALIST,
        params={
            "min_deal_size": HIGH_VALUE_DEAL_SIZE,
            "min_avg_deal_size": HIGH_VALUE_REP_AVG_DEAL_SIZE,
        },
    ),
    RoutingRule(
        id="territory-match",
        name="Territory-Based Assignment",
        priority=2,
        description="Assign leads to reps in the same territory",
        kind=RoutingRuleKind.TERRITORY_MATCH,
    ),
    RoutingRule(
        id="round-robin",
        name="Round Robin Distribution",
        priority=3,
        description="Evenly distribute leads among available reps",
        kind=RoutingRuleKind.ROUND_ROBIN,
    ),
    RoutingRule(
        id="industry-specialist",
        name="Industry Specialization",
        priority=1,
        description="Match leads with industry specialists",
        kind=RoutingRuleKind.INDUSTRY_SPECIALIST,
    ),
]

# Parameters each rule kind understands, with their defaults
RULE_PARAMS: Dict[RoutingRuleKind, Dict[str, float]] = {
    RoutingRuleKind.INDUSTRY_SPECIALIST: {},
    RoutingRuleKind.HIGH_VALUE_SPECIALIST: {
        "min_deal_size": HIGH_VALUE_DEAL_SIZE,
        "min_avg_deal_size": HIGH_VALUE_REP_AVG_DEAL_SIZE,
    },
    RoutingRuleKind.TERRITORY_MATCH: {},
    RoutingRuleKind.ROUND_ROBIN: {},
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _param(rule: RoutingRule, name: str) -> float:
    return rule.params.get(name, RULE_PARAMS[rule.kind][name])


def is_assignable(rep: SalesRep) -> bool:
    """Rep is available and below capacity."""
    return rep.availability == Availability.AVAILABLE and rep.has_capacity


def _territory_reps(lead: Lead, reps: Iterable[SalesRep]) -> List[SalesRep]:
    return [rep for rep in reps if lead.territory in rep.territories and is_assignable(rep)]


# Conditions

def _requires_specialist(rule: RoutingRule, lead: Lead) -> bool:
    return bool(lead.industry) and bool(lead.requires_specialization)


def _is_high_value(rule: RoutingRule, lead: Lead) -> bool:
    return (lead.deal_size or 0) >= _param(rule, "min_deal_size")


def _always(rule: RoutingRule, lead: Lead) -> bool:
    return True


# Selectors

def _pick_industry_specialist(rule: RoutingRule, lead: Lead, reps: Sequence[SalesRep]) -> Optional[SalesRep]:
    specialists = [
        rep for rep in _territory_reps(lead, reps)
        if lead.industry in (rep.specializations or [])
    ]
    specialists.sort(key=lambda rep: -rep.performance.conversion_rate)
    return specialists[0] if specialists else None


def _pick_high_value_specialist(rule: RoutingRule, lead: Lead, reps: Sequence[SalesRep]) -> Optional[SalesRep]:
    min_avg_deal_size = _param(rule, "min_avg_deal_size")
    specialists = [
        rep for rep in _territory_reps(lead, reps)
        if rep.performance.avg_deal_size >= min_avg_deal_size
    ]
    specialists.sort(key=lambda rep: -rep.performance.avg_deal_size)
    return specialists[0] if specialists else None


def _pick_territory_match(rule: RoutingRule, lead: Lead, reps: Sequence[SalesRep]) -> Optional[SalesRep]:
    candidates = _territory_reps(lead, reps)
    # Least loaded first, then best converter
    candidates.sort(key=lambda rep: (rep.load_ratio, -rep.performance.conversion_rate))
    return candidates[0] if candidates else None


def _pick_round_robin(rule: RoutingRule, lead: Lead, reps: Sequence[SalesRep]) -> Optional[SalesRep]:
    candidates = _territory_reps(lead, reps)
    # Never-assigned reps first, then oldest assignment
    candidates.sort(key=lambda rep: (
        rep.last_assignment is not None,
        rep.last_assignment.timestamp() if rep.last_assignment else 0.0,
    ))
    return candidates[0] if candidates else None


_CONDITIONS: Dict[RoutingRuleKind, Callable[[RoutingRule, Lead], bool]] = {
    RoutingRuleKind.INDUSTRY_SPECIALIST: _requires_specialist,
    RoutingRuleKind.HIGH_VALUE_SPECIALIST: _is_high_value,
    RoutingRuleKind.TERRITORY_MATCH: _always,
    RoutingRuleKind.ROUND_ROBIN: _always,
}

_SELECTORS: Dict[RoutingRuleKind, Callable[[RoutingRule, Lead, Sequence[SalesRep]], Optional[SalesRep]]] = {
    RoutingRuleKind.INDUSTRY_SPECIALIST: _pick_industry_specialist,
    RoutingRuleKind.HIGH_VALUE_SPECIALIST: _pick_high_value_specialist,
    RoutingRuleKind.TERRITORY_MATCH: _pick_territory_match,
    RoutingRuleKind.ROUND_ROBIN: _pick_round_robin,
}


def rule_applies(rule: RoutingRule, lead: Lead) -> bool:
    return _CONDITIONS[rule.kind](rule, lead)


def select_rep(rule: RoutingRule, lead: Lead, reps: Sequence[SalesRep]) -> Optional[SalesRep]:
    return _SELECTORS[rule.kind](rule, lead, reps)


def validate_rules(rules: Sequence[RoutingRule]) -> None:
    """
    Checks a rule set before it is stored or used.

    Raises:
        RuleDefinitionError: On duplicate rule ids, parameters the rule
                             kind does not understand or non-numeric
                             parameter values
    """
    seen = set()
    for rule in rules:
        if rule.id in seen:
            raise RuleDefinitionError(f"Duplicate routing rule id: {rule.id}")
        seen.add(rule.id)

        unknown = set(rule.params) - set(RULE_PARAMS[rule.kind])
        if unknown:
            raise RuleDefinitionError(
                f"Rule {rule.id} ({rule.kind.value}) has unknown params: {sorted(unknown)}"
            )

        for name, value in rule.params.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise RuleDefinitionError(
                    f"Rule {rule.id} ({rule.kind.value}) param {name} must be a number, got {value!r}"
                )


def _alternatives(lead: Lead, reps: Sequence[SalesRep], winner: SalesRep) -> List[str]:
    return [
        rep.id for rep in reps
        if rep.id != winner.id
        and lead.territory in rep.territories
        and rep.availability != Availability.UNAVAILABLE
        and rep.has_capacity
    ][:MAX_ALTERNATIVE_REPS]


def assign_lead_to_rep(
    lead: Lead,
    reps: Sequence[SalesRep],
    rules: Optional[Sequence[RoutingRule]] = None,
    now: Optional[datetime] = None,
    graph: TerritoryGraph = DEFAULT_TERRITORY_GRAPH
) -> Optional[RoutingAssignment]:
    """
    Binds a lead to a sales rep.

    Args:
        lead: Lead to route
        reps: Candidate reps
        rules: Routing rules, DEFAULT_ROUTING_RULES when None
        now: Assignment timestamp, defaults to current UTC time
        graph: Territory adjacency used by the fallback

    Returns:
        RoutingAssignment, or None when neither a rule nor the geographic
        fallback finds an eligible rep
    """
    now = now or _utcnow()
    rules = DEFAULT_ROUTING_RULES if rules is None else rules

    # sorted() is stable, equal priorities keep declared order
    for rule in sorted(rules, key=lambda r: r.priority):
        if not rule_applies(rule, lead):
            continue

        rep = select_rep(rule, lead, reps)
        if rep is not None:
            return RoutingAssignment(
                lead_id=lead.id,
                assigned_to=rep.id,
                reason=f"Assigned by {rule.name}: {rule.description}",
                timestamp=now,
                territory=lead.territory,
                alternative_reps=_alternatives(lead, reps, rep),
            )

    return _assign_nearby(lead, reps, now, graph)


def _assign_nearby(
    lead: Lead,
    reps: Sequence[SalesRep],
    now: datetime,
    graph: TerritoryGraph
) -> Optional[RoutingAssignment]:
    nearby = set(graph.neighbors(lead.territory))
    candidates = [
        rep for rep in reps
        if nearby.intersection(rep.territories) and is_assignable(rep)
    ]
    candidates.sort(key=lambda rep: -rep.performance.conversion_rate)

    if not candidates:
        return None

    return RoutingAssignment(
        lead_id=lead.id,
        assigned_to=candidates[0].id,
        reason=f"Assigned to rep from nearby territory due to no available reps in {lead.territory}",
        timestamp=now,
        territory=lead.territory,
        alternative_reps=[rep.id for rep in candidates[1:1 + MAX_ALTERNATIVE_REPS]],
        fallback=True,
    )


def calculate_rep_workload(rep: SalesRep) -> RepWorkload:
    """Load percentage of a rep and its workload band."""
    if rep.max_capacity <= 0:
        return RepWorkload(load_percentage=100.0, status=WorkloadStatus.OVERLOADED)

    load_percentage = rep.current_load / rep.max_capacity * 100

    if load_percentage < 50:
        status = WorkloadStatus.UNDERUTILIZED
    elif load_percentage < 80:
        status = WorkloadStatus.OPTIMAL
    elif load_percentage < 100:
        status = WorkloadStatus.BUSY
    else:
        status = WorkloadStatus.OVERLOADED

    return RepWorkload(load_percentage=load_percentage, status=status)


def suggest_territory_reassignment(
    reps: Sequence[SalesRep],
    territories: Iterable[str],
    graph: TerritoryGraph = DEFAULT_TERRITORY_GRAPH
) -> Dict[str, List[str]]:
    """
    Suggests reps to add to under-served territories.

    A territory is under-served when nobody covers it or its reps carry more
    than REASSIGNMENT_LOAD_THRESHOLD leads on average. Suggestions are the
    least-loaded reps already working in the same region.
    """
    suggestions: Dict[str, List[str]] = {}

    for territory in territories:
        covering = [rep for rep in reps if territory in rep.territories]
        if covering:
            avg_load = sum(rep.current_load for rep in covering) / len(covering)
            if avg_load <= REASSIGNMENT_LOAD_THRESHOLD:
                continue

        region = graph.region_of(territory)
        same_region = [
            rep for rep in reps
            if territory not in rep.territories
            and any(graph.region_of(t) == region for t in rep.territories)
        ]
        same_region.sort(key=lambda rep: rep.current_load)
        suggestions[territory] = [rep.id for rep in same_region[:MAX_REASSIGNMENT_SUGGESTIONS]]

    return suggestions

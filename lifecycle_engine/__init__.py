from lifecycle_engine.follow_up import generate_follow_up_recommendations
from lifecycle_engine.probability import calculate_deal_probability, probability_label
from lifecycle_engine.qualification import QUALIFICATION_RULES, calculate_qualification_score, count_bant
from lifecycle_engine.routing import (
    DEFAULT_ROUTING_RULES,
    assign_lead_to_rep,
    calculate_rep_workload,
    suggest_territory_reassignment,
    validate_rules,
)
from lifecycle_engine.stage_resolver import (
    advance_workflow,
    calculate_days_in_stage,
    days_in_current_stage,
    get_next_actions,
    next_stage,
    start_workflow,
)
from lifecycle_engine.territory_graph import DEFAULT_TERRITORY_GRAPH, TerritoryGraph, get_nearby_territories

__all__ = [
    "DEFAULT_ROUTING_RULES",
    "DEFAULT_TERRITORY_GRAPH",
    "QUALIFICATION_RULES",
    "TerritoryGraph",
    "advance_workflow",
    "assign_lead_to_rep",
    "calculate_days_in_stage",
    "calculate_deal_probability",
    "calculate_qualification_score",
    "calculate_rep_workload",
    "count_bant",
    "days_in_current_stage",
    "generate_follow_up_recommendations",
    "get_nearby_territories",
    "get_next_actions",
    "next_stage",
    "probability_label",
    "start_workflow",
    "suggest_territory_reassignment",
    "validate_rules",
]

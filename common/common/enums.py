from enum import Enum


class LeadStage(Enum):
    """Sales pipeline stage of a lead."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    OPPORTUNITY = "opportunity"
    CUSTOMER = "customer"
    LOST = "lost"


# Once reached, automated re-evaluation never moves a lead out of these
TERMINAL_STAGES = frozenset({LeadStage.CUSTOMER, LeadStage.LOST})


class Availability(Enum):
    """Sales rep availability."""
    AVAILABLE = "available"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"


class Urgency(Enum):
    """Urgency reported for a lead at intake."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RoutingRuleKind(Enum):
    """Assignment strategies a routing rule can select."""
    INDUSTRY_SPECIALIST = "industry_specialist"
    HIGH_VALUE_SPECIALIST = "high_value_specialist"
    TERRITORY_MATCH = "territory_match"
    ROUND_ROBIN = "round_robin"


class Region(Enum):
    """Regional grouping of territories."""
    EASTERN = "Eastern"
    CENTRAL = "Central"
    WESTERN = "Western"


class WorkloadStatus(Enum):
    """Rep workload band derived from load percentage."""
    UNDERUTILIZED = "underutilized"
    OPTIMAL = "optimal"
    BUSY = "busy"
    OVERLOADED = "overloaded"


class Confidence(Enum):
    """Confidence in a close-probability estimate."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendationType(Enum):
    """Channel of a follow-up recommendation."""
    EMAIL = "email"
    CALL = "call"
    MEETING = "meeting"
    TASK = "task"
    CONTENT = "content"


class RecommendationPriority(Enum):
    """Follow-up priority (URGENT = highest, LOW = lowest)."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LeadEventType(Enum):
    """Event types published to the lead stream."""
    CREATED = "lead.created"
    UPDATED = "lead.updated"

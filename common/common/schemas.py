from datetime import datetime
from uuid import UUID
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from common.enums import (
    Availability,
    Confidence,
    LeadEventType,
    LeadStage,
    RecommendationPriority,
    RecommendationType,
    RoutingRuleKind,
    Urgency,
    WorkloadStatus,
)


class BudgetRange(BaseModel):
    """Budget bracket reported by the prospect."""
    min: float = Field(ge=0)
    max: float = Field(ge=0)


class QualificationCriteria(BaseModel):
    """BANT flags plus optional qualification details."""
    has_budget: bool = False
    has_authority: bool = False
    has_need: bool = False
    has_timeline: bool = False
    budget_range: Optional[BudgetRange] = None
    timeline_months: Optional[int] = Field(default=None, ge=0)


class LeadBase(BaseModel):
    """Base schema for lead data."""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None

    interest_level: int = Field(default=0, ge=0, le=5)
    decision_makers: Optional[str] = None
    specific_needs: Optional[str] = None
    package_seen: bool = False
    signed_up: bool = False

    territory: str
    industry: Optional[str] = None
    deal_size: Optional[float] = Field(default=None, ge=0)
    urgency: Urgency = Urgency.MEDIUM
    requires_specialization: Optional[List[str]] = None

    criteria: QualificationCriteria = Field(default_factory=QualificationCriteria)


class LeadCreate(LeadBase):
    """Schema for creating a new lead."""
    pass


class LeadUpdate(BaseModel):
    """Partial update applied by sales activity."""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    interest_level: Optional[int] = Field(default=None, ge=0, le=5)
    decision_makers: Optional[str] = None
    specific_needs: Optional[str] = None
    package_seen: Optional[bool] = None
    signed_up: Optional[bool] = None
    industry: Optional[str] = None
    deal_size: Optional[float] = Field(default=None, ge=0)
    urgency: Optional[Urgency] = None
    criteria: Optional[QualificationCriteria] = None
    # Required to edit a lead that has already signed up
    reopen: bool = False


class Lead(LeadBase):
    """Lead as consumed by the lifecycle engine."""
    id: Optional[UUID] = None
    assigned_rep_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeadResponse(LeadBase):
    """Schema for lead API responses."""
    id: UUID
    assigned_rep_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StageTransition(BaseModel):
    """One entry of a workflow's stage history."""
    from_stage: LeadStage
    to_stage: LeadStage
    transition_date: datetime
    reason: Optional[str] = None
    performed_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LeadWorkflow(BaseModel):
    """Qualification state wrapped around a lead."""
    lead_id: Optional[UUID] = None
    current_stage: LeadStage = LeadStage.NEW
    qualification_score: int = Field(default=0, ge=0, le=100)
    criteria: QualificationCriteria = Field(default_factory=QualificationCriteria)
    stage_history: List[StageTransition] = Field(default_factory=list)
    assigned_to: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def _check_history(self) -> "LeadWorkflow":
        history = self.stage_history
        if history and history[-1].to_stage != self.current_stage:
            raise ValueError("last stage transition must end in current_stage")
        for previous, entry in zip(history, history[1:]):
            if entry.transition_date < previous.transition_date:
                raise ValueError("stage history must be chronologically ordered")
        return self


class RepPerformance(BaseModel):
    """Historical performance of a sales rep."""
    conversion_rate: float = Field(default=0.0, ge=0.0)
    avg_deal_size: float = Field(default=0.0, ge=0.0)
    avg_time_to_close: Optional[float] = None  # days


class SalesRep(BaseModel):
    """Sales representative eligible for lead assignment."""
    id: str
    name: str
    email: Optional[str] = None
    territories: List[str] = Field(default_factory=list)
    availability: Availability = Availability.AVAILABLE
    current_load: int = Field(default=0, ge=0)
    max_capacity: int = Field(default=0, ge=0)
    performance: RepPerformance = Field(default_factory=RepPerformance)
    specializations: Optional[List[str]] = None
    last_assignment: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def has_capacity(self) -> bool:
        return self.current_load < self.max_capacity

    @property
    def load_ratio(self) -> float:
        if self.max_capacity <= 0:
            return 1.0
        return self.current_load / self.max_capacity


class RoutingRule(BaseModel):
    """Routing rule stored as data: a strategy kind plus its parameters."""
    id: str
    name: str
    description: str = ""
    priority: int  # lower = evaluated first
    kind: RoutingRuleKind
    params: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class RoutingAssignment(BaseModel):
    """Result of binding a lead to a sales rep."""
    lead_id: Optional[UUID] = None  # set by caller
    assigned_to: str
    assigned_by: str = "system"
    reason: str
    timestamp: datetime
    territory: str
    alternative_reps: List[str] = Field(default_factory=list)
    fallback: bool = False

    model_config = ConfigDict(from_attributes=True)


class RepWorkload(BaseModel):
    """Load percentage of a rep and the band it falls in."""
    load_percentage: float
    status: WorkloadStatus


class DealFactors(BaseModel):
    """Optional facts known outside the workflow."""
    previous_customer: bool = False
    referral_source: bool = False


class ProbabilityBreakdown(BaseModel):
    """Close-probability estimate and its contributing factors."""
    base_score: int
    quality_bonus: int
    engagement_bonus: int
    business_bonus: int
    historical_bonus: int
    penalties: int
    final_probability: int = Field(ge=0, le=100)
    confidence: Confidence
    insights: List[str]


class FollowUpRecommendation(BaseModel):
    """Suggested next step for a sales rep."""
    id: str
    type: RecommendationType
    priority: RecommendationPriority
    action: str
    reason: str
    suggested_timing: str
    template: Optional[str] = None
    icon: str


class LeadEvent(BaseModel):
    """Schema for lead events in Redis Stream."""
    event_id: UUID
    type: LeadEventType
    lead_id: UUID
    occurred_at: datetime


class WorkflowResponse(LeadWorkflow):
    """Workflow as returned by the insights API."""
    next_actions: List[str] = Field(default_factory=list)
    days_in_stage: int = 0


class ProbabilityResponse(ProbabilityBreakdown):
    """Probability breakdown with its display label."""
    lead_id: UUID
    label: str


class RecommendationsResponse(BaseModel):
    """Follow-up recommendations for a lead."""
    lead_id: UUID
    stage: LeadStage
    recommendations: List[FollowUpRecommendation]


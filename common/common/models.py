from datetime import datetime
from uuid import UUID, uuid4
from typing import List, Optional, Annotated
from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship, DeclarativeBase

from common.enums import Availability, LeadStage, RoutingRuleKind, Urgency

uuid_pk = Annotated[UUID, mapped_column(primary_key=True, default=uuid4)]
created_dt = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("TIMEZONE('utc', now())")),
]

class Base(DeclarativeBase):
    pass

class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[uuid_pk]
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    interest_level: Mapped[int] = mapped_column(Integer, default=0)
    decision_makers: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    specific_needs: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    package_seen: Mapped[bool] = mapped_column(Boolean, default=False)
    signed_up: Mapped[bool] = mapped_column(Boolean, default=False)

    territory: Mapped[str] = mapped_column(String(100), nullable=False)
    industry: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    deal_size: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    urgency: Mapped[Urgency] = mapped_column(SQLEnum(Urgency), default=Urgency.MEDIUM)
    requires_specialization: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    criteria: Mapped[dict] = mapped_column(JSON, default=dict)

    assigned_rep_id: Mapped[Optional[str]] = mapped_column(ForeignKey("sales_reps.id"), nullable=True)
    created_at: Mapped[created_dt]


class SalesRep(Base):
    __tablename__ = "sales_reps"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    territories: Mapped[List[str]] = mapped_column(JSON, default=list)
    availability: Mapped[Availability] = mapped_column(SQLEnum(Availability), default=Availability.AVAILABLE)
    current_load: Mapped[int] = mapped_column(Integer, default=0)
    max_capacity: Mapped[int] = mapped_column(Integer, default=0)
    conversion_rate: Mapped[float] = mapped_column(Float, default=0.0)
    avg_deal_size: Mapped[float] = mapped_column(Float, default=0.0)
    avg_time_to_close: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    specializations: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    last_assignment: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class RoutingRule(Base):
    __tablename__ = "routing_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[RoutingRuleKind] = mapped_column(SQLEnum(RoutingRuleKind))
    params: Mapped[dict] = mapped_column(JSON, default=dict)
    # Declared order, used to break priority ties
    position: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class RoutingAssignment(Base):
    __tablename__ = "routing_assignments"

    id: Mapped[uuid_pk]
    lead_id: Mapped[UUID] = mapped_column(ForeignKey("leads.id"), nullable=False, unique=True)
    assigned_to: Mapped[str] = mapped_column(ForeignKey("sales_reps.id"), nullable=False)
    assigned_by: Mapped[str] = mapped_column(String(64), default="system")
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    territory: Mapped[str] = mapped_column(String(100), nullable=False)
    alternative_reps: Mapped[List[str]] = mapped_column(JSON, default=list)
    fallback: Mapped[bool] = mapped_column(Boolean, default=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LeadWorkflow(Base):
    __tablename__ = "lead_workflows"

    id: Mapped[uuid_pk]
    lead_id: Mapped[UUID] = mapped_column(ForeignKey("leads.id"), nullable=False, unique=True)
    current_stage: Mapped[LeadStage] = mapped_column(SQLEnum(LeadStage), default=LeadStage.NEW)
    qualification_score: Mapped[int] = mapped_column(Integer, default=0)
    criteria: Mapped[dict] = mapped_column(JSON, default=dict)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    stage_history: Mapped[List["StageTransition"]] = relationship(
        order_by="StageTransition.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class StageTransition(Base):
    __tablename__ = "stage_transitions"

    id: Mapped[uuid_pk]
    workflow_id: Mapped[UUID] = mapped_column(ForeignKey("lead_workflows.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    from_stage: Mapped[LeadStage] = mapped_column(SQLEnum(LeadStage))
    to_stage: Mapped[LeadStage] = mapped_column(SQLEnum(LeadStage))
    transition_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    performed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # A history position is written once, so a replayed evaluation cannot append twice
    __table_args__ = (UniqueConstraint('workflow_id', 'position', name='uq_workflow_position'),)

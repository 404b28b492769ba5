from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from common import models
from common.schemas import (
    Lead,
    LeadCreate,
    LeadUpdate,
    LeadWorkflow,
    RepPerformance,
    RoutingAssignment,
    RoutingRule,
    SalesRep,
    StageTransition,
)


def _to_sales_rep(row: models.SalesRep) -> SalesRep:
    return SalesRep(
        id=row.id,
        name=row.name,
        email=row.email,
        territories=row.territories or [],
        availability=row.availability,
        current_load=row.current_load,
        max_capacity=row.max_capacity,
        performance=RepPerformance(
            conversion_rate=row.conversion_rate,
            avg_deal_size=row.avg_deal_size,
            avg_time_to_close=row.avg_time_to_close,
        ),
        specializations=row.specializations,
        last_assignment=row.last_assignment,
    )


class LeadRepository:
    """
    Fetches and saves leads, workflows, reps, routing rules and assignments.
    Converts between ORM rows and the schemas the lifecycle engine consumes.
    Does not commit: callers own the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()

    async def _lead_row(self, lead_id: UUID, for_update: bool = False) -> Optional[models.Lead]:
        stmt = select(models.Lead).where(models.Lead.id == lead_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_lead(self, lead_id: UUID, for_update: bool = False) -> Optional[Lead]:
        """
        Loads a lead.

        Args:
            lead_id: Lead UUID
            for_update: Lock the lead row until the transaction ends, which
                        serializes read-modify-write of its workflow

        Returns:
            Optional[Lead]: The lead, or None if it does not exist
        """
        row = await self._lead_row(lead_id, for_update)
        return Lead.model_validate(row) if row else None

    async def create_lead(self, lead_data: LeadCreate) -> Lead:
        row = models.Lead(**lead_data.model_dump(mode="json", exclude={"urgency"}), urgency=lead_data.urgency)
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return Lead.model_validate(row)

    async def update_lead(self, lead_id: UUID, update: LeadUpdate) -> Optional[Lead]:
        """Applies the fields set on `update`; returns None if the lead is missing."""
        row = await self._lead_row(lead_id, for_update=True)
        if not row:
            return None

        changes = update.model_dump(exclude_unset=True, exclude={"reopen"})
        for field, value in changes.items():
            if field == "criteria":
                value = update.criteria.model_dump(mode="json")
            setattr(row, field, value)

        await self.session.flush()
        return Lead.model_validate(row)

    async def list_reps(self) -> List[SalesRep]:
        result = await self.session.execute(select(models.SalesRep).order_by(models.SalesRep.id))
        return [_to_sales_rep(row) for row in result.scalars().all()]

    async def list_active_rules(self) -> List[RoutingRule]:
        """Active routing rules in declared order."""
        stmt = (
            select(models.RoutingRule)
            .where(models.RoutingRule.active.is_(True))
            .order_by(models.RoutingRule.position)
        )
        result = await self.session.execute(stmt)
        return [RoutingRule.model_validate(row) for row in result.scalars().all()]

    async def save_assignment(self, assignment: RoutingAssignment):
        """Records the assignment and books the lead onto the rep."""
        self.session.add(models.RoutingAssignment(**assignment.model_dump()))

        lead = await self._lead_row(assignment.lead_id)
        if lead:
            lead.assigned_rep_id = assignment.assigned_to

        rep = await self.session.get(models.SalesRep, assignment.assigned_to, with_for_update=True)
        if rep:
            rep.current_load += 1
            rep.last_assignment = assignment.timestamp

        await self.session.flush()

    async def get_assignment(self, lead_id: UUID) -> Optional[RoutingAssignment]:
        stmt = select(models.RoutingAssignment).where(models.RoutingAssignment.lead_id == lead_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return RoutingAssignment.model_validate(row) if row else None

    async def _workflow_row(self, lead_id: UUID) -> Optional[models.LeadWorkflow]:
        stmt = select(models.LeadWorkflow).where(models.LeadWorkflow.lead_id == lead_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_workflow(self, lead_id: UUID) -> Optional[LeadWorkflow]:
        """Loads a lead's workflow, or None if the lead was never qualified."""
        row = await self._workflow_row(lead_id)
        return LeadWorkflow.model_validate(row) if row else None

    async def save_workflow(self, workflow: LeadWorkflow):
        """
        Stores a workflow snapshot.

        Stage history is append-only: entries already stored are left as they
        are and only entries past the stored length are inserted.
        """
        row = await self._workflow_row(workflow.lead_id)
        if row is None:
            row = models.LeadWorkflow(lead_id=workflow.lead_id, created_at=workflow.created_at)
            row.stage_history = []
            self.session.add(row)

        row.current_stage = workflow.current_stage
        row.qualification_score = workflow.qualification_score
        row.criteria = workflow.criteria.model_dump(mode="json")
        row.assigned_to = workflow.assigned_to
        row.updated_at = workflow.updated_at

        stored = len(row.stage_history)
        for position, entry in enumerate(workflow.stage_history[stored:], start=stored):
            row.stage_history.append(_to_transition_row(entry, position))

        await self.session.flush()


def _to_transition_row(entry: StageTransition, position: int) -> models.StageTransition:
    return models.StageTransition(
        position=position,
        from_stage=entry.from_stage,
        to_stage=entry.to_stage,
        transition_date=entry.transition_date,
        reason=entry.reason,
        performed_by=entry.performed_by,
    )

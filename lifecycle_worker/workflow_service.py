from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from common.repository import LeadRepository
from common.schemas import Lead, LeadWorkflow
from lifecycle_engine.classifiers import BaseLeadClassifier
from lifecycle_engine.stage_resolver import advance_workflow, start_workflow
from lifecycle_worker.exceptions import DatabaseError


class WorkflowService:
    """Service for evaluating and storing lead workflows."""

    def __init__(self, classifier: Optional[BaseLeadClassifier] = None):
        self.classifier = classifier

    def evaluate(
        self,
        lead: Lead,
        workflow: Optional[LeadWorkflow],
        reason: str,
        now: Optional[datetime] = None
    ) -> Optional[LeadWorkflow]:
        """
        Recomputes a lead's workflow from its current facts.

        Args:
            lead: Lead as currently stored
            workflow: Stored workflow, None if the lead was never qualified
            reason: Recorded on a stage transition
            now: Evaluation time

        Returns:
            Optional[LeadWorkflow]: Workflow to store, or None when nothing changed
        """
        if workflow is None:
            return start_workflow(lead, lead.criteria, now=now, classifier=self.classifier)

        current = workflow.model_copy(update={
            "criteria": lead.criteria,
            "assigned_to": lead.assigned_rep_id,
        })
        updated = advance_workflow(current, lead, now=now, reason=reason, classifier=self.classifier)

        if updated == workflow:
            return None
        return updated

    async def save(self, repository: LeadRepository, workflow: LeadWorkflow):
        """
        Stores the workflow and commits.

        Raises:
            DatabaseError: If the write fails; the transaction is rolled back
        """
        try:
            await repository.save_workflow(workflow)
            await repository.commit()
        except SQLAlchemyError as e:
            await repository.rollback()
            raise DatabaseError(f"Failed to save workflow for lead {workflow.lead_id}") from e

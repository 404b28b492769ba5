import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from common.enums import LeadEventType
from common.repository import LeadRepository
from common.schemas import LeadEvent
from lifecycle_engine.classifiers import BaseLeadClassifier
from lifecycle_worker.exceptions import DatabaseError, LeadNotFoundError, MessageProcessingError
from lifecycle_worker.workflow_service import WorkflowService

logger = logging.getLogger("lifecycle_worker")


EVENT_REASONS = {
    LeadEventType.CREATED: "Lead created",
    LeadEventType.UPDATED: "Lead updated",
}


class MessageProcessor:
    """
    Redis Streams message handler.
    Responsible for turning lead events into stored workflow snapshots.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        classifier: Optional[BaseLeadClassifier] = None,
        repository_class=LeadRepository
    ):
        self.session_factory = session_factory
        self.repository_class = repository_class
        self.workflow_service = WorkflowService(classifier)

    async def process_message(self, message_data: Dict[str, Any]) -> bool:
        """
        Processes a single message from the queue.

        Args:
            message_data: Raw message data from Redis

        Returns:
            bool: True if the message was handled and can be acknowledged,
                  False if it should stay pending
        """
        try:
            event = self._validate_message(message_data)
        except MessageProcessingError as e:
            # Acknowledged: a malformed event stays malformed
            logger.error(f"[LIFECYCLE_ERROR] {e}: {e.__cause__}")
            return True

        try:
            async with self.session_factory() as session:
                repository = self.repository_class(session)
                await self._refresh_workflow(repository, event)
            return True

        except LeadNotFoundError as e:
            logger.warning(f"[LIFECYCLE] {e}, skipping event {event.event_id}")
            return True
        except DatabaseError as e:
            logger.error(f"[LIFECYCLE_ERROR] {e}: {e.__cause__}")
            return False

    def _validate_message(self, message_data: Dict[str, Any]) -> LeadEvent:
        """
        Validates and parses raw message into Pydantic model.

        Raises:
            MessageProcessingError: If message data is invalid
        """
        # Redis Streams return all values as strings
        try:
            return LeadEvent(**message_data)
        except ValidationError as e:
            raise MessageProcessingError(f"Invalid lead event {message_data}") from e

    async def _refresh_workflow(self, repository: LeadRepository, event: LeadEvent):
        """
        Recomputes and stores the workflow of the event's lead.

        The lead row stays locked until commit, so two events for the same
        lead are applied one after the other.

        Raises:
            LeadNotFoundError: If the lead does not exist
            DatabaseError: If the workflow could not be stored
        """
        lead = await repository.get_lead(event.lead_id, for_update=True)
        if lead is None:
            await repository.rollback()
            raise LeadNotFoundError(f"Lead not found: {event.lead_id}")

        workflow = await repository.get_workflow(event.lead_id)
        updated = self.workflow_service.evaluate(
            lead,
            workflow,
            reason=EVENT_REASONS[event.type],
            now=datetime.now(timezone.utc),
        )

        if updated is None:
            logger.info(f"[LIFECYCLE] lead={lead.id} unchanged")
            await repository.rollback()
            return

        await self.workflow_service.save(repository, updated)

        if workflow is None or workflow.current_stage != updated.current_stage:
            logger.info(
                f"[LIFECYCLE_STAGE] lead={lead.id} stage={updated.current_stage.value} "
                f"score={updated.qualification_score}"
            )
        else:
            logger.info(f"[LIFECYCLE] lead={lead.id} score={updated.qualification_score}")

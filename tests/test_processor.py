import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from common.enums import LeadStage
from common.repository import LeadRepository
from lifecycle_engine.stage_resolver import start_workflow
from lifecycle_engine.classifiers import KeywordLeadClassifier
from lifecycle_worker.main import ack_successful_messages, load_classifier, process_single_message
from lifecycle_worker.processor import MessageProcessor

from conftest import ALL_BANT, NOW


class FakeSession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


@pytest.fixture
def repository():
    repo = AsyncMock(spec=LeadRepository)
    repo.get_workflow.return_value = None
    return repo


@pytest.fixture
def processor(repository):
    return MessageProcessor(FakeSession, repository_class=lambda session: repository)


def make_message(lead_id, event_type="lead.created"):
    # Redis Streams deliver every field as a string
    return {
        "event_id": str(uuid.uuid4()),
        "type": event_type,
        "lead_id": str(lead_id),
        "occurred_at": NOW.isoformat(),
    }


@pytest.mark.asyncio
async def test_created_event_starts_workflow(processor, repository, lead_factory):
    """
    A lead.created event for an engaged lead:
    1. Locks the lead row
    2. Builds the first workflow
    3. Stores it and commits
    """
    lead = lead_factory(interest_level=3, assigned_rep_id="rep-1")
    repository.get_lead.return_value = lead

    result = await processor.process_message(make_message(lead.id))

    assert result is True
    repository.get_lead.assert_awaited_once_with(lead.id, for_update=True)
    repository.save_workflow.assert_awaited_once()
    saved = repository.save_workflow.await_args.args[0]
    assert saved.lead_id == lead.id
    assert saved.current_stage == LeadStage.CONTACTED
    assert saved.assigned_to == "rep-1"
    assert saved.stage_history[-1].reason == "Initial qualification"
    repository.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_updated_event_advances_with_current_criteria(processor, repository, lead_factory, now):
    """Criteria edited on the lead are picked up by the stored workflow."""
    lead = lead_factory(interest_level=3)
    workflow = start_workflow(lead, now=now)
    repository.get_workflow.return_value = workflow
    repository.get_lead.return_value = lead.model_copy(update={"criteria": ALL_BANT, "interest_level": 4})

    result = await processor.process_message(make_message(lead.id, "lead.updated"))

    assert result is True
    saved = repository.save_workflow.await_args.args[0]
    assert saved.current_stage == LeadStage.OPPORTUNITY
    assert saved.criteria == ALL_BANT
    assert len(saved.stage_history) == len(workflow.stage_history) + 1
    assert saved.stage_history[-1].from_stage == LeadStage.CONTACTED
    assert saved.stage_history[-1].reason == "Lead updated"


@pytest.mark.asyncio
async def test_unchanged_workflow_is_not_saved(processor, repository, lead_factory, now):
    lead = lead_factory(interest_level=3)
    repository.get_lead.return_value = lead
    repository.get_workflow.return_value = start_workflow(lead, lead.criteria, now=now)

    result = await processor.process_message(make_message(lead.id, "lead.updated"))

    assert result is True
    repository.save_workflow.assert_not_awaited()
    repository.commit.assert_not_awaited()
    repository.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_invalid_message_is_acknowledged(processor, repository):
    result = await processor.process_message({"lead_id": "not-a-uuid", "type": "lead.deleted"})

    assert result is True
    repository.get_lead.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_lead_is_acknowledged(processor, repository):
    repository.get_lead.return_value = None

    result = await processor.process_message(make_message(uuid.uuid4()))

    assert result is True
    repository.save_workflow.assert_not_awaited()
    repository.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_database_error_leaves_message_pending(processor, repository, lead_factory):
    lead = lead_factory(interest_level=3)
    repository.get_lead.return_value = lead
    repository.save_workflow.side_effect = SQLAlchemyError("duplicate key value violates unique constraint")

    result = await processor.process_message(make_message(lead.id))

    assert result is False
    repository.commit.assert_not_awaited()
    repository.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_as_failure(processor, repository):
    repository.get_lead.side_effect = SQLAlchemyError("connection reset")

    with pytest.raises(SQLAlchemyError):
        await processor.process_message(make_message(uuid.uuid4()))

    assert await process_single_message(processor, make_message(uuid.uuid4())) is False


@pytest.mark.asyncio
async def test_only_successful_messages_are_acknowledged():
    redis_client = AsyncMock()

    await ack_successful_messages(
        redis_client,
        "lead_events_test",
        "lifecycle_group_test",
        ["1-0", "2-0", "3-0"],
        [True, False, True],
    )

    assert redis_client.xack.await_count == 2
    acked = [call.args[2] for call in redis_client.xack.await_args_list]
    assert acked == ["1-0", "3-0"]


def test_unknown_classifier_falls_back_to_keywords(caplog):
    with caplog.at_level("WARNING", logger="lifecycle_worker"):
        classifier = load_classifier("llm")

    assert isinstance(classifier, KeywordLeadClassifier)
    assert "Unknown lead classifier: llm" in caplog.text

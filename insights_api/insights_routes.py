import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Tuple
from uuid import UUID

from common.config import settings
from common.database import get_async_session
from common.repository import LeadRepository
from common.schemas import (
    DealFactors,
    Lead,
    LeadWorkflow,
    ProbabilityResponse,
    RecommendationsResponse,
    WorkflowResponse,
)
from lifecycle_engine.classifiers import KeywordLeadClassifier, get_lead_classifier
from lifecycle_engine.follow_up import generate_follow_up_recommendations
from lifecycle_engine.probability import calculate_deal_probability, probability_label
from lifecycle_engine.stage_resolver import days_in_current_stage, get_next_actions


logger = logging.getLogger("insights_api")


insights_router = APIRouter(
    prefix="/leads",
    tags=["insights"],
)

try:
    classifier = get_lead_classifier(settings.LEAD_CLASSIFIER)
except ValueError as e:
    logger.warning(f"[INSIGHTS] {e}, falling back to keyword classifier")
    classifier = KeywordLeadClassifier()


async def get_repository(session: AsyncSession = Depends(get_async_session)) -> LeadRepository:
    return LeadRepository(session)


async def load_lead_and_workflow(
    lead_id: UUID,
    repository: LeadRepository
) -> Tuple[Lead, LeadWorkflow]:
    """
    Loads the lead together with its workflow.

    Raises:
        HTTPException: 404 if the lead does not exist or was never qualified
    """
    lead = await repository.get_lead(lead_id)
    if not lead:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Lead not found: {lead_id}"
        )

    workflow = await repository.get_workflow(lead_id)
    if not workflow:
        logger.info(f"[INSIGHTS] lead={lead_id} has no workflow yet")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workflow not found for lead ID: {lead_id}"
        )
    return lead, workflow


@insights_router.get(
    "/{lead_id}/workflow",
    response_model=WorkflowResponse,
    responses={
        404: {"description": "Lead or workflow not found"},
    }
)
async def get_workflow(
    lead_id: UUID,
    repository: LeadRepository = Depends(get_repository)
) -> WorkflowResponse:
    """Current stage, score and stage history with the stage checklist."""
    _, workflow = await load_lead_and_workflow(lead_id, repository)

    return WorkflowResponse(
        **workflow.model_dump(),
        next_actions=get_next_actions(workflow),
        days_in_stage=days_in_current_stage(workflow),
    )


@insights_router.get(
    "/{lead_id}/probability",
    response_model=ProbabilityResponse,
    responses={
        404: {"description": "Lead or workflow not found"},
    }
)
async def get_probability(
    lead_id: UUID,
    previous_customer: bool = False,
    referral_source: bool = False,
    repository: LeadRepository = Depends(get_repository)
) -> ProbabilityResponse:
    """
    Retrieves the close-probability breakdown for a lead.

    Args:
        lead_id: UUID of the lead
        previous_customer: The prospect bought from us before
        referral_source: The lead came through a referral
        repository: Lead repository (injected)

    Returns:
        ProbabilityResponse: Buckets, final probability, confidence, insights
    """
    lead, workflow = await load_lead_and_workflow(lead_id, repository)

    breakdown = calculate_deal_probability(
        workflow,
        lead,
        DealFactors(previous_customer=previous_customer, referral_source=referral_source),
        classifier=classifier,
    )
    return ProbabilityResponse(
        **breakdown.model_dump(),
        lead_id=lead_id,
        label=probability_label(breakdown.final_probability),
    )


@insights_router.get(
    "/{lead_id}/recommendations",
    response_model=RecommendationsResponse,
    responses={
        404: {"description": "Lead or workflow not found"},
    }
)
async def get_recommendations(
    lead_id: UUID,
    repository: LeadRepository = Depends(get_repository)
) -> RecommendationsResponse:
    """Follow-up recommendations ordered from most to least pressing."""
    lead, workflow = await load_lead_and_workflow(lead_id, repository)

    recommendations = generate_follow_up_recommendations(
        workflow,
        lead,
        opportunity_playbook=settings.FOLLOW_UP_OPPORTUNITY_PLAYBOOK,
        classifier=classifier,
    )
    return RecommendationsResponse(
        lead_id=lead_id,
        stage=workflow.current_stage,
        recommendations=recommendations,
    )


@insights_router.get(
    "/{lead_id}/next-actions",
    response_model=List[str],
    responses={
        404: {"description": "Lead or workflow not found"},
    }
)
async def get_lead_next_actions(
    lead_id: UUID,
    repository: LeadRepository = Depends(get_repository)
) -> List[str]:
    _, workflow = await load_lead_and_workflow(lead_id, repository)
    return get_next_actions(workflow)

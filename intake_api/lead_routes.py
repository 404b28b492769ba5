from datetime import datetime, timezone
import json
import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException, Header, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from common.config import settings
from common.enums import LeadEventType
from common.repository import LeadRepository
from common.schemas import Lead, LeadCreate, LeadResponse, LeadUpdate, RoutingAssignment
from intake_api.dependencies import get_redis, get_repository, verify_idempotency_key
from lifecycle_engine.exceptions import RuleDefinitionError
from lifecycle_engine.routing import DEFAULT_ROUTING_RULES, assign_lead_to_rep, validate_rules

logger = logging.getLogger("intake_api")


leads_router = APIRouter(
    prefix="/leads",
    tags=["leads"],
)


async def publish_lead_event(redis: Redis, event_type: LeadEventType, lead_id: uuid.UUID):
    """Publishes a lead event to the Redis Stream read by the lifecycle worker."""
    await redis.xadd(settings.REDIS_STREAM, {
        "event_id": str(uuid.uuid4()),
        "type": event_type.value,
        "lead_id": str(lead_id),
        "occurred_at": datetime.now(timezone.utc).isoformat()
    })


async def route_new_lead(repository: LeadRepository, lead: Lead) -> Lead:
    """
    Assigns a freshly created lead to a sales rep.

    Uses the active rules stored in the database, or the default rule set
    when none are configured or the stored set is malformed. A lead nobody
    can take stays unassigned.
    """
    reps = await repository.list_reps()
    rules = await repository.list_active_rules() or DEFAULT_ROUTING_RULES
    try:
        validate_rules(rules)
    except RuleDefinitionError as e:
        logger.error(f"[ROUTING_ERROR] stored routing rules rejected, using defaults: {e}")
        rules = DEFAULT_ROUTING_RULES

    assignment = assign_lead_to_rep(lead, reps, rules)
    if assignment is None:
        logger.info(f"[ROUTING] lead={lead.id} territory={lead.territory}: no eligible rep, left unassigned")
        return lead

    await repository.save_assignment(assignment)
    logger.info(
        f"[ROUTING_OK] lead={lead.id} -> rep={assignment.assigned_to} "
        f"fallback={assignment.fallback} alternatives={assignment.alternative_reps}"
    )
    return lead.model_copy(update={"assigned_rep_id": assignment.assigned_to})


@leads_router.post(
    "/",
    response_model=LeadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": LeadResponse, "description": "Idempotent response"},
        409: {"description": "Idempotency-Key conflict"},
        400: {"description": "Idempotency-Key header required"}
    }
)
async def create_lead(
    lead_data: LeadCreate,
    idempotency_key: str = Header(..., alias="Idempotency-Key"),
    redis: Redis = Depends(get_redis),
    repository: LeadRepository = Depends(get_repository)
):
    """
    Creates a new lead, routes it to a sales rep and announces it to the
    lifecycle worker.

    Args:
        lead_data: Lead data to create
        idempotency_key: UUID idempotency key from header (required)
        redis: Redis client (injected)
        repository: Lead repository (injected)

    Returns:
        LeadResponse: Created lead data (201) or cached response (200)

    Raises:
        HTTPException: 422 if idempotency key is not a valid UUID
        HTTPException: 409 if idempotency key used with different data
        HTTPException: 500 on internal errors
    """
    try:
        # Validate UUID format at endpoint level (return 422 with clear message)
        try:
            validated_idempotency_key = uuid.UUID(idempotency_key)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Idempotency-Key must be a valid UUID",
            )

        request_data = lead_data.model_dump(mode="json")

        is_duplicate, cached_data = await verify_idempotency_key(
            redis,
            validated_idempotency_key,
            request_data
        )

        if is_duplicate:
            # Return cached response with 200 to indicate idempotent request
            return JSONResponse(
                content=cached_data["response_data"],
                status_code=status.HTTP_200_OK
            )

        lead = await repository.create_lead(lead_data)
        lead = await route_new_lead(repository, lead)
        await repository.commit()

        response = LeadResponse(**lead.model_dump())

        cache_payload = {
            "status_code": status.HTTP_201_CREATED,
            "response_data": response.model_dump(mode="json"),
            "request_data": request_data
        }
        await redis.setex(
            f"idempotency:{validated_idempotency_key}",
            settings.IDEMPOTENCY_TTL_SECONDS,
            json.dumps(cache_payload)
        )

        await publish_lead_event(redis, LeadEventType.CREATED, lead.id)

        return response

    except HTTPException as e:
        raise e
    except Exception as e:
        logger.exception("[intake_api] Error creating lead")
        await repository.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating lead: {str(e)}"
        )


@leads_router.get(
    "/{lead_id}",
    response_model=LeadResponse,
    responses={
        200: {"description": "Lead found"},
        404: {"description": "Lead not found"}
    }
)
async def get_lead(
    lead_id: uuid.UUID,
    repository: LeadRepository = Depends(get_repository)
):
    """
    Retrieves a lead by UUID.

    Raises:
        HTTPException: 404 if lead not found
        HTTPException: 500 on internal errors
    """
    try:
        lead = await repository.get_lead(lead_id)
        if not lead:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Lead with id {lead_id} not found"
            )
        return LeadResponse(**lead.model_dump())

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error retrieving lead: {str(e)}"
        )


@leads_router.patch(
    "/{lead_id}",
    response_model=LeadResponse,
    responses={
        404: {"description": "Lead not found"},
        409: {"description": "Lead has signed up and was not reopened"}
    }
)
async def update_lead(
    lead_id: uuid.UUID,
    update: LeadUpdate,
    redis: Redis = Depends(get_redis),
    repository: LeadRepository = Depends(get_repository)
):
    """
    Applies sales activity to a lead and asks the worker to re-evaluate it.

    A signed-up lead is frozen; the update must carry `reopen=true` to change it.
    """
    try:
        lead = await repository.get_lead(lead_id)
        if not lead:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Lead with id {lead_id} not found"
            )
        if lead.signed_up and not update.reopen:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Lead has signed up; set reopen=true to modify it"
            )

        lead = await repository.update_lead(lead_id, update)
        await repository.commit()

        await publish_lead_event(redis, LeadEventType.UPDATED, lead_id)

        return LeadResponse(**lead.model_dump())

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"[intake_api] Error updating lead {lead_id}")
        await repository.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error updating lead: {str(e)}"
        )


@leads_router.get(
    "/{lead_id}/assignment",
    response_model=RoutingAssignment,
    responses={
        404: {"description": "Lead is not assigned"}
    }
)
async def get_assignment(
    lead_id: uuid.UUID,
    repository: LeadRepository = Depends(get_repository)
):
    """Returns how the lead was routed, 404 while it is unassigned."""
    assignment = await repository.get_assignment(lead_id)
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Lead {lead_id} has no assignment"
        )
    return assignment

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from consent_backend.app.api.deps import get_consent_tracker
from consent_backend.app.core.auth import AuthenticatedUser, get_current_user
from consent_backend.app.core.exceptions import ServiceError
from consent_backend.app.core.logging import get_logger
from consent_backend.app.schemas import (
    ConsentResponse,
    ConsentStatusResponse,
    ConsentUpdate,
    ConsentUpdateResponse,
)
from consent_backend.app.services.consents import ConsentTracker

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/me", response_model=Optional[ConsentResponse])
async def get_my_consent(
    current_user: AuthenticatedUser = Depends(get_current_user),
    tracker: ConsentTracker = Depends(get_consent_tracker),
):
    """
    Consent record of the current user.

    Returns null for users who never made a consent decision.
    A store failure is reported as 503 instead of null.
    """
    try:
        return await tracker.fetch_user_consent(current_user.user_id)
    except ServiceError as e:
        _handle_service_error(e)


@router.post("/me", response_model=ConsentUpdateResponse)
async def record_my_consent(
    data: ConsentUpdate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    tracker: ConsentTracker = Depends(get_consent_tracker),
):
    """Accept or decline the current version of a policy."""
    ok = await tracker.record_consent(current_user.user_id, data.policy_type, data.accepted)
    if not ok:
        raise HTTPException(status_code=503, detail="Could not record consent, try again later")

    consent = await tracker.get_user_consent(current_user.user_id)
    return ConsentUpdateResponse(
        ok=True,
        policy_type=data.policy_type,
        accepted=data.accepted,
        consent=ConsentResponse.model_validate(consent) if consent else None,
    )


@router.get("/me/status", response_model=ConsentStatusResponse)
async def get_my_consent_status(
    current_user: AuthenticatedUser = Depends(get_current_user),
    tracker: ConsentTracker = Depends(get_consent_tracker),
):
    """
    Whether the user accepted both policies and which ones need review.

    Clients poll this after sign-in and whenever a policy.published event
    reaches them.
    """
    return await tracker.consent_status(current_user.user_id)

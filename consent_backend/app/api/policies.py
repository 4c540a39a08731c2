from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from consent_backend.app.api.deps import get_policy_service
from consent_backend.app.core.constants import PolicyType
from consent_backend.app.core.logging import get_logger
from consent_backend.app.schemas import PolicyVersionResponse
from consent_backend.app.services.policies import PolicyService

router = APIRouter()
logger = get_logger(__name__)


@router.get("/{policy_type}/current", response_model=PolicyVersionResponse)
async def get_current_policy(
    policy_type: PolicyType,
    service: PolicyService = Depends(get_policy_service),
):
    """Current version of a policy (the default version is created on first use)."""
    try:
        return await service.get_current_version(policy_type)
    except SQLAlchemyError as e:
        logger.error("Failed to resolve current policy", policy_type=policy_type.value, error=str(e))
        raise HTTPException(status_code=503, detail="Policy catalog unavailable")


@router.get("/{policy_type}/versions", response_model=List[PolicyVersionResponse])
async def list_policy_versions(
    policy_type: PolicyType,
    service: PolicyService = Depends(get_policy_service),
):
    """All published versions of a policy, newest first."""
    try:
        return await service.list_versions(policy_type)
    except SQLAlchemyError as e:
        logger.error("Failed to list policy versions", policy_type=policy_type.value, error=str(e))
        raise HTTPException(status_code=503, detail="Policy catalog unavailable")

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from consent_backend.app.api.deps import get_policy_service
from consent_backend.app.core.constants import PolicyType
from consent_backend.app.core.logging import get_logger
from consent_backend.app.schemas import PolicyVersionCreate, PolicyVersionResponse
from consent_backend.app.services.policies import PolicyService, PolicyServiceError

router = APIRouter()
logger = get_logger(__name__)


def _handle_policy_error(e: PolicyServiceError):
    """Convert policy service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/policies/{policy_type}/versions", response_model=PolicyVersionResponse, status_code=201)
async def publish_policy_version(
    policy_type: PolicyType,
    data: PolicyVersionCreate,
    service: PolicyService = Depends(get_policy_service),
):
    """
    Publish a new policy version and make it current.

    Users who accepted an earlier version will need to review the policy again.
    """
    logger.info("Publishing policy version", policy_type=policy_type.value, version=data.version)
    try:
        return await service.publish_version(policy_type, data.version, published_at=data.published_at)
    except PolicyServiceError as e:
        _handle_policy_error(e)
    except SQLAlchemyError as e:
        logger.error("Failed to publish policy version", policy_type=policy_type.value, error=str(e))
        raise HTTPException(status_code=503, detail="Policy catalog unavailable")

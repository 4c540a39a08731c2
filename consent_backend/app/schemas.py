from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from consent_backend.app.core.constants import MAX_VERSION_LENGTH, PolicyType


# --- Версии политик ---
class PolicyVersionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    policy_type: PolicyType
    version: str
    published_at: datetime
    is_current: bool


class PolicyVersionCreate(BaseModel):
    version: str = Field(..., min_length=1, max_length=MAX_VERSION_LENGTH, examples=["2.0"])
    published_at: Optional[datetime] = None

    @field_validator("version")
    @classmethod
    def strip_version(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("version must not be blank")
        return v


# --- Согласия пользователя ---
class ConsentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    privacy_policy_accepted: bool = False
    privacy_policy_version: Optional[str] = None
    privacy_policy_accepted_at: Optional[datetime] = None
    terms_of_service_accepted: bool = False
    terms_of_service_version: Optional[str] = None
    terms_of_service_accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ConsentUpdate(BaseModel):
    policy_type: PolicyType
    accepted: bool


class ConsentUpdateResponse(BaseModel):
    ok: bool
    policy_type: PolicyType
    accepted: bool
    consent: Optional[ConsentResponse] = None


class ConsentStatusResponse(BaseModel):
    user_id: str
    has_accepted_policies: bool
    needs_privacy_review: bool
    needs_terms_review: bool

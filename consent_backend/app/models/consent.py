from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from consent_backend.app.core.base import Base
from consent_backend.app.core.constants import (
    CONSENT_FIELD_PREFIX,
    MAX_USER_ID_LENGTH,
    MAX_VERSION_LENGTH,
    PolicyType,
)
from consent_backend.app.models.policy import utcnow


class UserConsent(Base):
    """One row per user with the acceptance state of both policy types."""
    __tablename__ = 'user_consents'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Identity provider's user id (JWT "sub")
    user_id: Mapped[str] = mapped_column(String(MAX_USER_ID_LENGTH), unique=True, nullable=False)

    privacy_policy_accepted: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text('false'), nullable=False)
    privacy_policy_version: Mapped[Optional[str]] = mapped_column(String(MAX_VERSION_LENGTH), nullable=True)
    privacy_policy_accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    terms_of_service_accepted: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text('false'), nullable=False)
    terms_of_service_version: Mapped[Optional[str]] = mapped_column(String(MAX_VERSION_LENGTH), nullable=True)
    terms_of_service_accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def accepted(self, policy_type: PolicyType) -> bool:
        return bool(getattr(self, f"{CONSENT_FIELD_PREFIX[policy_type]}_accepted"))

    def accepted_version(self, policy_type: PolicyType) -> Optional[str]:
        return getattr(self, f"{CONSENT_FIELD_PREFIX[policy_type]}_version")

    def accepted_at(self, policy_type: PolicyType) -> Optional[datetime]:
        return getattr(self, f"{CONSENT_FIELD_PREFIX[policy_type]}_accepted_at")

    @property
    def has_accepted_all(self) -> bool:
        return bool(self.privacy_policy_accepted and self.terms_of_service_accepted)

    def __repr__(self) -> str:
        return (
            f"<UserConsent {self.user_id} "
            f"privacy={self.privacy_policy_accepted}/{self.privacy_policy_version} "
            f"terms={self.terms_of_service_accepted}/{self.terms_of_service_version}>"
        )

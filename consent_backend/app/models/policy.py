from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from consent_backend.app.core.base import Base
from consent_backend.app.core.constants import MAX_VERSION_LENGTH, PolicyType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PolicyVersion(Base):
    """A published revision of a legal document (privacy policy or terms of service)."""
    __tablename__ = 'policy_versions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_type: Mapped[PolicyType] = mapped_column(
        Enum(PolicyType, name='policy_type', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    version: Mapped[str] = mapped_column(String(MAX_VERSION_LENGTH), nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text('false'), nullable=False)

    __table_args__ = (
        UniqueConstraint('policy_type', 'version', name='uq_policy_versions_type_version'),
        # At most one current version per policy type
        Index(
            'uq_policy_versions_current',
            'policy_type',
            unique=True,
            postgresql_where=text('is_current'),
            sqlite_where=text('is_current = 1'),
        ),
    )

    def __repr__(self) -> str:
        return f"<PolicyVersion {self.policy_type.value} {self.version} current={self.is_current}>"

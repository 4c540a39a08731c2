# consent_backend/app/services/policies.py
"""
Policy catalog service - resolves and publishes policy versions.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consent_backend.app.core.constants import MAX_VERSION_LENGTH, PolicyType
from consent_backend.app.core.exceptions import ServiceError
from consent_backend.app.core.logging import get_logger
from consent_backend.app.core.metrics import policy_versions_published_total
from consent_backend.app.core.settings import get_settings
from consent_backend.app.models.policy import PolicyVersion, utcnow
from consent_backend.app.services.notifications import ConsentEventBus, PolicyVersionPublished

logger = get_logger(__name__)


class PolicyServiceError(ServiceError):
    """Base exception for policy catalog errors."""
    pass


class PolicyVersionExistsError(PolicyServiceError):
    def __init__(self, policy_type: PolicyType, version: str):
        super().__init__(f"Version {version} of {policy_type.value} already exists", 409)


class PolicyService:
    """Service class for the versioned policy catalog."""

    def __init__(
        self,
        session: AsyncSession,
        events: Optional[ConsentEventBus] = None,
        default_version: Optional[str] = None,
    ):
        self.session = session
        self.events = events
        self.default_version = default_version or get_settings().DEFAULT_POLICY_VERSION

    async def _select_current(self, policy_type: PolicyType) -> Optional[PolicyVersion]:
        result = await self.session.execute(
            select(PolicyVersion).where(
                PolicyVersion.policy_type == policy_type,
                PolicyVersion.is_current.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def _select_version(self, policy_type: PolicyType, version: str) -> Optional[PolicyVersion]:
        result = await self.session.execute(
            select(PolicyVersion).where(
                PolicyVersion.policy_type == policy_type,
                PolicyVersion.version == version,
            )
        )
        return result.scalar_one_or_none()

    async def get_current_version(self, policy_type: PolicyType) -> PolicyVersion:
        """
        Return the current version of a policy type.

        When no version is current, the default version is made current
        (inserted, or promoted if a non-current row already carries it).
        Real policy content should be published before relying on this in
        production: the default silently defines what users accept.
        """
        current = await self._select_current(policy_type)
        if current is not None:
            return current
        return await self._create_default(policy_type)

    async def _create_default(self, policy_type: PolicyType) -> PolicyVersion:
        existing = await self._select_version(policy_type, self.default_version)
        try:
            if existing is not None:
                existing.is_current = True
                row = existing
            else:
                row = PolicyVersion(
                    policy_type=policy_type,
                    version=self.default_version,
                    published_at=utcnow(),
                    is_current=True,
                )
                self.session.add(row)
            await self.session.commit()
        except IntegrityError:
            # Another request created the default first
            await self.session.rollback()
            current = await self._select_current(policy_type)
            if current is None:
                raise
            logger.info(
                "Default policy version created concurrently",
                policy_type=policy_type.value,
                version=current.version,
            )
            return current

        await self.session.refresh(row)
        logger.warning(
            "No current policy version, using default",
            policy_type=policy_type.value,
            version=row.version,
            promoted=existing is not None,
        )
        return row

    async def publish_version(
        self,
        policy_type: PolicyType,
        version: str,
        published_at: Optional[datetime] = None,
    ) -> PolicyVersion:
        """
        Publish a new version and make it the current one.

        Raises:
            PolicyServiceError: If the version string is empty or too long
            PolicyVersionExistsError: If the version already exists for this type
        """
        version = (version or "").strip()
        if not version:
            raise PolicyServiceError("Version must not be empty")
        if len(version) > MAX_VERSION_LENGTH:
            raise PolicyServiceError(f"Version must be at most {MAX_VERSION_LENGTH} characters")

        if await self._select_version(policy_type, version) is not None:
            raise PolicyVersionExistsError(policy_type, version)

        await self.session.execute(
            update(PolicyVersion)
            .where(
                PolicyVersion.policy_type == policy_type,
                PolicyVersion.is_current.is_(True),
            )
            .values(is_current=False)
        )
        row = PolicyVersion(
            policy_type=policy_type,
            version=version,
            published_at=published_at or utcnow(),
            is_current=True,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise PolicyVersionExistsError(policy_type, version)
        await self.session.refresh(row)

        policy_versions_published_total.labels(policy_type=policy_type.value).inc()
        logger.info("Policy version published", policy_type=policy_type.value, version=version)

        if self.events is not None:
            await self.events.publish(PolicyVersionPublished(policy_type=policy_type, version=version))
        return row

    async def list_versions(self, policy_type: PolicyType) -> List[PolicyVersion]:
        """All versions of a policy type, newest first."""
        result = await self.session.execute(
            select(PolicyVersion)
            .where(PolicyVersion.policy_type == policy_type)
            .order_by(PolicyVersion.published_at.desc(), PolicyVersion.id.desc())
        )
        return list(result.scalars().all())

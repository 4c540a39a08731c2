# consent_backend/app/services/consents.py
"""
Consent tracker - records policy acceptance per user and detects stale
acceptances against the currently published policy versions.

Store failures never cross this boundary as exceptions: they are logged and
turned into None / False, the same values that mean "no data". Use
fetch_user_consent() where the two must be told apart.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from consent_backend.app.core.constants import CONSENT_FIELD_PREFIX, PolicyType
from consent_backend.app.core.exceptions import ServiceError
from consent_backend.app.core.logging import get_logger
from consent_backend.app.core.metrics import consent_store_errors_total, consents_recorded_total
from consent_backend.app.models.consent import UserConsent
from consent_backend.app.models.policy import PolicyVersion, utcnow
from consent_backend.app.services.notifications import ConsentChanged, ConsentEventBus
from consent_backend.app.services.policies import PolicyService

logger = get_logger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ConsentStoreError(ServiceError):
    """The record store could not be reached or rejected the operation."""

    def __init__(self, operation: str):
        super().__init__(f"Consent store unavailable ({operation})", 503)
        self.operation = operation


@dataclass(frozen=True)
class PolicyReview:
    needs_privacy_review: bool
    needs_terms_review: bool

    @property
    def review_required(self) -> bool:
        return self.needs_privacy_review or self.needs_terms_review

    def for_policy(self, policy_type: PolicyType) -> bool:
        if policy_type == PolicyType.PRIVACY_POLICY:
            return self.needs_privacy_review
        return self.needs_terms_review


class ConsentTracker:
    """Service class for per-user policy consent."""

    def __init__(
        self,
        session: AsyncSession,
        events: Optional[ConsentEventBus] = None,
        policies: Optional[PolicyService] = None,
    ):
        self.session = session
        self.events = events
        self.policies = policies or PolicyService(session, events=events)

    async def _store_failed(self, operation: str, error: SQLAlchemyError, **context: Any) -> None:
        consent_store_errors_total.labels(operation=operation).inc()
        logger.error("Consent store operation failed", operation=operation, error=str(error), **context)
        try:
            await self.session.rollback()
        except SQLAlchemyError as rollback_error:
            logger.warning("Rollback after store failure failed", operation=operation, error=str(rollback_error))

    async def fetch_user_consent(self, user_id: str) -> Optional[UserConsent]:
        """
        Find the consent record of a user.

        Returns:
            UserConsent or None if the user has no record yet

        Raises:
            ConsentStoreError: If the store could not be queried
        """
        try:
            result = await self.session.execute(
                select(UserConsent)
                .where(UserConsent.user_id == user_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._store_failed("get_user_consent", e, user_id=user_id)
            raise ConsentStoreError("get_user_consent") from e

    async def get_user_consent(self, user_id: str) -> Optional[UserConsent]:
        """Consent record of a user, or None if absent or the store failed."""
        try:
            return await self.fetch_user_consent(user_id)
        except ConsentStoreError:
            return None

    async def get_current_policy_version(self, policy_type: PolicyType) -> Optional[PolicyVersion]:
        """
        Current version of a policy type, creating the default one if needed.
        Returns None only when the store failed.
        """
        try:
            return await self.policies.get_current_version(policy_type)
        except SQLAlchemyError as e:
            await self._store_failed("get_current_policy_version", e, policy_type=policy_type.value)
            return None

    async def record_consent(self, user_id: str, policy_type: PolicyType, accepted: bool) -> bool:
        """
        Record a user's decision on the current version of a policy.

        Only the fields of the touched policy type are written. Accepting
        stores the current version string and timestamp; declining clears the
        timestamp and leaves the stored version as it was. The write is a
        single INSERT ... ON CONFLICT (user_id) DO UPDATE, so concurrent
        first-time writers cannot create two rows.

        Returns:
            True if the decision was stored, False otherwise
        """
        logger.info("Recording consent", user_id=user_id, policy_type=policy_type.value, accepted=accepted)

        current = await self.get_current_policy_version(policy_type)
        if current is None:
            logger.error("Could not resolve current policy version", policy_type=policy_type.value)
            return False
        current_version = current.version

        now = utcnow()
        prefix = CONSENT_FIELD_PREFIX[policy_type]
        touched: Dict[str, Any] = {
            f"{prefix}_accepted": accepted,
            f"{prefix}_accepted_at": now if accepted else None,
        }
        if accepted:
            touched[f"{prefix}_version"] = current_version

        new_record: Dict[str, Any] = {
            "user_id": user_id,
            "privacy_policy_accepted": False,
            "privacy_policy_version": None,
            "privacy_policy_accepted_at": None,
            "terms_of_service_accepted": False,
            "terms_of_service_version": None,
            "terms_of_service_accepted_at": None,
            "created_at": now,
            "updated_at": now,
        }
        new_record.update(touched)

        try:
            insert = self._upsert_insert()
            stmt = insert(UserConsent).values(**new_record)
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id"],
                set_={**touched, "updated_at": now},
            )
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._store_failed("record_consent", e, user_id=user_id, policy_type=policy_type.value)
            return False

        consents_recorded_total.labels(policy_type=policy_type.value, accepted=str(accepted).lower()).inc()
        logger.info(
            "Consent recorded",
            user_id=user_id,
            policy_type=policy_type.value,
            accepted=accepted,
            version=current_version,
        )

        if self.events is not None:
            await self.events.publish(ConsentChanged(
                user_id=user_id,
                policy_type=policy_type,
                accepted=accepted,
                version=current_version if accepted else None,
            ))
        return True

    def _upsert_insert(self):
        dialect = self.session.get_bind().dialect.name
        try:
            return _UPSERT_INSERTS[dialect]
        except KeyError:
            raise ServiceError(f"Consent upsert is not supported on {dialect}", 500)

    async def has_accepted_policies(self, user_id: str) -> bool:
        """True only if the user accepted both the privacy policy and the terms of service."""
        consent = await self.get_user_consent(user_id)
        if consent is None:
            logger.debug("No consent record found", user_id=user_id)
            return False
        return consent.has_accepted_all

    async def needs_policy_review(self, user_id: str) -> PolicyReview:
        """
        Check which policies the user has to (re-)accept.

        A policy needs review if the user has no record, never accepted it,
        or accepted a version string different from the current one. Any
        mismatch counts, including a current version older than the accepted one.
        """
        consent = await self.get_user_consent(user_id)
        return await self._review(user_id, consent)

    async def _review(self, user_id: str, consent: Optional[UserConsent]) -> PolicyReview:
        if consent is None:
            return PolicyReview(needs_privacy_review=True, needs_terms_review=True)

        # Copied up front: a rollback after a failed catalog read expires `consent`
        accepted = {
            policy_type: (consent.accepted(policy_type), consent.accepted_version(policy_type))
            for policy_type in PolicyType
        }
        review = PolicyReview(
            needs_privacy_review=await self._needs_review(PolicyType.PRIVACY_POLICY, *accepted[PolicyType.PRIVACY_POLICY]),
            needs_terms_review=await self._needs_review(PolicyType.TERMS_OF_SERVICE, *accepted[PolicyType.TERMS_OF_SERVICE]),
        )
        logger.debug(
            "Policy review computed",
            user_id=user_id,
            needs_privacy_review=review.needs_privacy_review,
            needs_terms_review=review.needs_terms_review,
        )
        return review

    async def _needs_review(self, policy_type: PolicyType, accepted: bool, accepted_version: Optional[str]) -> bool:
        if not accepted:
            return True
        current = await self.get_current_policy_version(policy_type)
        if current is None:
            return True
        return accepted_version != current.version

    async def consent_status(self, user_id: str) -> Dict[str, Any]:
        """Acceptance summary for the pull-based status endpoint."""
        consent = await self.get_user_consent(user_id)
        has_accepted = consent.has_accepted_all if consent else False
        review = await self._review(user_id, consent)
        return {
            "user_id": user_id,
            "has_accepted_policies": has_accepted,
            "needs_privacy_review": review.needs_privacy_review,
            "needs_terms_review": review.needs_terms_review,
        }

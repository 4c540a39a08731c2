# consent_backend/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from consent_backend.app.services.consents import (
    ConsentTracker,
    ConsentStoreError,
    PolicyReview,
)
from consent_backend.app.services.policies import (
    PolicyService,
    PolicyServiceError,
    PolicyVersionExistsError,
)
from consent_backend.app.services.notifications import (
    ConsentEventBus,
    ConsentChanged,
    PolicyVersionPublished,
    WebhookNotifier,
    get_event_bus,
)

__all__ = [
    # Consent tracker
    "ConsentTracker",
    "ConsentStoreError",
    "PolicyReview",
    # Policy catalog
    "PolicyService",
    "PolicyServiceError",
    "PolicyVersionExistsError",
    # Notifications
    "ConsentEventBus",
    "ConsentChanged",
    "PolicyVersionPublished",
    "WebhookNotifier",
    "get_event_bus",
]

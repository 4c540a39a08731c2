"""
Shared constants for the backend application.
"""
import enum


# ---------------------------------------------------------------------------
# Policy types
# ---------------------------------------------------------------------------
class PolicyType(str, enum.Enum):
    PRIVACY_POLICY = "privacy_policy"
    TERMS_OF_SERVICE = "terms_of_service"


# Column prefix on user_consents for each policy type
CONSENT_FIELD_PREFIX = {
    PolicyType.PRIVACY_POLICY: "privacy_policy",
    PolicyType.TERMS_OF_SERVICE: "terms_of_service",
}

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
MAX_VERSION_LENGTH = 50
MAX_USER_ID_LENGTH = 64

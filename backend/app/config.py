import logging
import os

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


def _positive_int(env_var: str, default: int) -> int:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = int(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid integer (got %r); defaulting to %d",
            env_var,
            raw_value,
            default,
        )
        return default
    if value < 1:
        logger.warning("%s must be positive; defaulting to %d", env_var, default)
        return default
    return value


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY")
VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY")
VAPID_SUBJECT = (
    os.getenv("VAPID_SUBJECT")
    or os.getenv("NOTIFICATION_CONTACT_EMAIL")
    or "mailto:admin@example.com"
)

SUBMISSION_RATE_LIMIT = (os.getenv("SUBMISSION_RATE_LIMIT") or "30/minute").strip()

# Number of randomized attempts used when precomputing a full tournament schedule.
PAIRING_SCHEDULE_ATTEMPTS = _positive_int("PAIRING_SCHEDULE_ATTEMPTS", 120)


def rate_limits_disabled() -> bool:
    return (os.getenv("DISABLE_RATE_LIMITS") or "").lower() == "true"


def allowed_origins() -> list[str]:
    """Parse ``ALLOWED_ORIGINS``; the API refuses to start without explicit origins."""

    raw = (os.getenv("ALLOWED_ORIGINS") or "").strip()
    if not raw:
        raise ValueError(
            "ALLOWED_ORIGINS environment variable must be set to a comma-separated "
            "list of trusted origins."
        )
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if not origins:
        raise ValueError("ALLOWED_ORIGINS must contain at least one non-empty origin.")
    # Credentials are allowed, so a wildcard would trust every site.
    if "*" in origins:
        raise ValueError(
            "ALLOWED_ORIGINS cannot include '*' (wildcard). Specify explicit, trusted origins."
        )
    return origins


def allow_credentials() -> bool:
    return (os.getenv("ALLOW_CREDENTIALS") or "true").lower() == "true"

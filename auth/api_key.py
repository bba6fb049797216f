"""Signed API key issuing and validation."""
import hashlib
import hmac
import logging
import secrets
from datetime import date, datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

KEY_PREFIX = 'stucal'
SIGNATURE_LENGTH = 8
SECRET_LENGTH = 3  # characters of MASTER_KEY used as the HMAC key
EXPIRY_FORMAT = '%Y-%m-%d'


class ConfigurationError(Exception):
    """Raised when the service is missing required configuration."""


class AuthenticationError(Exception):
    """Base class for rejected API keys."""

    status_code = 403


class MissingApiKeyError(AuthenticationError):
    """Raised when no API key was supplied."""

    status_code = 401


class InvalidApiKeyError(AuthenticationError):
    """Raised when an API key is malformed, expired or badly signed."""


def sign_key_content(master_key: str, key_content: str) -> str:
    """
    Compute the truncated HMAC-SHA256 signature for a key body.

    Args:
        master_key: Service secret; only its first characters are used
        key_content: "prefix_random_expiry"

    Returns:
        First 8 lowercase hex characters of the digest
    """
    digest = hmac.new(
        master_key[:SECRET_LENGTH].encode('utf-8'),
        key_content.encode('utf-8'),
        hashlib.sha256
    ).hexdigest()
    return digest[:SIGNATURE_LENGTH]


def generate_api_key(
    master_key: str,
    expiry: date,
    random_part: Optional[str] = None
) -> str:
    """
    Issue an API key of the form prefix_random_expiry_signature.

    Args:
        master_key: Service secret
        expiry: Last day the key is valid
        random_part: Random component (generated when omitted)

    Returns:
        API key string
    """
    if not master_key:
        raise ConfigurationError("MASTER_KEY is required to generate API keys")

    if random_part is None:
        random_part = secrets.token_hex(8)
    if '_' in random_part:
        raise ValueError("random_part must not contain '_'")

    key_content = f"{KEY_PREFIX}_{random_part}_{expiry.strftime(EXPIRY_FORMAT)}"
    return f"{key_content}_{sign_key_content(master_key, key_content)}"


class ApiKeyValidator:
    """Validator for caller-supplied API keys."""

    def __init__(
        self,
        master_key: Optional[str],
        development: bool = False,
        today: Optional[date] = None
    ):
        """
        Initialize the validator.

        Args:
            master_key: Service secret (MASTER_KEY)
            development: Skip validation entirely when True
            today: Date used for expiry checks (defaults to today in UTC)
        """
        self.master_key = master_key
        self.development = development
        self.today = today

    def validate(self, api_key: Optional[str]) -> bool:
        """
        Validate an API key.

        Args:
            api_key: Key from the X-API-Key header or key query parameter

        Returns:
            True if the key is accepted

        Raises:
            ConfigurationError: If MASTER_KEY is not configured
            MissingApiKeyError: If no key was supplied
            InvalidApiKeyError: If the key is rejected
        """
        if self.development:
            logger.info("Development environment detected, skipping validation")
            return True

        if not self.master_key:
            logger.error("MASTER_KEY environment variable is not set in production")
            raise ConfigurationError(
                "Server configuration error: Authentication is not properly configured"
            )

        if not api_key:
            raise MissingApiKeyError("No API key provided in header or URL parameters")

        parts = api_key.split('_')
        if len(parts) != 4:
            raise InvalidApiKeyError("Invalid API key format")

        prefix, random_part, expiry, provided_signature = parts

        if prefix != KEY_PREFIX:
            raise InvalidApiKeyError("Invalid API key prefix")

        try:
            expiry_date = datetime.strptime(expiry, EXPIRY_FORMAT).date()
        except ValueError:
            raise InvalidApiKeyError("Invalid expiry date format in API key")

        today = self.today or datetime.now(timezone.utc).date()
        if expiry_date < today:
            raise InvalidApiKeyError("API key has expired")

        expected_signature = sign_key_content(
            self.master_key, f"{prefix}_{random_part}_{expiry}"
        )
        if not hmac.compare_digest(
            expected_signature.encode('utf-8'), provided_signature.encode('utf-8')
        ):
            raise InvalidApiKeyError("Invalid API key signature")

        return True

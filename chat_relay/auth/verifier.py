"""
Identity Verifier

Validates the bearer credential presented when a connection opens and
derives the session identity from it. Credentials are minted by the primary
backend; only verification happens here.

Every verification failure (malformed, expired, bad signature, missing
claim) collapses to the same AuthenticationFailed outcome so a caller cannot
probe which part of a token was wrong. A missing secret is a separate,
server-side MisconfiguredError.
"""

import logging
from dataclasses import dataclass

import jwt

from chat_relay.errors import AuthenticationFailed, MisconfiguredError

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class Identity:
    """Who a session acts as."""
    user_id: str
    role: str | None = None


def extract_bearer_token(
    auth_token: str | None,
    authorization_header: str | None,
) -> str | None:
    """
    Pick the credential from the handshake auth field or the Authorization header.

    The auth field wins when both are present.
    """
    if auth_token and auth_token.strip():
        return auth_token.strip()
    if authorization_header:
        parts = authorization_header.split(None, 1)
        if parts and parts[0].lower() == BEARER_SCHEME:
            if len(parts) < 2:
                return None
            return parts[1].strip() or None
        return authorization_header.strip() or None
    return None


class IdentityVerifier:
    """
    Verifies signed credentials with PyJWT.

    Claims used:
        userId: required, becomes Identity.user_id
        role: optional, becomes Identity.role
    """

    def __init__(self, secret: str | None, algorithms: list[str] | None = None):
        self._secret = secret
        self._algorithms = algorithms or ["HS256"]

    def authenticate(self, credential: str | None) -> Identity:
        """
        Verify a credential and return the identity it carries.

        Raises:
            MisconfiguredError: If no verification secret is configured
            AuthenticationFailed: If the credential is missing or invalid
        """
        if not credential:
            raise AuthenticationFailed("Authentication token required")

        if not self._secret:
            logger.error("JWT_SECRET not configured, refusing connection")
            raise MisconfiguredError("JWT_SECRET not configured")

        try:
            claims = jwt.decode(credential, self._secret, algorithms=self._algorithms)
        except jwt.PyJWTError as e:
            logger.info(f"Credential rejected: {type(e).__name__}")
            raise AuthenticationFailed() from None

        user_id = claims.get("userId")
        if user_id is None or str(user_id).strip() == "":
            logger.info("Credential rejected: missing userId claim")
            raise AuthenticationFailed()

        role = claims.get("role")
        return Identity(user_id=str(user_id), role=str(role) if role is not None else None)

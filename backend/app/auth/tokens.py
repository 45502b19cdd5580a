"""JWT access tokens (PyJWT)."""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import jwt

from backend.app.config import Settings
from backend.app.db.context import Role
from backend.app.errors import Unauthenticated


class TokenService:
    """Signs and verifies access tokens.

    HS256 signs with ``jwt_secret``; RS256 signs with the private PEM and
    verifies with the public PEM.
    """

    def __init__(self, settings: Settings) -> None:
        self._algorithm = settings.jwt_algorithm
        self._ttl = timedelta(minutes=settings.jwt_access_token_minutes)

        if self._algorithm.startswith("RS"):
            self._signing_key = settings.jwt_private_key_pem
            self._verify_key = settings.jwt_public_key_pem
        else:
            self._signing_key = settings.jwt_secret
            self._verify_key = settings.jwt_secret

        if not self._verify_key:
            raise ValueError(
                "JWT verification key is not configured. "
                "Set JWT_SECRET (HS*) or JWT_PUBLIC_KEY_PEM (RS*)."
            )

    def create_access_token(
        self,
        user_id: UUID,
        organization_id: UUID | None,
        role: Role,
        expires: timedelta | None = None,
    ) -> str:
        """Create a signed access token.

        Args:
            user_id: Subject (user) ID
            organization_id: Organization the token acts in (None for a
                superadmin acting cross-tenant)
            role: User role at issue time
            expires: Lifetime override

        Returns:
            Encoded JWT
        """
        if not self._signing_key:
            raise ValueError("JWT signing key is not configured")

        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": str(user_id),
            "role": role.value,
            "iat": int(now.timestamp()),
            "exp": int((now + (expires or self._ttl)).timestamp()),
        }
        if organization_id is not None:
            payload["org"] = str(organization_id)

        return jwt.encode(payload, self._signing_key, algorithm=self._algorithm)

    def decode(self, token: str) -> dict[str, Any]:
        """Verify signature and expiry and return the claims.

        Raises:
            Unauthenticated: If the token is invalid, expired or lacks claims
        """
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                self._verify_key,
                algorithms=[self._algorithm],
                options={"require": ["sub", "role", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise Unauthenticated("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise Unauthenticated("Invalid or expired token") from e

        return claims

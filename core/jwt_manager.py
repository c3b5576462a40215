"""
JWT Token Manager for the CrowdShip Platform
Verifies the access tokens presented to marketplace endpoints
"""

import jwt
import uuid
import secrets
import logging
from typing import Dict, Any, Optional
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass

from core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class TokenClaims:
    """Standard token claims"""
    user_id: str
    email: Optional[str] = None


class JWTManager:
    """
    JWT Token Manager

    Issues and verifies HS256 access tokens carrying the user id (`sub`)
    and email.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        issuer: Optional[str] = None,
        access_token_expiry: int = 3600,  # 1 hour
    ):
        """
        Initialize JWT Manager

        Args:
            secret_key: Secret key for signing tokens (will auto-generate if not provided)
            algorithm: JWT algorithm (default: settings, HS256)
            issuer: Token issuer identifier
            access_token_expiry: Access token expiry in seconds
        """
        settings = get_settings()

        self.secret_key = secret_key or settings.jwt_secret or self._generate_secret()
        self.algorithm = algorithm or settings.jwt_algorithm
        self.issuer = issuer or settings.jwt_issuer
        self.access_token_expiry = access_token_expiry

        # Warn if using default secret
        if not secret_key and not settings.jwt_secret:
            logger.warning(
                "No JWT_SECRET provided - using generated secret. "
                "This should ONLY be used in development!"
            )

    def _generate_secret(self) -> str:
        """Generate a secure random secret"""
        return secrets.token_urlsafe(64)

    def create_access_token(
        self,
        claims: TokenClaims,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """
        Create an access token

        Args:
            claims: Token claims
            expires_delta: Custom expiration time (optional)

        Returns:
            JWT access token string
        """
        now = datetime.now(tz=timezone.utc)
        expires = now + (expires_delta or timedelta(seconds=self.access_token_expiry))

        payload = {
            "iss": self.issuer,
            "sub": claims.user_id,
            "iat": int(now.timestamp()),
            "exp": int(expires.timestamp()),
            "jti": str(uuid.uuid4()),
            "email": claims.email,
        }

        # Remove None values
        payload = {k: v for k, v in payload.items() if v is not None}

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

        logger.debug(f"Created access token for user: {claims.user_id}, expires: {expires}")
        return token

    def verify_token(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        """
        Verify and decode a JWT token

        Args:
            token: JWT token string
            verify_exp: Verify expiration (default: True)

        Returns:
            Dictionary with verification result and payload
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"verify_exp": verify_exp}
            )

            return {
                "valid": True,
                "payload": payload,
                "user_id": payload.get("sub"),
                "email": payload.get("email"),
                "expires_at": datetime.fromtimestamp(payload.get("exp", 0), tz=timezone.utc),
            }

        except jwt.ExpiredSignatureError:
            return {
                "valid": False,
                "error": "Token has expired"
            }
        except jwt.InvalidIssuerError:
            return {
                "valid": False,
                "error": "Invalid token issuer"
            }
        except jwt.InvalidTokenError as e:
            return {
                "valid": False,
                "error": f"Invalid token: {str(e)}"
            }


# Singleton instance for application-wide use
_jwt_manager_instance: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    """Get or create JWT manager singleton instance"""
    global _jwt_manager_instance

    if _jwt_manager_instance is None:
        _jwt_manager_instance = JWTManager()

    return _jwt_manager_instance

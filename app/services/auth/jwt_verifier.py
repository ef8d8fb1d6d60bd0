"""
JWT Auth Service

Verifies access tokens signed by the identity provider (HS256 shared
secret). The ``sub`` claim is the user id; ``aud`` is checked when
AUTH_JWT_AUDIENCE is set.
"""

import logging
from typing import Optional

from jose import JWTError, jwt

from app.core.config import get_settings
from app.core.exceptions import AuthenticationError
from app.services.auth.base import AuthUser, BaseAuthService

logger = logging.getLogger(__name__)


class JWTAuthService(BaseAuthService):
    """
    Access token verifier for staging/production.

    Attributes:
        secret: Signing secret shared with the identity provider
        algorithm: Expected signing algorithm
        audience: Expected audience claim (None skips the check)
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        settings = get_settings()
        self.secret = secret or settings.auth_jwt_secret
        self.algorithm = algorithm or settings.auth_jwt_algorithm
        self.audience = audience if audience is not None else settings.auth_jwt_audience

        if not self.secret:
            logger.warning("JWTAuthService has no AUTH_JWT_SECRET, every token will be rejected")

    @property
    def provider_name(self) -> str:
        return "jwt"

    async def verify_token(self, token: str) -> AuthUser:
        if not self.secret:
            raise AuthenticationError()

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            logger.info(f"Rejected access token: {e}")
            raise AuthenticationError()

        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError()

        return AuthUser(user_id=user_id, email=claims.get("email"), claims=claims)

    async def health_check(self) -> bool:
        return bool(self.secret)

"""
Mock Auth Service

Development-only verifier: a token of the form ``dev-<user_id>`` logs in
as ``<user_id>``. Never enabled outside ENV_MODE=development.
"""

import logging

from app.core.exceptions import AuthenticationError
from app.services.auth.base import AuthUser, BaseAuthService

logger = logging.getLogger(__name__)

DEV_TOKEN_PREFIX = "dev-"


def make_dev_token(user_id: str) -> str:
    """Token accepted by MockAuthService for ``user_id``."""
    return f"{DEV_TOKEN_PREFIX}{user_id}"


class MockAuthService(BaseAuthService):

    @property
    def provider_name(self) -> str:
        return "mock"

    async def verify_token(self, token: str) -> AuthUser:
        if not token.startswith(DEV_TOKEN_PREFIX) or len(token) == len(DEV_TOKEN_PREFIX):
            logger.debug("Mock: rejected token without dev prefix")
            raise AuthenticationError()
        return AuthUser(user_id=token[len(DEV_TOKEN_PREFIX):])

    async def health_check(self) -> bool:
        return True

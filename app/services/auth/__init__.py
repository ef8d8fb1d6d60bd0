"""
Auth Service Factory

Returns the mock verifier (dev tokens) in development and the JWT
verifier in staging/production, based on ENV_MODE.
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.auth.base import AuthUser, BaseAuthService
from app.services.auth.jwt_verifier import JWTAuthService
from app.services.auth.mock import MockAuthService, make_dev_token

logger = logging.getLogger(__name__)


@lru_cache()
def get_auth_service() -> BaseAuthService:
    """Get the configured auth service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Auth Service: Using MockAuthService (development mode)")
        return MockAuthService()
    else:
        logger.info(f"Auth Service: Using JWTAuthService ({settings.env_mode.value} mode)")
        return JWTAuthService()


__all__ = [
    "get_auth_service",
    "AuthUser",
    "BaseAuthService",
    "JWTAuthService",
    "MockAuthService",
    "make_dev_token",
]

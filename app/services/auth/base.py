"""
Auth Service Abstract Base Class

The identity provider (sign-up, login, sessions) lives outside this
service. The API only needs to turn a bearer token into a user id; each
implementation does that in its own way.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class AuthUser:
    """
    Authenticated caller.

    Attributes:
        user_id: Identity provider's user id (profiles.id)
        email: Email claim, when the token carries one
        claims: Remaining verified token claims
    """
    user_id: str
    email: Optional[str] = None
    claims: dict = field(default_factory=dict)


class BaseAuthService(ABC):
    """Abstract base class for access token verification."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def verify_token(self, token: str) -> AuthUser:
        """
        Verify an access token.

        Raises:
            AuthenticationError: Token missing, malformed, expired or forged
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check the verifier is usable."""
        pass

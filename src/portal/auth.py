"""Authentication and Authorization for the Member Portal.

Handles:
- Bearer token issue and verification (the identity collaborator)
- Resolving the current caller for FastAPI routes
- Operator-only access checks
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from shared.errors import ForbiddenError, UnauthenticatedError
from shared.logging import get_logger
from shared.models import UserContext

logger = get_logger(__name__)

ALGORITHM = "HS256"

ANONYMOUS_USER = UserContext(user_id="anonymous", username="anonymous", roles=["member"])


class TokenData(BaseModel):
    """Data extracted from a JWT token."""
    user_id: str
    username: str
    email: Optional[str] = None
    roles: list[str] = []
    exp: Optional[datetime] = None


class AuthConfig(BaseModel):
    """Authentication configuration."""
    secret_key: str
    token_expire_minutes: int = 60
    require_auth: bool = True


class AuthMiddleware:
    """
    Resolves caller identity from JWT bearer tokens.

    Tokens carry the user id in ``sub`` along with username, email and roles.
    """

    def __init__(self, config: AuthConfig) -> None:
        self.config = config

    def create_token(self, user: UserContext, expires_in: Optional[timedelta] = None) -> str:
        """
        Create a JWT token for a user.

        Args:
            user: User context
            expires_in: Lifetime override, defaults to the configured expiry

        Returns:
            JWT token string
        """
        lifetime = expires_in or timedelta(minutes=self.config.token_expire_minutes)
        payload = {
            "sub": user.user_id,
            "username": user.username,
            "email": user.email,
            "roles": user.roles,
            "exp": datetime.now(timezone.utc) + lifetime,
        }
        return jwt.encode(payload, self.config.secret_key, algorithm=ALGORITHM)

    def verify_token(self, token: str) -> TokenData:
        """
        Verify and decode a JWT token.

        Raises:
            UnauthenticatedError: If the token is invalid, expired or has no subject
        """
        try:
            payload = jwt.decode(token, self.config.secret_key, algorithms=[ALGORITHM])
        except JWTError as e:
            logger.warning("Token verification failed", error=str(e))
            raise UnauthenticatedError("Invalid authentication token") from e

        user_id = payload.get("sub")
        if not user_id:
            raise UnauthenticatedError("Token has no subject")

        return TokenData(
            user_id=user_id,
            username=payload.get("username") or user_id,
            email=payload.get("email"),
            roles=payload.get("roles") or [],
        )

    def get_user_context(self, token_data: TokenData) -> UserContext:
        """Convert token data to user context."""
        return UserContext(
            user_id=token_data.user_id,
            username=token_data.username,
            email=token_data.email,
            roles=token_data.roles,
        )

    def resolve(self, token: Optional[str]) -> UserContext:
        """
        Resolve the current user from a bearer token.

        Raises:
            UnauthenticatedError: If auth is required and no valid token is given
        """
        if not self.config.require_auth:
            return ANONYMOUS_USER

        if not token:
            raise UnauthenticatedError()

        return self.get_user_context(self.verify_token(token))

    def resolve_optional(self, token: Optional[str]) -> Optional[UserContext]:
        """Like resolve, but an absent or invalid token yields None."""
        try:
            return self.resolve(token)
        except UnauthenticatedError:
            return None


def require_admin(user: UserContext) -> UserContext:
    """
    Check that the caller may perform operator actions.

    Raises:
        ForbiddenError: If the user lacks the admin role
    """
    if not user.is_admin:
        logger.warning("Access denied (admin only)", user_id=user.user_id, roles=user.roles)
        raise ForbiddenError("Admin access required")
    return user

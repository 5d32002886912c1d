"""Bearer-token actor resolution.

Tokens are issued by the upstream auth provider; this module only decodes
them to find the actor id (``sub``) that usage and rate limits are
attributed to.
"""

from typing import Annotated, Any

import jwt
from fastapi import Depends, Header
from pydantic import BaseModel

from voxwatch.api.deps import get_app_settings
from voxwatch.config import Settings
from voxwatch.core.errors import ForbiddenError, UnauthorizedError
from voxwatch.logging_config import get_logger

logger: Any = get_logger(__name__)

BEARER_PREFIX = "Bearer "


# =============================================================================
# Token Models
# =============================================================================


class TokenPayload(BaseModel):
    """Validated JWT token payload."""

    sub: str  # Subject (actor id)
    email: str | None = None
    role: str | None = None
    exp: int | None = None
    iat: int | None = None


# =============================================================================
# Token Validation
# =============================================================================


def decode_token(token: str, settings: Settings) -> TokenPayload:
    """Decode and validate a JWT.

    With ``jwt_verify`` off (development) the signature is not checked.
    Otherwise an HS256 ``jwt_secret`` is required.
    """
    if token.startswith(BEARER_PREFIX):
        token = token[len(BEARER_PREFIX) :]

    try:
        if not settings.jwt_verify:
            payload = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": True, "verify_aud": False},
                algorithms=["HS256", "RS256"],
            )
        elif settings.jwt_secret is not None:
            payload = jwt.decode(
                token,
                settings.jwt_secret.get_secret_value(),
                algorithms=["HS256"],
                audience=settings.jwt_audience,
                options={"verify_aud": settings.jwt_audience is not None},
            )
        else:
            raise UnauthorizedError("Token verification is not configured")

        return TokenPayload(**payload)

    except jwt.ExpiredSignatureError as e:
        raise UnauthorizedError("Token has expired") from e
    except jwt.InvalidAudienceError as e:
        raise UnauthorizedError("Invalid token audience") from e
    except jwt.PyJWTError as e:
        raise UnauthorizedError(f"Invalid token: {e}") from e
    except (TypeError, ValueError) as e:
        raise UnauthorizedError("Invalid token payload") from e


def resolve_actor_id(authorization: str | None, settings: Settings) -> str | None:
    """Actor id from an Authorization header, or None when anonymous.

    Invalid tokens are treated as anonymous here; endpoints that require an
    actor reject them through ``get_current_actor``.
    """
    if not authorization:
        return None
    try:
        return decode_token(authorization, settings).sub
    except UnauthorizedError as e:
        logger.debug(f"Ignoring unusable bearer token: {e.message}")
        return None


# =============================================================================
# FastAPI Dependencies
# =============================================================================


async def get_current_actor(
    settings: Annotated[Settings, Depends(get_app_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> TokenPayload:
    """Require a valid bearer token."""
    if not authorization:
        raise UnauthorizedError("Authorization header required")
    return decode_token(authorization, settings)


async def require_admin(
    actor: Annotated[TokenPayload, Depends(get_current_actor)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> TokenPayload:
    """Allow only admins (``role == "admin"`` or a configured admin id)."""
    if actor.role == "admin" or actor.sub in settings.admin_actor_ids:
        return actor
    raise ForbiddenError("Admin access required")

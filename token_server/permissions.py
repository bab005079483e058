"""
Bearer token checks for the RBAC admin API. Admin callers present an access token this
server issued for ADMIN_AUDIENCE; it is verified against our own signing keys.
"""
import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from token_server.config import ADMIN_AUDIENCE, ISSUER
from token_server.dependencies import get_jwt_registry
from token_server.jwt_provider import JwtProviderRegistry

logger = logging.getLogger(__name__)

# Scope every admin token must carry; the roles claim then picks the operations
ADMIN_SCOPE = "rbac"
ROLE_CREATE = "rbac.create"
ROLE_READ = "rbac.read"
ROLE_DELETE = "rbac.delete"

security = HTTPBearer(auto_error=False)


def _unauthorized(error: str, description: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "error_description": description},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    if credentials is None:
        raise _unauthorized("invalid_request", "Authorization header missing")
    if credentials.scheme.lower() != "bearer":
        raise _unauthorized("invalid_request", "Bearer scheme required")
    return credentials.credentials


def verify_admin_token(token: str, registry: JwtProviderRegistry) -> dict:
    """Check signature (by kid), audience, issuer and expiry. Returns the claims."""
    try:
        kid = jwt.get_unverified_header(token).get("kid")
        public_key = registry.key_ring.public_key_for(kid) if kid else None
        if public_key is None:
            raise _unauthorized("invalid_token", "Unknown signing key")
        return jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            audience=ADMIN_AUDIENCE,
            issuer=ISSUER,
            options={"require": ["exp", "aud", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("invalid_token", "Token expired")
    except jwt.InvalidAudienceError:
        raise _unauthorized("invalid_token", "Invalid audience")
    except jwt.InvalidIssuerError:
        raise _unauthorized("invalid_token", "Invalid issuer")
    except jwt.InvalidTokenError as e:
        logger.debug("Admin token verification failed: %s", e)
        raise _unauthorized("invalid_token", "Token verification failed")


def get_claims(
    token: Annotated[str, Depends(get_bearer_token)],
    registry: Annotated[JwtProviderRegistry, Depends(get_jwt_registry)],
) -> dict:
    return verify_admin_token(token, registry)


def _forbidden(description: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"error": "insufficient_scope", "error_description": description},
    )


def require_role(required: str):
    """Dependency factory: the token must carry the rbac scope and the given role."""

    def _check(claims: Annotated[dict, Depends(get_claims)]) -> dict:
        scopes = set(str(claims.get("scp", "")).split())
        if ADMIN_SCOPE not in scopes:
            raise _forbidden(f"Scope '{ADMIN_SCOPE}' required")
        roles = claims.get("roles") or []
        if not isinstance(roles, list) or required not in roles:
            raise _forbidden(f"Role '{required}' required")
        return claims

    return Depends(_check)


RequireCreate = require_role(ROLE_CREATE)
RequireRead = require_role(ROLE_READ)
RequireDelete = require_role(ROLE_DELETE)

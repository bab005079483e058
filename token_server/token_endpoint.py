"""
Token endpoint (POST /oauth2/token). client_credentials grant where the client secret is a
caller-signed GetCallerIdentity request instead of a shared secret.
"""
import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse

from token_server.caller_identity import CallerIdentityVerifier
from token_server.dependencies import (
    get_identity_verifier,
    get_jwt_registry,
    get_store,
    get_token_rate_limiter,
)
from token_server.errors import AuthenticationError, ValidationError
from token_server.jwt_provider import AccessToken, JwtProviderRegistry
from token_server.rate_limit import SlidingWindowLimiter
from token_server.rbac_store import RBACStore
from token_server.signature import CallerIdentitySignature
from token_server.validators import parse_scope

logger = logging.getLogger(__name__)
router = APIRouter()

GRANT_TYPE = "client_credentials"


def _bad_request(description: str, error: str = "invalid_request") -> ValidationError:
    return ValidationError(description, status_code=400, error=error)


class TokenIssuer:
    """
    Runs a token request through: form validate, scope parse, secret decode and validate,
    identity verification, client id match, RBAC lookup, JWT encode. Any failure ends the request.
    """

    def __init__(self, verifier: CallerIdentityVerifier, store: RBACStore, registry: JwtProviderRegistry):
        self._verifier = verifier
        self._store = store
        self._registry = registry

    @staticmethod
    def validate_form(grant_type: str | None, client_id: str | None,
                      client_secret: str | None, scope: str | None) -> None:
        if not grant_type:
            raise _bad_request("grant_type is required.")
        if grant_type != GRANT_TYPE:
            raise _bad_request("Only client_credentials is supported", error="unsupported_grant_type")
        if not client_id:
            raise _bad_request("client_id is required.")
        if not client_secret:
            raise _bad_request("client_secret is required.")
        if not scope:
            raise _bad_request("scope is required.")

    async def issue(self, grant_type: str | None, client_id: str | None,
                    client_secret: str | None, scope: str | None) -> AccessToken:
        self.validate_form(grant_type, client_id, client_secret, scope)

        # Scope is parsed before anything goes over the network
        resource_name, scope_name = parse_scope(scope)

        signature = CallerIdentitySignature.decode(client_secret)
        signature.validate()

        principal_id = await self._verifier.resolve(signature.region, signature.headers)
        if principal_id != client_id:
            logger.info("Client id mismatch: claimed=%s verified=%s", client_id, principal_id)
            raise AuthenticationError("client_id does not match the verified caller identity.")

        access = await self._store.get_principal_access(principal_id, resource_name, scope_name)

        provider = self._registry.get_provider(signature.region)
        token = provider.encode(
            audience=resource_name,
            principal_id=principal_id,
            scopes=access.scope_names,
            roles=access.role_names,
        )
        logger.info(
            "Issued token for %s: audience=%s scopes=%d roles=%d kid=%s",
            principal_id, resource_name, len(access.scope_names), len(access.role_names), provider.kid,
        )
        return token


def get_token_issuer(
    verifier: CallerIdentityVerifier = Depends(get_identity_verifier),
    store: RBACStore = Depends(get_store),
    registry: JwtProviderRegistry = Depends(get_jwt_registry),
) -> TokenIssuer:
    return TokenIssuer(verifier, store, registry)


@router.post("/oauth2/token", response_model=AccessToken)
async def token(
    request: Request,
    grant_type: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    scope: str | None = Form(None),
    issuer: TokenIssuer = Depends(get_token_issuer),
    limiter: SlidingWindowLimiter = Depends(get_token_rate_limiter),
):
    client_ip = request.client.host if request.client else "unknown"
    allowed, retry_after = limiter.check_and_consume(client_ip)
    if not allowed:
        logger.warning("Token rate limit exceeded for %s", client_ip)
        return JSONResponse(
            status_code=429,
            content={"detail": {"error": "slow_down", "error_description": "Too many token requests"}},
            headers={"Retry-After": str(retry_after)},
        )

    access_token = await issuer.issue(grant_type, client_id, client_secret, scope)
    return JSONResponse(
        content=access_token.model_dump(mode="json"),
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )

"""
Well-known endpoints: JWKS and discovery metadata for token consumers.
"""
from fastapi import APIRouter, Depends

from token_server.config import ISSUER
from token_server.dependencies import get_jwt_registry
from token_server.jwt_provider import JwtProviderRegistry

router = APIRouter()


@router.get("/.well-known/jwks.json")
def jwks_json(registry: JwtProviderRegistry = Depends(get_jwt_registry)):
    """Public keys for every signing key, secondary keys included."""
    return registry.key_ring.jwks()


@router.get("/.well-known/openid-configuration")
def openid_configuration():
    return {
        "issuer": ISSUER,
        "token_endpoint": f"{ISSUER}/oauth2/token",
        "jwks_uri": f"{ISSUER}/.well-known/jwks.json",
        "grant_types_supported": ["client_credentials"],
        "token_endpoint_auth_methods_supported": ["client_secret_post"],
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": ["RS256"],
        "response_types_supported": ["token"],
    }

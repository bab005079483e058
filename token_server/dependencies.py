"""
FastAPI dependencies for the long-lived services built in the app lifespan.
Tests swap them with app.dependency_overrides.
"""
from fastapi import Request

from token_server.caller_identity import CallerIdentityVerifier
from token_server.jwt_provider import JwtProviderRegistry
from token_server.rate_limit import SlidingWindowLimiter
from token_server.rbac_store import RBACStore


def get_store(request: Request) -> RBACStore:
    return request.app.state.store


def get_identity_verifier(request: Request) -> CallerIdentityVerifier:
    return request.app.state.identity_verifier


def get_jwt_registry(request: Request) -> JwtProviderRegistry:
    return request.app.state.jwt_registry


def get_token_rate_limiter(request: Request) -> SlidingWindowLimiter:
    return request.app.state.token_rate_limiter

"""
JWT encoding for issued access tokens. A provider per signing key; the registry picks the
provider of the caller's region and falls back to the default key.
"""
from datetime import datetime, timedelta, timezone

import jwt
from pydantic import BaseModel

from token_server.config import ISSUER, TOKEN_EXPIRATION_MINUTES, TOKEN_REFRESH_MARGIN_MINUTES
from token_server.keys import KeyRing, SigningKey


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    expires_on: datetime
    refresh_on: datetime


class JwtProvider:
    def __init__(self, signing_key: SigningKey, issuer: str = ISSUER,
                 expiration_minutes: int = TOKEN_EXPIRATION_MINUTES):
        self._signing_key = signing_key
        self._issuer = issuer
        self._expiration_minutes = max(15, expiration_minutes)
        self._refresh_minutes = self._expiration_minutes - TOKEN_REFRESH_MARGIN_MINUTES

    @property
    def kid(self) -> str:
        return self._signing_key.kid

    def encode(self, audience: str, principal_id: str, scopes: list[str], roles: list[str]) -> AccessToken:
        """Sign an RS256 token for principal_id with audience and the granted scopes and roles."""
        now = datetime.now(timezone.utc).replace(microsecond=0)
        expires_on = now + timedelta(minutes=self._expiration_minutes)
        refresh_on = now + timedelta(minutes=self._refresh_minutes)

        payload = {
            "iss": self._issuer,
            "aud": audience,
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int(expires_on.timestamp()),
            "sub": principal_id,
            "oid": principal_id,
        }
        if scopes:
            payload["scp"] = " ".join(scopes)
        if roles:
            payload["roles"] = list(roles)

        token = jwt.encode(
            payload,
            self._signing_key.private_key,
            algorithm="RS256",
            headers={"kid": self._signing_key.kid, "typ": "JWT"},
        )
        return AccessToken(
            access_token=token,
            expires_in=self._expiration_minutes * 60,
            expires_on=expires_on,
            refresh_on=refresh_on,
        )


class JwtProviderRegistry:
    def __init__(self, key_ring: KeyRing, issuer: str = ISSUER,
                 expiration_minutes: int = TOKEN_EXPIRATION_MINUTES):
        self.key_ring = key_ring
        self._default = JwtProvider(key_ring.default, issuer, expiration_minutes)
        self._regional = {
            region: JwtProvider(key, issuer, expiration_minutes)
            for region, key in key_ring.regional.items()
        }

    def get_provider(self, region: str | None = None) -> JwtProvider:
        if region is None:
            return self._default
        return self._regional.get(region, self._default)

"""
Client for POST /oauth2/token. Signs a GetCallerIdentity request with the boto3 session credentials,
sends the signature as client_secret, and caches tokens per scope until their refresh time.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone

import boto3
import httpx
from botocore.exceptions import BotoCoreError

from token_client.config import AWS_REGION, TOKEN_REQUEST_TIMEOUT_SECONDS, TOKEN_SERVER_URL
from token_client.sigv4 import caller_identity_signature, resolve_credentials

logger = logging.getLogger(__name__)


class TokenRequestError(Exception):
    """Token server refused the request or could not be reached."""

    def __init__(self, status_code: int | None, error: str, description: str = ""):
        super().__init__(f"{error}: {description}" if description else error)
        self.status_code = status_code
        self.error = error
        self.description = description


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass
class StoredToken:
    access_token: str
    token_type: str
    expires_in: int
    expires_on: datetime
    refresh_on: datetime

    @classmethod
    def from_response(cls, body: dict) -> "StoredToken":
        return cls(
            access_token=body["access_token"],
            token_type=body.get("token_type", "Bearer"),
            expires_in=int(body["expires_in"]),
            expires_on=_parse_time(body["expires_on"]),
            refresh_on=_parse_time(body["refresh_on"]),
        )

    def needs_refresh(self, now: datetime | None = None) -> bool:
        """True once the server's refresh hint has passed."""
        now = now or datetime.now(timezone.utc)
        return now >= self.refresh_on

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


class TokenCache:
    """Tokens by scope. A token is served until its refresh time, then dropped."""

    def __init__(self):
        self._tokens: dict[str, StoredToken] = {}
        self._lock = threading.Lock()

    def get(self, scope: str, now: datetime | None = None) -> StoredToken | None:
        with self._lock:
            token = self._tokens.get(scope)
            if token is None:
                return None
            if token.needs_refresh(now):
                del self._tokens[scope]
                return None
            return token

    def put(self, scope: str, token: StoredToken) -> None:
        with self._lock:
            self._tokens[scope] = token

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()


class AccessTokenClient:
    def __init__(
        self,
        session: boto3.Session | None = None,
        region: str = AWS_REGION,
        base_url: str = TOKEN_SERVER_URL,
        http_client: httpx.Client | None = None,
        cache: TokenCache | None = None,
    ):
        self._session = session or boto3.Session()
        self._region = region
        self._base_url = base_url.rstrip("/")
        self._http = http_client or httpx.Client(timeout=TOKEN_REQUEST_TIMEOUT_SECONDS)
        self._cache = cache or TokenCache()

    def get_access_token(self, principal_id: str, scope: str) -> StoredToken:
        """
        Token for scope ("{resource}/{scope}"), from cache when still fresh.
        principal_id is the ARN our credentials resolve to; the server checks they agree.
        """
        cached = self._cache.get(scope)
        if cached is not None:
            return cached

        try:
            client_secret = caller_identity_signature(resolve_credentials(self._session), self._region)
        except BotoCoreError as e:
            logger.warning("Cannot sign caller identity for %s: %s", scope, e)
            raise TokenRequestError(None, "credentials_unavailable", str(e)) from e

        data = {
            "grant_type": "client_credentials",
            "client_id": principal_id,
            "client_secret": client_secret,
            "scope": scope,
        }
        try:
            r = self._http.post(f"{self._base_url}/oauth2/token", data=data)
        except httpx.HTTPError as e:
            logger.warning("Token request for %s failed: %s", scope, e)
            raise TokenRequestError(None, "request_failed", str(e)) from e

        if r.status_code != 200:
            try:
                detail = r.json().get("detail") or {}
            except ValueError:
                detail = {}
            if not isinstance(detail, dict):
                detail = {"error_description": str(detail)}
            raise TokenRequestError(
                r.status_code,
                detail.get("error", "token_request_failed"),
                detail.get("error_description", ""),
            )

        token = StoredToken.from_response(r.json())
        self._cache.put(scope, token)
        logger.info("Acquired token for %s (expires %s)", scope, token.expires_on.isoformat())
        return token

    def close(self) -> None:
        self._http.close()

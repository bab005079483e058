"""
Caller identity verification against the security token service (STS).

The caller signs a GetCallerIdentity request with its own credentials and sends us only
the signed headers. We replay that exact request: same body, headers set to exactly the
caller's headers, nothing signed with our credentials. STS answering with an ARN proves
the caller holds the credentials behind the signature.
"""
import asyncio
import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable

import httpx

from token_server.config import STS_ENDPOINT_TEMPLATE, STS_REGIONS, STS_TIMEOUT_SECONDS
from token_server.errors import AuthenticationError, ServiceUnavailableError, ValidationError

logger = logging.getLogger(__name__)

# Body the caller signed; must match byte for byte or the signature fails
GET_CALLER_IDENTITY_BODY = "Action=GetCallerIdentity&Version=2011-06-15"


def _parse_arn(body: bytes) -> str | None:
    """Extract <Arn> from a GetCallerIdentityResponse, ignoring the XML namespace."""
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    for element in root.iter():
        if element.tag.rsplit("}", 1)[-1] == "Arn" and element.text:
            return element.text.strip()
    return None


class CallerIdentityVerifier:
    """
    Resolves the principal behind a caller-signed GetCallerIdentity request.
    Keeps one HTTP client per allowed region, created on first use.
    """

    def __init__(
        self,
        endpoint_template: str = STS_ENDPOINT_TEMPLATE,
        timeout: float = STS_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        regions: Iterable[str] = STS_REGIONS,
    ):
        self._endpoint_template = endpoint_template
        self._timeout = timeout
        self._transport = transport
        self._regions = frozenset(regions)
        self._clients: dict[str, httpx.AsyncClient] = {}
        self._lock = asyncio.Lock()

    def endpoint_for(self, region: str) -> str:
        return self._endpoint_template.format(region=region)

    async def _get_client(self, region: str) -> httpx.AsyncClient:
        client = self._clients.get(region)
        if client is not None:
            return client
        async with self._lock:
            client = self._clients.get(region)
            if client is None:
                client = httpx.AsyncClient(
                    base_url=self.endpoint_for(region),
                    timeout=self._timeout,
                    transport=self._transport,
                )
                self._clients[region] = client
                logger.info("Created STS client for region %s", region)
            return client

    async def resolve(self, region: str, headers: dict[str, str]) -> str:
        """
        Return the ARN (principal id) of the identity that signed the headers.
        Raises AuthenticationError if STS rejects the signature, ServiceUnavailableError
        if STS cannot be reached or answers unexpectedly.
        """
        if region not in self._regions:
            raise ValidationError("region is not supported.")
        client = await self._get_client(region)
        request = client.build_request("POST", "", content=GET_CALLER_IDENTITY_BODY.encode("ascii"))
        # Replace every header with the caller's; only the body length is ours
        try:
            if any("\r" in text or "\n" in text for item in headers.items() for text in item):
                raise ValueError("line break in header")
            request.headers = httpx.Headers(headers)
        except (UnicodeError, ValueError, TypeError) as e:
            logger.info("Caller headers for %s cannot be sent: %s", region, e)
            raise AuthenticationError("Caller identity could not be verified") from e
        request.headers["Content-Length"] = str(len(GET_CALLER_IDENTITY_BODY))
        try:
            response = await client.send(request)
        except httpx.HTTPError as e:
            logger.warning("STS request in %s failed: %s", region, e)
            raise ServiceUnavailableError("Identity service unavailable") from e

        if 400 <= response.status_code < 500:
            # Signature rejected, expired, skewed or malformed; details stay in the log
            logger.info("STS rejected caller signature in %s: status=%s body=%s",
                        region, response.status_code, response.text[:500])
            raise AuthenticationError("Caller identity could not be verified")
        if response.status_code != 200:
            logger.warning("STS error in %s: status=%s", region, response.status_code)
            raise ServiceUnavailableError("Identity service unavailable")

        arn = _parse_arn(response.content)
        if not arn:
            logger.warning("STS response in %s has no Arn", region)
            raise ServiceUnavailableError("Identity service unavailable")
        return arn

    async def aclose(self) -> None:
        async with self._lock:
            clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.aclose()

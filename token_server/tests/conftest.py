"""
Pytest configuration for token_server. In-memory SQLite and a throwaway signing key,
set before any token_server module reads its configuration.
"""
import os
import tempfile

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["TOKEN_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SIGNING_KEY_PATH"] = os.path.join(tempfile.mkdtemp(prefix="token-server-tests-"), "signing_key.pem")
os.environ["OAUTH_ISSUER"] = "http://testserver"
os.environ["RATE_LIMIT_TOKEN_PER_MINUTE"] = "0"
for name in ("SIGNING_KEY_REGIONAL_PATHS", "SIGNING_KEY_SECONDARY_PATHS", "STS_ENDPOINT_TEMPLATE", "STS_REGIONS"):
    os.environ.pop(name, None)

import httpx
import pytest

from token_server.caller_identity import GET_CALLER_IDENTITY_BODY
from token_server.database import ItemTable, create_db_engine, init_db
from token_server.rbac_store import RBACStore
from token_server.signature import CallerIdentitySignature

REGION = "us-east-1"

STS_RESPONSE = """<GetCallerIdentityResponse xmlns="https://sts.amazonaws.com/doc/2011-06-15/">
  <GetCallerIdentityResult>
    <Arn>{arn}</Arn>
    <UserId>AIDAEXAMPLE</UserId>
    <Account>123456789012</Account>
  </GetCallerIdentityResult>
  <ResponseMetadata><RequestId>00000000-0000-0000-0000-000000000000</RequestId></ResponseMetadata>
</GetCallerIdentityResponse>"""

STS_ERROR = """<ErrorResponse xmlns="https://sts.amazonaws.com/doc/2011-06-15/">
  <Error><Type>Sender</Type><Code>SignatureDoesNotMatch</Code><Message>bad signature</Message></Error>
</ErrorResponse>"""


class FakeSTS:
    """
    Stands in for the STS endpoint. A request whose Authorization header is registered
    resolves to that ARN; anything else is rejected with 403, like a bad signature.
    """

    def __init__(self):
        self.identities: dict[str, str] = {}
        self.requests: list[httpx.Request] = []
        self.status_override: int | None = None

    def register(self, arn: str) -> dict[str, str]:
        authorization = f"AWS4-HMAC-SHA256 Credential=AKID{len(self.identities)}/20260101/{REGION}/sts/aws4_request"
        self.identities[authorization] = arn
        return {
            "Authorization": authorization,
            "X-Amz-Date": "20260101T000000Z",
            "Host": f"sts.{REGION}.amazonaws.com",
            "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_override is not None:
            return httpx.Response(self.status_override, text="unavailable")
        if request.content.decode() != GET_CALLER_IDENTITY_BODY:
            return httpx.Response(400, text=STS_ERROR)
        arn = self.identities.get(request.headers.get("authorization", ""))
        if arn is None:
            return httpx.Response(403, text=STS_ERROR)
        return httpx.Response(200, text=STS_RESPONSE.format(arn=arn))

    def secret_for(self, arn: str, region: str = REGION) -> str:
        """client_secret carrying headers STS will resolve to arn."""
        return CallerIdentitySignature(region=region, headers=self.register(arn)).encode()

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_sts():
    return FakeSTS()


@pytest.fixture
def store():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield RBACStore(ItemTable(engine))
    engine.dispose()


@pytest.fixture
def client(fake_sts):
    """TestClient with the lifespan running and STS answered by fake_sts."""
    from fastapi.testclient import TestClient

    from token_server.caller_identity import CallerIdentityVerifier
    from token_server.dependencies import get_identity_verifier
    from token_server.main import app

    verifier = CallerIdentityVerifier(transport=fake_sts.transport())
    app.dependency_overrides[get_identity_verifier] = lambda: verifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(client):
    """Build Authorization headers for an admin token carrying the given roles."""
    from token_server.config import ADMIN_AUDIENCE

    def _headers(*roles: str, scopes=("rbac",), audience: str = ADMIN_AUDIENCE) -> dict[str, str]:
        provider = client.app.state.jwt_registry.get_provider()
        token = provider.encode(audience, "arn:aws:iam::123456789012:user/admin", list(scopes), list(roles))
        return {"Authorization": f"Bearer {token.access_token}"}

    return _headers

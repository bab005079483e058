"""
Token server configuration. Values come from the environment; no secrets in this file.
Signing keys are referenced by PEM path, never inlined.
"""
import os

# Issuer URL (public identifier, "iss" claim)
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")

# RBAC table; SQLite for development, any SQLAlchemy URL otherwise
DATABASE_URL = os.environ.get("TOKEN_DATABASE_URL", "sqlite:///./token_server.db")

# Access token lifetime in minutes; never shorter than 15
TOKEN_EXPIRATION_MINUTES = max(15, int(os.environ.get("TOKEN_EXPIRATION_MINUTES", "60")))

# Clients are told to refresh this many minutes before expiry
TOKEN_REFRESH_MARGIN_MINUTES = 5

# Default RSA signing key. Generated and saved here if missing.
SIGNING_KEY_PATH = os.environ.get("SIGNING_KEY_PATH", ".token_signing_key.pem")


def _parse_regional_paths(value: str) -> dict[str, str]:
    """Parse 'us-east-1=/keys/use1.pem,eu-west-1=/keys/euw1.pem' into {region: path}."""
    paths: dict[str, str] = {}
    for entry in value.split(","):
        region, sep, path = entry.partition("=")
        if sep and region.strip() and path.strip():
            paths[region.strip()] = path.strip()
    return paths


# Per-region signing keys, so each region can sign with its own key
SIGNING_KEY_REGIONAL_PATHS = _parse_regional_paths(os.environ.get("SIGNING_KEY_REGIONAL_PATHS", ""))

# Retired keys kept in the JWKS so already-issued tokens still verify; never used to sign
SIGNING_KEY_SECONDARY_PATHS = [
    p.strip() for p in os.environ.get("SIGNING_KEY_SECONDARY_PATHS", "").split(",") if p.strip()
]

# Security token service endpoint; {region} is substituted per request
STS_ENDPOINT_TEMPLATE = os.environ.get("STS_ENDPOINT_TEMPLATE", "https://sts.{region}.amazonaws.com/")
STS_TIMEOUT_SECONDS = float(os.environ.get("STS_TIMEOUT_SECONDS", "10"))
# Regions a caller may name in its signature; one STS client is kept per region
_DEFAULT_STS_REGIONS = (
    "us-east-1,us-east-2,us-west-1,us-west-2,ca-central-1,sa-east-1,"
    "eu-west-1,eu-west-2,eu-west-3,eu-central-1,eu-north-1,eu-south-1,"
    "ap-south-1,ap-northeast-1,ap-northeast-2,ap-northeast-3,ap-southeast-1,ap-southeast-2,"
    "ap-east-1,me-south-1,af-south-1"
)
STS_REGIONS = frozenset(
    r.strip() for r in os.environ.get("STS_REGIONS", _DEFAULT_STS_REGIONS).split(",") if r.strip()
)

# Audience of tokens accepted by the RBAC admin API
ADMIN_AUDIENCE = os.environ.get("ADMIN_AUDIENCE", "api://amazon.auth.trelnex.com")

# Rate limiting on POST /oauth2/token: per client IP, per minute. 0 disables.
RATE_LIMIT_TOKEN_PER_MINUTE = int(os.environ.get("RATE_LIMIT_TOKEN_PER_MINUTE", "60"))

"""
Caller identity signature: the decoded client_secret of a token request.

The secret is base64(JSON {"region": ..., "headers": {...}}), where headers are the
SigV4-signed headers of a GetCallerIdentity request the caller built with its own
credentials. The secret holds a signature, never the credentials themselves.
"""
import base64
import binascii
import json
import re
from dataclasses import dataclass, field

from token_server.errors import ValidationError

_REGION_RE = re.compile(r"^[a-z]{2}(-[a-z]+)+-[0-9]+$")

# Headers a signed request cannot do without; checked case-insensitively
REQUIRED_HEADERS = ("authorization", "x-amz-date", "host")


def _is_header_text(text: str) -> bool:
    return text.isascii() and "\r" not in text and "\n" not in text


@dataclass
class CallerIdentitySignature:
    region: str
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def decode(cls, client_secret: str) -> "CallerIdentitySignature":
        """Decode base64 JSON into a signature. Raises ValidationError if the encoding is malformed."""
        try:
            raw = base64.b64decode(client_secret, validate=True)
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError):
            raise ValidationError("client_secret is not valid.")
        if not isinstance(data, dict):
            raise ValidationError("client_secret is not valid.")
        region = data.get("region")
        headers = data.get("headers")
        if not isinstance(region, str) or not isinstance(headers, dict):
            raise ValidationError("client_secret is not valid.")
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in headers.items()):
            raise ValidationError("client_secret is not valid.")
        return cls(region=region, headers=headers)

    def encode(self) -> str:
        """Inverse of decode; deterministic for equal signatures."""
        payload = json.dumps(
            {"region": self.region, "headers": self.headers},
            sort_keys=True,
            separators=(",", ":"),
        )
        return base64.b64encode(payload.encode("utf-8")).decode("ascii")

    def validate(self) -> None:
        """Structural check only; the signature itself is verified by the identity service."""
        if not self.region:
            raise ValidationError("region is required.")
        if not _REGION_RE.fullmatch(self.region):
            raise ValidationError("region is invalid.")
        if not self.headers:
            raise ValidationError("headers is required.")
        if not all(_is_header_text(name) and _is_header_text(value) for name, value in self.headers.items()):
            raise ValidationError("headers is not valid.")
        present = {name.lower() for name, value in self.headers.items() if value}
        missing = [name for name in REQUIRED_HEADERS if name not in present]
        if missing:
            raise ValidationError(f"headers is missing {', '.join(missing)}.")

"""Tests for decoding and validating the client_secret signature."""
import base64
import json

import pytest

from token_server.errors import ValidationError
from token_server.signature import CallerIdentitySignature

HEADERS = {
    "Authorization": "AWS4-HMAC-SHA256 Credential=AKID/20260101/us-east-1/sts/aws4_request, SignedHeaders=host;x-amz-date, Signature=abc",
    "X-Amz-Date": "20260101T000000Z",
    "Host": "sts.us-east-1.amazonaws.com",
}


def _b64(obj) -> str:
    return base64.b64encode(json.dumps(obj).encode()).decode()


def test_decode_encoded_signature():
    sig = CallerIdentitySignature(region="us-east-1", headers=HEADERS)
    decoded = CallerIdentitySignature.decode(sig.encode())
    assert decoded == sig
    decoded.validate()


def test_encode_is_deterministic():
    a = CallerIdentitySignature(region="eu-west-1", headers={"b": "2", "a": "1"})
    b = CallerIdentitySignature(region="eu-west-1", headers={"a": "1", "b": "2"})
    assert a.encode() == b.encode()


@pytest.mark.parametrize(
    "secret",
    [
        "not base64!",
        base64.b64encode(b"\xff\xfe").decode(),
        base64.b64encode(b"not json").decode(),
        _b64(["region", "headers"]),
        _b64({"region": "us-east-1"}),
        _b64({"region": 1, "headers": {}}),
        _b64({"region": "us-east-1", "headers": {"Host": 5}}),
    ],
)
def test_decode_rejects_malformed_secret(secret):
    with pytest.raises(ValidationError) as exc:
        CallerIdentitySignature.decode(secret)
    assert exc.value.status_code == 422
    assert "client_secret" in exc.value.description


def test_validate_requires_region():
    with pytest.raises(ValidationError, match="region"):
        CallerIdentitySignature(region="", headers=HEADERS).validate()
    with pytest.raises(ValidationError, match="region"):
        CallerIdentitySignature(region="moon", headers=HEADERS).validate()


def test_validate_requires_headers():
    with pytest.raises(ValidationError, match="headers"):
        CallerIdentitySignature(region="us-east-1", headers={}).validate()


def test_validate_names_missing_header():
    headers = {k: v for k, v in HEADERS.items() if k != "X-Amz-Date"}
    with pytest.raises(ValidationError, match="x-amz-date"):
        CallerIdentitySignature(region="us-east-1", headers=headers).validate()


def test_validate_header_names_case_insensitive():
    headers = {k.lower(): v for k, v in HEADERS.items()}
    CallerIdentitySignature(region="us-gov-west-1", headers=headers).validate()


@pytest.mark.parametrize(
    "headers",
    [
        {**HEADERS, "Authorization": "AWS4-HMAC-SHA256 Credential=é"},
        {**HEADERS, "X-Amz-Date": "20260101T000000Z\r\nX-Injected: 1"},
        {**HEADERS, "X-é": "1"},
    ],
)
def test_validate_rejects_headers_that_cannot_be_sent(headers):
    with pytest.raises(ValidationError, match="headers is not valid") as exc:
        CallerIdentitySignature(region="us-east-1", headers=headers).validate()
    assert exc.value.status_code == 422


def test_validate_rejects_region_with_trailing_newline():
    with pytest.raises(ValidationError, match="region is invalid"):
        CallerIdentitySignature(region="us-east-1\n", headers=HEADERS).validate()

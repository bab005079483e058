"""
SigV4 signing of the STS GetCallerIdentity request with botocore. The signed headers become the
client_secret of a token request; the credentials themselves never leave this process.
"""
import base64
import json

import boto3
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import ReadOnlyCredentials
from botocore.exceptions import NoCredentialsError

SERVICE = "sts"
CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"
GET_CALLER_IDENTITY_BODY = "Action=GetCallerIdentity&Version=2011-06-15"


def resolve_credentials(session: boto3.Session | None = None) -> ReadOnlyCredentials:
    """
    Credentials from the default provider chain (environment, shared config, instance role),
    frozen so a refresh cannot change them halfway through a signature.
    """
    credentials = (session or boto3.Session()).get_credentials()
    if credentials is None:
        raise NoCredentialsError()
    return credentials.get_frozen_credentials()


def sign_get_caller_identity(credentials: ReadOnlyCredentials, region: str) -> dict[str, str]:
    """Headers of a signed POST https://sts.{region}.amazonaws.com/ GetCallerIdentity request."""
    host = f"sts.{region}.amazonaws.com"
    request = AWSRequest(
        method="POST",
        url=f"https://{host}/",
        data=GET_CALLER_IDENTITY_BODY.encode("ascii"),
        headers={"Content-Type": CONTENT_TYPE, "Host": host},
    )
    SigV4Auth(credentials, SERVICE, region).add_auth(request)
    return dict(request.headers.items())


def caller_identity_signature(credentials: ReadOnlyCredentials, region: str) -> str:
    """The client_secret for a token request: base64 of {"region", "headers"} as compact JSON."""
    payload = json.dumps(
        {"region": region, "headers": sign_get_caller_identity(credentials, region)},
        sort_keys=True,
        separators=(",", ":"),
    )
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")

"""
Name validators for RBAC keys and the token request scope.
Each validator returns the normalized name or raises ValidationError naming the field.
"""
import re

from token_server.errors import ValidationError

_RESOURCE_NAME = r"(?P<resource_name>(?:api|http|urn)://[a-z0-9./-]*[a-z0-9]+)"
_ROLE_NAME = r"(?P<role_name>[a-z0-9.-]+)"
_SCOPE_NAME = r"(?P<scope_name>[a-z0-9.-]+)"

_RESOURCE_NAME_RE = re.compile(rf"^{_RESOURCE_NAME}$")
_ROLE_NAME_RE = re.compile(rf"^{_ROLE_NAME}$")
_SCOPE_NAME_RE = re.compile(rf"^{_SCOPE_NAME}$")
# "{resource}/{scope}"; scope names cannot hold "/" so the last "/" is the separator
_SCOPE_RE = re.compile(rf"^{_RESOURCE_NAME}/{_SCOPE_NAME}$")

# Requests every scope the principal holds on the resource
DEFAULT_SCOPE = ".default"


def _match(pattern: re.Pattern, value: str | None, group: str, field: str) -> str:
    match = pattern.match(value) if isinstance(value, str) else None
    if match is None or not match.group(group):
        raise ValidationError(f"{field} is not valid.")
    return match.group(group)


def validate_resource_name(resource_name: str | None) -> str:
    return _match(_RESOURCE_NAME_RE, resource_name, "resource_name", "resourceName")


def validate_role_name(role_name: str | None) -> str:
    return _match(_ROLE_NAME_RE, role_name, "role_name", "roleName")


def validate_scope_name(scope_name: str | None) -> str:
    return _match(_SCOPE_NAME_RE, scope_name, "scope_name", "scopeName")


def is_default_scope(scope_name: str | None) -> bool:
    return scope_name == DEFAULT_SCOPE


def parse_scope(scope: str | None) -> tuple[str, str]:
    """Split a token request scope "{resourceName}/{scopeName}" into its validated parts."""
    match = _SCOPE_RE.match(scope) if isinstance(scope, str) else None
    if match is None:
        raise ValidationError("scope is not valid.", error="invalid_scope")
    return match.group("resource_name"), match.group("scope_name")


def validate_principal_id(principal_id: str | None) -> str:
    """Principal ids are opaque (ARNs); only require a non-blank value without key separators."""
    if not isinstance(principal_id, str) or not principal_id.strip() or "#" in principal_id:
        raise ValidationError("principalId is not valid.")
    return principal_id

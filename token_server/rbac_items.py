"""
Item kinds stored in the RBAC table and their key formats.

Every item is addressed by (entity_name, subject_name). Assignments are stored twice,
once under the principal and once under the resource, so both lookup directions are a
single-partition prefix query:

    RESOURCE#                     RESOURCE#{resource}                                 resource
    RESOURCE#{resource}           SCOPE#{scope}                                       scope
    RESOURCE#{resource}           ROLE#{role}                                         role
    RESOURCE#{resource}           ROLEASSIGNMENT##ROLE#{role}##PRINCIPAL#{principal}  by role
    RESOURCE#{resource}           SCOPEASSIGNMENT##SCOPE#{scope}##PRINCIPAL#{p}       by scope
    PRINCIPAL#{principal}         ROLEASSIGNMENT##RESOURCE#{resource}##ROLE#{role}    by principal
    PRINCIPAL#{principal}         SCOPEASSIGNMENT##RESOURCE#{resource}##SCOPE#{s}     by principal
"""
from dataclasses import dataclass
from typing import ClassVar

PRINCIPAL_MARKER = "PRINCIPAL#"
RESOURCE_MARKER = "RESOURCE#"
ROLE_MARKER = "ROLE#"
SCOPE_MARKER = "SCOPE#"
ROLE_ASSIGNMENT_MARKER = "ROLEASSIGNMENT##"
SCOPE_ASSIGNMENT_MARKER = "SCOPEASSIGNMENT##"


def format_principal(principal_id: str) -> str:
    return f"{PRINCIPAL_MARKER}{principal_id}"


def format_resource(resource_name: str) -> str:
    return f"{RESOURCE_MARKER}{resource_name}"


def format_role(role_name: str) -> str:
    return f"{ROLE_MARKER}{role_name}"


def format_scope(scope_name: str) -> str:
    return f"{SCOPE_MARKER}{scope_name}"


def role_assignment_by_role(role_name: str, principal_id: str = "") -> str:
    """Sort key of a by-role record; with no principal it is the prefix of all holders of the role."""
    return f"{ROLE_ASSIGNMENT_MARKER}{format_role(role_name)}##{format_principal(principal_id)}"


def role_assignment_by_principal(resource_name: str, role_name: str = "") -> str:
    """Sort key of a by-principal record; with no role it is the prefix of the principal's roles on the resource."""
    return f"{ROLE_ASSIGNMENT_MARKER}{format_resource(resource_name)}##{format_role(role_name)}"


def scope_assignment_by_scope(scope_name: str, principal_id: str = "") -> str:
    return f"{SCOPE_ASSIGNMENT_MARKER}{format_scope(scope_name)}##{format_principal(principal_id)}"


def scope_assignment_by_principal(resource_name: str, scope_name: str = "") -> str:
    return f"{SCOPE_ASSIGNMENT_MARKER}{format_resource(resource_name)}##{format_scope(scope_name)}"


@dataclass(frozen=True)
class ResourceItem:
    resource_name: str

    FIELDS: ClassVar[tuple[str, ...]] = ("resource_name",)

    @property
    def entity_name(self) -> str:
        return RESOURCE_MARKER

    @property
    def subject_name(self) -> str:
        return format_resource(self.resource_name)


@dataclass(frozen=True)
class ScopeItem:
    resource_name: str
    scope_name: str

    FIELDS: ClassVar[tuple[str, ...]] = ("resource_name", "scope_name")

    @property
    def entity_name(self) -> str:
        return format_resource(self.resource_name)

    @property
    def subject_name(self) -> str:
        return format_scope(self.scope_name)


@dataclass(frozen=True)
class RoleItem:
    resource_name: str
    role_name: str

    FIELDS: ClassVar[tuple[str, ...]] = ("resource_name", "role_name")

    @property
    def entity_name(self) -> str:
        return format_resource(self.resource_name)

    @property
    def subject_name(self) -> str:
        return format_role(self.role_name)


@dataclass(frozen=True)
class RoleByPrincipalItem:
    principal_id: str
    resource_name: str
    role_name: str

    FIELDS: ClassVar[tuple[str, ...]] = ("principal_id", "resource_name", "role_name")

    @property
    def entity_name(self) -> str:
        return format_principal(self.principal_id)

    @property
    def subject_name(self) -> str:
        return role_assignment_by_principal(self.resource_name, self.role_name)

    def mirror(self) -> "RoleByRoleItem":
        return RoleByRoleItem(self.resource_name, self.role_name, self.principal_id)


@dataclass(frozen=True)
class RoleByRoleItem:
    resource_name: str
    role_name: str
    principal_id: str

    FIELDS: ClassVar[tuple[str, ...]] = ("resource_name", "role_name", "principal_id")

    @property
    def entity_name(self) -> str:
        return format_resource(self.resource_name)

    @property
    def subject_name(self) -> str:
        return role_assignment_by_role(self.role_name, self.principal_id)

    def mirror(self) -> RoleByPrincipalItem:
        return RoleByPrincipalItem(self.principal_id, self.resource_name, self.role_name)


@dataclass(frozen=True)
class ScopeByPrincipalItem:
    principal_id: str
    resource_name: str
    scope_name: str

    FIELDS: ClassVar[tuple[str, ...]] = ("principal_id", "resource_name", "scope_name")

    @property
    def entity_name(self) -> str:
        return format_principal(self.principal_id)

    @property
    def subject_name(self) -> str:
        return scope_assignment_by_principal(self.resource_name, self.scope_name)

    def mirror(self) -> "ScopeByScopeItem":
        return ScopeByScopeItem(self.resource_name, self.scope_name, self.principal_id)


@dataclass(frozen=True)
class ScopeByScopeItem:
    resource_name: str
    scope_name: str
    principal_id: str

    FIELDS: ClassVar[tuple[str, ...]] = ("resource_name", "scope_name", "principal_id")

    @property
    def entity_name(self) -> str:
        return format_resource(self.resource_name)

    @property
    def subject_name(self) -> str:
        return scope_assignment_by_scope(self.scope_name, self.principal_id)

    def mirror(self) -> ScopeByPrincipalItem:
        return ScopeByPrincipalItem(self.principal_id, self.resource_name, self.scope_name)


Item = (
    ResourceItem
    | ScopeItem
    | RoleItem
    | RoleByPrincipalItem
    | RoleByRoleItem
    | ScopeByPrincipalItem
    | ScopeByScopeItem
)


def key_of(item: Item) -> tuple[str, str]:
    return item.entity_name, item.subject_name


def to_attributes(item: Item) -> dict[str, str]:
    """Serialize an item to the generic table attributes (keys included)."""
    attributes = {"entity_name": item.entity_name, "subject_name": item.subject_name}
    for name in item.FIELDS:
        attributes[name] = getattr(item, name)
    return attributes


def from_attributes(kind: type, attributes: dict[str, str]):
    """Rebuild an item of the given kind, or None if an attribute it needs is missing."""
    try:
        return kind(**{name: attributes[name] for name in kind.FIELDS})
    except KeyError:
        return None

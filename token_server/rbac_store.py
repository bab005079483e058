"""
RBAC store: resources, scopes, roles and their principal assignments over the key-value table.

Assignments are mirrored (by principal and by role/scope). Both records are written in one
batch and deleted in one batch, but the store does not promise cross-partition atomicity:
a failed batch can leave one side behind. Re-running the create or delete repairs it, since
every write is an upsert and every delete ignores missing keys.

Cascading deletes query the index whose partition matches the deleted thing, derive the
mirrored records from the results, and delete the union. A cascade that fails partway is
not rolled back; callers re-run it.
"""
import asyncio
import logging
from dataclasses import dataclass, field

from token_server.database import ItemTable
from token_server.errors import NotFoundError
from token_server.rbac_items import (
    RESOURCE_MARKER,
    ROLE_ASSIGNMENT_MARKER,
    ROLE_MARKER,
    SCOPE_ASSIGNMENT_MARKER,
    SCOPE_MARKER,
    ResourceItem,
    RoleByPrincipalItem,
    RoleByRoleItem,
    RoleItem,
    ScopeByPrincipalItem,
    ScopeByScopeItem,
    ScopeItem,
    format_principal,
    format_resource,
    from_attributes,
    key_of,
    role_assignment_by_principal,
    role_assignment_by_role,
    scope_assignment_by_principal,
    scope_assignment_by_scope,
    to_attributes,
)
from token_server.validators import (
    is_default_scope,
    validate_principal_id,
    validate_resource_name,
    validate_role_name,
    validate_scope_name,
)

logger = logging.getLogger(__name__)


@dataclass
class Resource:
    resource_name: str
    scope_names: list[str] = field(default_factory=list)
    role_names: list[str] = field(default_factory=list)


@dataclass
class Scope:
    resource_name: str
    scope_name: str


@dataclass
class Role:
    resource_name: str
    role_name: str


@dataclass
class RoleAssignment:
    resource_name: str
    role_name: str
    principal_ids: list[str] = field(default_factory=list)


@dataclass
class ScopeAssignment:
    resource_name: str
    scope_name: str
    principal_ids: list[str] = field(default_factory=list)


@dataclass
class PrincipalAccess:
    principal_id: str
    resource_name: str
    scope_names: list[str] = field(default_factory=list)
    role_names: list[str] = field(default_factory=list)


class RBACStore:
    """Authorization data store. All operations are coroutines; cancel the awaiting task to abort."""

    def __init__(self, table: ItemTable):
        self._table = table

    # -- table helpers --------------------------------------------------------

    async def _exists(self, item) -> bool:
        return await self._table.get(*key_of(item)) is not None

    async def _put(self, *items) -> None:
        await self._table.put(to_attributes(item) for item in items)

    async def _delete(self, items) -> None:
        await self._table.delete(key_of(item) for item in items)

    async def _query(self, kind: type, entity_name: str, subject_prefix: str) -> list:
        rows = await self._table.query(entity_name, subject_prefix)
        items = (from_attributes(kind, row) for row in rows)
        return [item for item in items if item is not None]

    async def _delete_mirrored(self, items: list) -> int:
        """Delete the queried assignment records together with their mirrors."""
        if not items:
            return 0
        await self._delete([*items, *(item.mirror() for item in items)])
        return len(items)

    async def _require_resource(self, resource_name: str) -> None:
        if not await self._exists(ResourceItem(resource_name)):
            raise NotFoundError(f"Resource '{resource_name}' not found.")

    async def _require_scope(self, resource_name: str, scope_name: str) -> None:
        if not await self._exists(ScopeItem(resource_name, scope_name)):
            raise NotFoundError(f"Scope '{scope_name}' not found.")

    async def _require_role(self, resource_name: str, role_name: str) -> None:
        if not await self._exists(RoleItem(resource_name, role_name)):
            raise NotFoundError(f"Role '{role_name}' not found.")

    # -- resources ------------------------------------------------------------

    async def create_resource(self, resource_name: str) -> None:
        resource_name = validate_resource_name(resource_name)
        await self._put(ResourceItem(resource_name))

    async def delete_resource(self, resource_name: str) -> None:
        resource_name = validate_resource_name(resource_name)
        # The resource record goes first so no new scopes or roles can be created under it
        await self._delete([ResourceItem(resource_name)])
        await asyncio.gather(
            self._delete_scopes(resource_name),
            self._delete_roles(resource_name),
        )

    async def get_resource(self, resource_name: str) -> Resource | None:
        resource_name = validate_resource_name(resource_name)
        exists, scope_names, role_names = await asyncio.gather(
            self._exists(ResourceItem(resource_name)),
            self._get_scope_names(resource_name),
            self._get_role_names(resource_name),
        )
        if not exists:
            return None
        return Resource(resource_name=resource_name, scope_names=scope_names, role_names=role_names)

    async def get_resources(self) -> list[str]:
        items = await self._query(ResourceItem, RESOURCE_MARKER, RESOURCE_MARKER)
        return sorted(item.resource_name for item in items)

    # -- scopes ---------------------------------------------------------------

    async def create_scope(self, resource_name: str, scope_name: str) -> None:
        resource_name = validate_resource_name(resource_name)
        scope_name = validate_scope_name(scope_name)
        await self._require_resource(resource_name)
        await self._put(ScopeItem(resource_name, scope_name))

    async def delete_scope(self, resource_name: str, scope_name: str) -> None:
        resource_name = validate_resource_name(resource_name)
        scope_name = validate_scope_name(scope_name)
        await self._delete([ScopeItem(resource_name, scope_name)])
        await self._delete_scope_assignments_by_scope(resource_name, scope_name)

    async def get_scope(self, resource_name: str, scope_name: str) -> Scope | None:
        resource_name = validate_resource_name(resource_name)
        scope_name = validate_scope_name(scope_name)
        if not await self._exists(ScopeItem(resource_name, scope_name)):
            return None
        return Scope(resource_name=resource_name, scope_name=scope_name)

    async def _get_scope_names(self, resource_name: str) -> list[str]:
        items = await self._query(ScopeItem, format_resource(resource_name), SCOPE_MARKER)
        return sorted(item.scope_name for item in items)

    async def _delete_scopes(self, resource_name: str) -> None:
        items = await self._query(ScopeItem, format_resource(resource_name), SCOPE_MARKER)
        await self._delete(items)
        await self._delete_scope_assignments_by_resource(resource_name)
        logger.info("Deleted %d scopes of %s", len(items), resource_name)

    # -- roles ----------------------------------------------------------------

    async def create_role(self, resource_name: str, role_name: str) -> None:
        resource_name = validate_resource_name(resource_name)
        role_name = validate_role_name(role_name)
        await self._require_resource(resource_name)
        await self._put(RoleItem(resource_name, role_name))

    async def delete_role(self, resource_name: str, role_name: str) -> None:
        resource_name = validate_resource_name(resource_name)
        role_name = validate_role_name(role_name)
        await self._delete([RoleItem(resource_name, role_name)])
        await self._delete_role_assignments_by_role(resource_name, role_name)

    async def get_role(self, resource_name: str, role_name: str) -> Role | None:
        resource_name = validate_resource_name(resource_name)
        role_name = validate_role_name(role_name)
        if not await self._exists(RoleItem(resource_name, role_name)):
            return None
        return Role(resource_name=resource_name, role_name=role_name)

    async def _get_role_names(self, resource_name: str) -> list[str]:
        items = await self._query(RoleItem, format_resource(resource_name), ROLE_MARKER)
        return sorted(item.role_name for item in items)

    async def _delete_roles(self, resource_name: str) -> None:
        items = await self._query(RoleItem, format_resource(resource_name), ROLE_MARKER)
        await self._delete(items)
        await self._delete_role_assignments_by_resource(resource_name)
        logger.info("Deleted %d roles of %s", len(items), resource_name)

    # -- role assignments -----------------------------------------------------

    async def create_role_assignment(self, resource_name: str, role_name: str, principal_id: str) -> None:
        resource_name = validate_resource_name(resource_name)
        role_name = validate_role_name(role_name)
        principal_id = validate_principal_id(principal_id)
        await self._require_resource(resource_name)
        await self._require_role(resource_name, role_name)
        by_principal = RoleByPrincipalItem(principal_id, resource_name, role_name)
        await self._put(by_principal, by_principal.mirror())

    async def delete_role_assignment(self, resource_name: str, role_name: str, principal_id: str) -> None:
        resource_name = validate_resource_name(resource_name)
        role_name = validate_role_name(role_name)
        principal_id = validate_principal_id(principal_id)
        by_principal = RoleByPrincipalItem(principal_id, resource_name, role_name)
        await self._delete([by_principal, by_principal.mirror()])

    async def get_principals_for_role(self, resource_name: str, role_name: str) -> list[str]:
        resource_name = validate_resource_name(resource_name)
        role_name = validate_role_name(role_name)
        items = await self._query(
            RoleByRoleItem, format_resource(resource_name), role_assignment_by_role(role_name)
        )
        return sorted(item.principal_id for item in items)

    async def get_roles_for_principal(self, principal_id: str, resource_name: str) -> list[str]:
        principal_id = validate_principal_id(principal_id)
        resource_name = validate_resource_name(resource_name)
        items = await self._query(
            RoleByPrincipalItem, format_principal(principal_id), role_assignment_by_principal(resource_name)
        )
        return sorted(item.role_name for item in items)

    async def get_role_assignment(self, resource_name: str, role_name: str) -> RoleAssignment:
        """Holders of a role; the resource and role must exist."""
        resource_name = validate_resource_name(resource_name)
        role_name = validate_role_name(role_name)
        await self._require_resource(resource_name)
        await self._require_role(resource_name, role_name)
        principal_ids = await self.get_principals_for_role(resource_name, role_name)
        return RoleAssignment(resource_name=resource_name, role_name=role_name, principal_ids=principal_ids)

    async def _delete_role_assignments_by_role(self, resource_name: str, role_name: str) -> None:
        items = await self._query(
            RoleByRoleItem, format_resource(resource_name), role_assignment_by_role(role_name)
        )
        await self._delete_mirrored(items)

    async def _delete_role_assignments_by_resource(self, resource_name: str) -> None:
        items = await self._query(RoleByRoleItem, format_resource(resource_name), ROLE_ASSIGNMENT_MARKER)
        await self._delete_mirrored(items)

    async def _delete_role_assignments_by_principal(self, principal_id: str) -> int:
        items = await self._query(RoleByPrincipalItem, format_principal(principal_id), ROLE_ASSIGNMENT_MARKER)
        return await self._delete_mirrored(items)

    # -- scope assignments ----------------------------------------------------

    async def create_scope_assignment(self, resource_name: str, scope_name: str, principal_id: str) -> None:
        resource_name = validate_resource_name(resource_name)
        scope_name = validate_scope_name(scope_name)
        principal_id = validate_principal_id(principal_id)
        await self._require_resource(resource_name)
        await self._require_scope(resource_name, scope_name)
        by_principal = ScopeByPrincipalItem(principal_id, resource_name, scope_name)
        await self._put(by_principal, by_principal.mirror())

    async def delete_scope_assignment(self, resource_name: str, scope_name: str, principal_id: str) -> None:
        resource_name = validate_resource_name(resource_name)
        scope_name = validate_scope_name(scope_name)
        principal_id = validate_principal_id(principal_id)
        by_principal = ScopeByPrincipalItem(principal_id, resource_name, scope_name)
        await self._delete([by_principal, by_principal.mirror()])

    async def get_principals_for_scope(self, resource_name: str, scope_name: str) -> list[str]:
        resource_name = validate_resource_name(resource_name)
        scope_name = validate_scope_name(scope_name)
        items = await self._query(
            ScopeByScopeItem, format_resource(resource_name), scope_assignment_by_scope(scope_name)
        )
        return sorted(item.principal_id for item in items)

    async def get_scopes_for_principal(self, principal_id: str, resource_name: str) -> list[str]:
        principal_id = validate_principal_id(principal_id)
        resource_name = validate_resource_name(resource_name)
        items = await self._query(
            ScopeByPrincipalItem, format_principal(principal_id), scope_assignment_by_principal(resource_name)
        )
        return sorted(item.scope_name for item in items)

    async def get_scope_assignment(self, resource_name: str, scope_name: str) -> ScopeAssignment:
        resource_name = validate_resource_name(resource_name)
        scope_name = validate_scope_name(scope_name)
        await self._require_resource(resource_name)
        await self._require_scope(resource_name, scope_name)
        principal_ids = await self.get_principals_for_scope(resource_name, scope_name)
        return ScopeAssignment(resource_name=resource_name, scope_name=scope_name, principal_ids=principal_ids)

    async def _delete_scope_assignments_by_scope(self, resource_name: str, scope_name: str) -> None:
        items = await self._query(
            ScopeByScopeItem, format_resource(resource_name), scope_assignment_by_scope(scope_name)
        )
        await self._delete_mirrored(items)

    async def _delete_scope_assignments_by_resource(self, resource_name: str) -> None:
        items = await self._query(ScopeByScopeItem, format_resource(resource_name), SCOPE_ASSIGNMENT_MARKER)
        await self._delete_mirrored(items)

    async def _delete_scope_assignments_by_principal(self, principal_id: str) -> int:
        items = await self._query(ScopeByPrincipalItem, format_principal(principal_id), SCOPE_ASSIGNMENT_MARKER)
        return await self._delete_mirrored(items)

    # -- principals -----------------------------------------------------------

    async def get_principal_access(
        self,
        principal_id: str,
        resource_name: str,
        scope_name: str | None = None,
    ) -> PrincipalAccess:
        """
        Scopes and roles the principal holds on the resource. With a scope name other than
        ".default", scope names are narrowed to that scope, which must exist.
        """
        principal_id = validate_principal_id(principal_id)
        resource_name = validate_resource_name(resource_name)
        if scope_name is not None:
            scope_name = validate_scope_name(scope_name)
        await self._require_resource(resource_name)
        narrow = scope_name is not None and not is_default_scope(scope_name)
        if narrow:
            await self._require_scope(resource_name, scope_name)

        scope_names, role_names = await asyncio.gather(
            self.get_scopes_for_principal(principal_id, resource_name),
            self.get_roles_for_principal(principal_id, resource_name),
        )
        if narrow:
            scope_names = [s for s in scope_names if s == scope_name]
        return PrincipalAccess(
            principal_id=principal_id,
            resource_name=resource_name,
            scope_names=scope_names,
            role_names=role_names,
        )

    async def delete_principal(self, principal_id: str) -> None:
        principal_id = validate_principal_id(principal_id)
        scopes, roles = await asyncio.gather(
            self._delete_scope_assignments_by_principal(principal_id),
            self._delete_role_assignments_by_principal(principal_id),
        )
        logger.info("Deleted principal %s: %d scope and %d role assignments", principal_id, scopes, roles)

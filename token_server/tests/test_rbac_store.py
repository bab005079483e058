"""
Tests for the RBAC store: creation rules, mirrored assignments, cascading and idempotent
deletes, principal access.
"""
import pytest

from token_server.errors import NotFoundError, ValidationError
from token_server.rbac_items import (
    RoleByPrincipalItem,
    RoleByRoleItem,
    ScopeByPrincipalItem,
    ScopeByScopeItem,
    key_of,
)

RESOURCE = "api://x"
ALICE = "arn:aws:iam::123456789012:user/alice"
BOB = "arn:aws:iam::123456789012:user/bob"


async def _seed(store):
    await store.create_resource(RESOURCE)
    await store.create_scope(RESOURCE, "rbac")
    await store.create_scope(RESOURCE, "other")
    await store.create_role(RESOURCE, "rbac.read")
    await store.create_role(RESOURCE, "rbac.create")


@pytest.mark.asyncio
async def test_resource_lifecycle(store):
    assert await store.get_resource(RESOURCE) is None
    await _seed(store)
    resource = await store.get_resource(RESOURCE)
    assert resource.resource_name == RESOURCE
    assert resource.scope_names == ["other", "rbac"]
    assert resource.role_names == ["rbac.create", "rbac.read"]
    assert await store.get_resources() == [RESOURCE]


@pytest.mark.asyncio
async def test_create_is_idempotent(store):
    await store.create_resource(RESOURCE)
    await store.create_resource(RESOURCE)
    await store.create_scope(RESOURCE, "rbac")
    await store.create_scope(RESOURCE, "rbac")
    resource = await store.get_resource(RESOURCE)
    assert resource.scope_names == ["rbac"]


@pytest.mark.asyncio
async def test_children_require_resource(store):
    with pytest.raises(NotFoundError):
        await store.create_scope(RESOURCE, "rbac")
    with pytest.raises(NotFoundError):
        await store.create_role(RESOURCE, "rbac.read")


@pytest.mark.asyncio
async def test_assignments_require_existing_role_and_scope(store):
    await store.create_resource(RESOURCE)
    with pytest.raises(NotFoundError):
        await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)
    with pytest.raises(NotFoundError):
        await store.create_scope_assignment(RESOURCE, "rbac", ALICE)


@pytest.mark.asyncio
async def test_invalid_names_are_rejected(store):
    with pytest.raises(ValidationError):
        await store.create_resource("not-a-resource")
    with pytest.raises(ValidationError):
        await store.get_scope(RESOURCE, "Bad Scope")
    with pytest.raises(ValidationError):
        await store.create_role_assignment(RESOURCE, "rbac.read", "")


@pytest.mark.asyncio
async def test_role_assignment_is_visible_from_both_sides(store):
    await _seed(store)
    await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)
    await store.create_role_assignment(RESOURCE, "rbac.read", BOB)
    await store.create_role_assignment(RESOURCE, "rbac.create", ALICE)

    assert await store.get_principals_for_role(RESOURCE, "rbac.read") == [ALICE, BOB]
    assert await store.get_principals_for_role(RESOURCE, "rbac.create") == [ALICE]
    assert await store.get_roles_for_principal(ALICE, RESOURCE) == ["rbac.create", "rbac.read"]
    assert await store.get_roles_for_principal(BOB, RESOURCE) == ["rbac.read"]

    assignment = await store.get_role_assignment(RESOURCE, "rbac.read")
    assert assignment.principal_ids == [ALICE, BOB]


@pytest.mark.asyncio
async def test_role_assignment_writes_both_records(store):
    await _seed(store)
    await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)
    table = store._table
    by_principal = RoleByPrincipalItem(ALICE, RESOURCE, "rbac.read")
    assert await table.get(*key_of(by_principal)) is not None
    assert await table.get(*key_of(RoleByRoleItem(RESOURCE, "rbac.read", ALICE))) is not None

    await store.delete_role_assignment(RESOURCE, "rbac.read", ALICE)
    assert await table.get(*key_of(by_principal)) is None
    assert await table.get(*key_of(by_principal.mirror())) is None


@pytest.mark.asyncio
async def test_scope_assignment_is_visible_from_both_sides(store):
    await _seed(store)
    await store.create_scope_assignment(RESOURCE, "rbac", ALICE)
    assert await store.get_principals_for_scope(RESOURCE, "rbac") == [ALICE]
    assert await store.get_scopes_for_principal(ALICE, RESOURCE) == ["rbac"]
    assignment = await store.get_scope_assignment(RESOURCE, "rbac")
    assert assignment.principal_ids == [ALICE]

    await store.delete_scope_assignment(RESOURCE, "rbac", ALICE)
    assert await store.get_principals_for_scope(RESOURCE, "rbac") == []
    assert await store.get_scopes_for_principal(ALICE, RESOURCE) == []


@pytest.mark.asyncio
async def test_similar_names_do_not_collide(store):
    await _seed(store)
    await store.create_resource("api://xy")
    await store.create_role("api://xy", "rbac.read")
    await store.create_role(RESOURCE, "rbac")
    await store.create_role_assignment("api://xy", "rbac.read", ALICE)
    await store.create_role_assignment(RESOURCE, "rbac.read", BOB)

    assert await store.get_roles_for_principal(ALICE, RESOURCE) == []
    assert await store.get_principals_for_role(RESOURCE, "rbac") == []
    # Assignment records never show up as roles or scopes
    resource = await store.get_resource(RESOURCE)
    assert resource.role_names == ["rbac", "rbac.create", "rbac.read"]


@pytest.mark.asyncio
async def test_delete_role_cascades_to_assignments(store):
    await _seed(store)
    await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)
    await store.delete_role(RESOURCE, "rbac.read")
    assert await store.get_role(RESOURCE, "rbac.read") is None
    assert await store.get_roles_for_principal(ALICE, RESOURCE) == []
    assert await store._table.get(*key_of(RoleByPrincipalItem(ALICE, RESOURCE, "rbac.read"))) is None


@pytest.mark.asyncio
async def test_delete_scope_cascades_to_assignments(store):
    await _seed(store)
    await store.create_scope_assignment(RESOURCE, "rbac", ALICE)
    await store.create_scope_assignment(RESOURCE, "other", ALICE)
    await store.delete_scope(RESOURCE, "rbac")
    assert await store.get_scope(RESOURCE, "rbac") is None
    assert await store.get_scopes_for_principal(ALICE, RESOURCE) == ["other"]
    assert await store._table.get(*key_of(ScopeByPrincipalItem(ALICE, RESOURCE, "rbac"))) is None


@pytest.mark.asyncio
async def test_delete_resource_cascades_everywhere(store):
    await _seed(store)
    await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)
    await store.create_scope_assignment(RESOURCE, "rbac", ALICE)

    await store.delete_resource(RESOURCE)

    assert await store.get_resource(RESOURCE) is None
    assert await store.get_resources() == []
    assert await store._table.query(f"PRINCIPAL#{ALICE}") == []
    assert await store._table.query(f"RESOURCE#{RESOURCE}") == []


@pytest.mark.asyncio
async def test_deletes_are_idempotent(store):
    await store.delete_resource(RESOURCE)
    await store.delete_scope(RESOURCE, "rbac")
    await store.delete_role(RESOURCE, "rbac.read")
    await store.delete_role_assignment(RESOURCE, "rbac.read", ALICE)
    await store.delete_scope_assignment(RESOURCE, "rbac", ALICE)
    await store.delete_principal(ALICE)

    await _seed(store)
    await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)
    await store.delete_role_assignment(RESOURCE, "rbac.read", ALICE)
    await store.delete_role_assignment(RESOURCE, "rbac.read", ALICE)
    assert await store.get_principals_for_role(RESOURCE, "rbac.read") == []


@pytest.mark.asyncio
async def test_rerunning_create_repairs_a_lost_mirror(store):
    await _seed(store)
    await store.create_scope_assignment(RESOURCE, "rbac", ALICE)
    # Simulate a half-applied write: the by-scope side is gone
    await store._table.delete([key_of(ScopeByScopeItem(RESOURCE, "rbac", ALICE))])
    assert await store.get_principals_for_scope(RESOURCE, "rbac") == []

    await store.create_scope_assignment(RESOURCE, "rbac", ALICE)
    assert await store.get_principals_for_scope(RESOURCE, "rbac") == [ALICE]


@pytest.mark.asyncio
async def test_principal_access_default_scope_returns_everything(store):
    await _seed(store)
    await store.create_scope_assignment(RESOURCE, "rbac", ALICE)
    await store.create_scope_assignment(RESOURCE, "other", ALICE)
    await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)

    access = await store.get_principal_access(ALICE, RESOURCE, ".default")
    assert access.principal_id == ALICE
    assert access.resource_name == RESOURCE
    assert access.scope_names == ["other", "rbac"]
    assert access.role_names == ["rbac.read"]


@pytest.mark.asyncio
async def test_principal_access_narrows_to_named_scope(store):
    await _seed(store)
    await store.create_scope_assignment(RESOURCE, "other", ALICE)
    await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)

    access = await store.get_principal_access(ALICE, RESOURCE, "rbac")
    assert access.scope_names == []
    assert access.role_names == ["rbac.read"]

    access = await store.get_principal_access(ALICE, RESOURCE, "other")
    assert access.scope_names == ["other"]


@pytest.mark.asyncio
async def test_principal_access_requires_resource_and_scope(store):
    with pytest.raises(NotFoundError):
        await store.get_principal_access(ALICE, RESOURCE, ".default")
    await store.create_resource(RESOURCE)
    with pytest.raises(NotFoundError):
        await store.get_principal_access(ALICE, RESOURCE, "missing")
    access = await store.get_principal_access(ALICE, RESOURCE)
    assert access.scope_names == [] and access.role_names == []


@pytest.mark.asyncio
async def test_delete_principal_removes_assignments_across_resources(store):
    await _seed(store)
    await store.create_resource("api://y")
    await store.create_role("api://y", "reader")
    await store.create_role_assignment(RESOURCE, "rbac.read", ALICE)
    await store.create_role_assignment("api://y", "reader", ALICE)
    await store.create_scope_assignment(RESOURCE, "rbac", ALICE)
    await store.create_role_assignment(RESOURCE, "rbac.read", BOB)

    await store.delete_principal(ALICE)

    assert await store.get_roles_for_principal(ALICE, RESOURCE) == []
    assert await store.get_roles_for_principal(ALICE, "api://y") == []
    assert await store.get_principals_for_role("api://y", "reader") == []
    assert await store.get_principals_for_scope(RESOURCE, "rbac") == []
    assert await store.get_principals_for_role(RESOURCE, "rbac.read") == [BOB]
    # Roles and scopes themselves survive
    assert await store.get_role("api://y", "reader") is not None

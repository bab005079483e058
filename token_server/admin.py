"""
RBAC admin API: resources, scopes, roles, their assignments, and principals.
Resource names carry "://", so names travel in JSON bodies and query strings.
"""
import logging

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from token_server.dependencies import get_store
from token_server.errors import NotFoundError
from token_server.permissions import RequireCreate, RequireDelete, RequireRead
from token_server.rbac_store import RBACStore

logger = logging.getLogger(__name__)
router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Fields are optional so missing names reach the validators and get the same error shape
class ResourceRequest(CamelModel):
    resource_name: str | None = None


class ScopeRequest(CamelModel):
    resource_name: str | None = None
    scope_name: str | None = None


class RoleRequest(CamelModel):
    resource_name: str | None = None
    role_name: str | None = None


class RoleAssignmentRequest(CamelModel):
    resource_name: str | None = None
    role_name: str | None = None
    principal_id: str | None = None


class ScopeAssignmentRequest(CamelModel):
    resource_name: str | None = None
    scope_name: str | None = None
    principal_id: str | None = None


class ResourceResponse(CamelModel):
    resource_name: str
    scope_names: list[str]
    role_names: list[str]


class ResourceListResponse(CamelModel):
    resource_names: list[str]


class ScopeResponse(CamelModel):
    resource_name: str
    scope_name: str


class RoleResponse(CamelModel):
    resource_name: str
    role_name: str


class RoleAssignmentResponse(CamelModel):
    resource_name: str
    role_name: str
    principal_ids: list[str]


class ScopeAssignmentResponse(CamelModel):
    resource_name: str
    scope_name: str
    principal_ids: list[str]


class PrincipalAccessResponse(CamelModel):
    principal_id: str
    resource_name: str
    scope_names: list[str]
    role_names: list[str]


async def _load_resource(store: RBACStore, resource_name: str | None) -> ResourceResponse:
    resource = await store.get_resource(resource_name)
    if resource is None:
        raise NotFoundError(f"Resource '{resource_name}' not found.")
    return ResourceResponse.model_validate(resource)


# -- resources ----------------------------------------------------------------


@router.post("/resources", status_code=201, response_model=ResourceResponse)
async def create_resource(body: ResourceRequest, claims: dict = RequireCreate,
                          store: RBACStore = Depends(get_store)):
    await store.create_resource(body.resource_name)
    logger.info("Resource %s created by %s", body.resource_name, claims.get("sub"))
    return await _load_resource(store, body.resource_name)


@router.get("/resources", response_model=ResourceListResponse)
async def list_resources(claims: dict = RequireRead, store: RBACStore = Depends(get_store)):
    return ResourceListResponse(resource_names=await store.get_resources())


@router.get("/resources/{resource_name:path}", response_model=ResourceResponse)
async def get_resource(resource_name: str, claims: dict = RequireRead,
                       store: RBACStore = Depends(get_store)):
    return await _load_resource(store, resource_name)


@router.delete("/resources", status_code=204)
async def delete_resource(resource_name: str | None = Query(None, alias="resourceName"),
                          claims: dict = RequireDelete, store: RBACStore = Depends(get_store)):
    await store.delete_resource(resource_name)
    logger.info("Resource %s deleted by %s", resource_name, claims.get("sub"))
    return Response(status_code=204)


# -- scopes -------------------------------------------------------------------


@router.post("/scopes", status_code=201, response_model=ScopeResponse)
async def create_scope(body: ScopeRequest, claims: dict = RequireCreate,
                       store: RBACStore = Depends(get_store)):
    await store.create_scope(body.resource_name, body.scope_name)
    return await get_scope(body.resource_name, body.scope_name, claims, store)


@router.get("/scopes", response_model=ScopeResponse)
async def get_scope(resource_name: str | None = Query(None, alias="resourceName"),
                    scope_name: str | None = Query(None, alias="scopeName"),
                    claims: dict = RequireRead, store: RBACStore = Depends(get_store)):
    scope = await store.get_scope(resource_name, scope_name)
    if scope is None:
        raise NotFoundError(f"Scope '{scope_name}' not found.")
    return ScopeResponse.model_validate(scope)


@router.delete("/scopes", status_code=204)
async def delete_scope(resource_name: str | None = Query(None, alias="resourceName"),
                       scope_name: str | None = Query(None, alias="scopeName"),
                       claims: dict = RequireDelete, store: RBACStore = Depends(get_store)):
    await store.delete_scope(resource_name, scope_name)
    return Response(status_code=204)


# -- roles --------------------------------------------------------------------


@router.post("/roles", status_code=201, response_model=RoleResponse)
async def create_role(body: RoleRequest, claims: dict = RequireCreate,
                      store: RBACStore = Depends(get_store)):
    await store.create_role(body.resource_name, body.role_name)
    return await get_role(body.resource_name, body.role_name, claims, store)


@router.get("/roles", response_model=RoleResponse)
async def get_role(resource_name: str | None = Query(None, alias="resourceName"),
                   role_name: str | None = Query(None, alias="roleName"),
                   claims: dict = RequireRead, store: RBACStore = Depends(get_store)):
    role = await store.get_role(resource_name, role_name)
    if role is None:
        raise NotFoundError(f"Role '{role_name}' not found.")
    return RoleResponse.model_validate(role)


@router.delete("/roles", status_code=204)
async def delete_role(resource_name: str | None = Query(None, alias="resourceName"),
                      role_name: str | None = Query(None, alias="roleName"),
                      claims: dict = RequireDelete, store: RBACStore = Depends(get_store)):
    await store.delete_role(resource_name, role_name)
    return Response(status_code=204)


# -- role assignments ---------------------------------------------------------


@router.post("/assignments/roles", status_code=201, response_model=RoleAssignmentResponse)
async def create_role_assignment(body: RoleAssignmentRequest, claims: dict = RequireCreate,
                                 store: RBACStore = Depends(get_store)):
    await store.create_role_assignment(body.resource_name, body.role_name, body.principal_id)
    logger.info("Role %s on %s granted to %s by %s",
                body.role_name, body.resource_name, body.principal_id, claims.get("sub"))
    assignment = await store.get_role_assignment(body.resource_name, body.role_name)
    return RoleAssignmentResponse.model_validate(assignment)


@router.get("/assignments/roles", response_model=RoleAssignmentResponse)
async def get_role_assignment(resource_name: str | None = Query(None, alias="resourceName"),
                              role_name: str | None = Query(None, alias="roleName"),
                              claims: dict = RequireRead, store: RBACStore = Depends(get_store)):
    assignment = await store.get_role_assignment(resource_name, role_name)
    return RoleAssignmentResponse.model_validate(assignment)


@router.delete("/assignments/roles", status_code=204)
async def delete_role_assignment(resource_name: str | None = Query(None, alias="resourceName"),
                                 role_name: str | None = Query(None, alias="roleName"),
                                 principal_id: str | None = Query(None, alias="principalId"),
                                 claims: dict = RequireDelete, store: RBACStore = Depends(get_store)):
    await store.delete_role_assignment(resource_name, role_name, principal_id)
    logger.info("Role %s on %s revoked from %s by %s", role_name, resource_name, principal_id, claims.get("sub"))
    return Response(status_code=204)


# -- scope assignments --------------------------------------------------------


@router.post("/assignments/scopes", status_code=201, response_model=ScopeAssignmentResponse)
async def create_scope_assignment(body: ScopeAssignmentRequest, claims: dict = RequireCreate,
                                  store: RBACStore = Depends(get_store)):
    await store.create_scope_assignment(body.resource_name, body.scope_name, body.principal_id)
    logger.info("Scope %s on %s granted to %s by %s",
                body.scope_name, body.resource_name, body.principal_id, claims.get("sub"))
    assignment = await store.get_scope_assignment(body.resource_name, body.scope_name)
    return ScopeAssignmentResponse.model_validate(assignment)


@router.get("/assignments/scopes", response_model=ScopeAssignmentResponse)
async def get_scope_assignment(resource_name: str | None = Query(None, alias="resourceName"),
                               scope_name: str | None = Query(None, alias="scopeName"),
                               claims: dict = RequireRead, store: RBACStore = Depends(get_store)):
    assignment = await store.get_scope_assignment(resource_name, scope_name)
    return ScopeAssignmentResponse.model_validate(assignment)


@router.delete("/assignments/scopes", status_code=204)
async def delete_scope_assignment(resource_name: str | None = Query(None, alias="resourceName"),
                                  scope_name: str | None = Query(None, alias="scopeName"),
                                  principal_id: str | None = Query(None, alias="principalId"),
                                  claims: dict = RequireDelete, store: RBACStore = Depends(get_store)):
    await store.delete_scope_assignment(resource_name, scope_name, principal_id)
    logger.info("Scope %s on %s revoked from %s by %s", scope_name, resource_name, principal_id, claims.get("sub"))
    return Response(status_code=204)


# -- principals ---------------------------------------------------------------


@router.get("/principals/access", response_model=PrincipalAccessResponse)
async def get_principal_access(principal_id: str | None = Query(None, alias="principalId"),
                               resource_name: str | None = Query(None, alias="resourceName"),
                               scope_name: str | None = Query(None, alias="scopeName"),
                               claims: dict = RequireRead, store: RBACStore = Depends(get_store)):
    access = await store.get_principal_access(principal_id, resource_name, scope_name)
    return PrincipalAccessResponse.model_validate(access)


@router.delete("/principals", status_code=204)
async def delete_principal(principal_id: str | None = Query(None, alias="principalId"),
                           claims: dict = RequireDelete, store: RBACStore = Depends(get_store)):
    await store.delete_principal(principal_id)
    logger.info("Principal %s deleted by %s", principal_id, claims.get("sub"))
    return Response(status_code=204)

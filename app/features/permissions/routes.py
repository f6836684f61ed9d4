"""
Permission API routes.

Dashboard callers ask these endpoints whether to enable a control, whether
the user owns the organization, and which of a list of projects the user
may act on.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, status

from app.features.users.dependencies import get_current_user, get_optional_user
from app.features.users.models import User
from app.features.permissions.catalog import ENTITY_ROLE_TYPES, KNOWN_PERMISSIONS
from app.features.permissions.checker import PermissionResolver
from app.features.permissions.codec import decode, encode
from app.features.permissions.dependencies import (
    ResolverFactory,
    ensure_loaded,
    get_permission_resolver,
    get_resolver_factory,
)
from app.features.permissions.pools import PoolKind
from app.features.permissions.queries import filter_by_permission, is_organization_owner
from app.features.permissions.schemas import (
    GrantRecord,
    OwnerCheckResponse,
    PermissionCatalogResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionFilterRequest,
    PermissionFilterResponse,
    PoolResponse,
    ScopedGrantsResponse,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _require_organization(organization_id: Optional[str]) -> str:
    if not organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="organization_id is required"
        )
    return organization_id


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check_request: PermissionCheckRequest,
    user: Annotated[Optional[User], Depends(get_optional_user)],
    factory: Annotated[ResolverFactory, Depends(get_resolver_factory)],
):
    """
    Check whether the caller may perform a permission in a scope.

    Anonymous callers get ``is_loading=true`` rather than a denial, and an
    omitted permission is always allowed with ``is_success=false``.
    """
    resolver = factory(user.id if user else None, check_request.to_scope())
    try:
        result = await resolver.check_permission(check_request.permission)
    finally:
        await resolver.aclose()

    return PermissionCheckResponse(
        can=result.can,
        is_loading=result.is_loading,
        is_success=result.is_success,
        blocked=result.blocked,
    )


@router.get("/owner", response_model=OwnerCheckResponse)
async def check_owner(
    current_user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)],
):
    """Whether the caller owns the organization given by ``organization_id``."""
    organization_id = _require_organization(resolver.scope.organization_id)
    result = await is_organization_owner(resolver)
    ensure_loaded(result, "owner check", current_user, resolver)
    return OwnerCheckResponse(organization_id=organization_id, is_owner=result.is_owner)


@router.post("/filter", response_model=PermissionFilterResponse)
async def filter_ids(
    filter_request: PermissionFilterRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    factory: Annotated[ResolverFactory, Depends(get_resolver_factory)],
):
    """Keep the project ids the caller may act on with ``permission``."""
    required = decode(filter_request.permission)
    _require_organization(filter_request.organization_id)

    resolver = factory(current_user.id, filter_request.to_scope())
    try:
        result = await filter_by_permission(
            resolver, filter_request.ids, required, key=lambda project_id: project_id
        )
        ensure_loaded(result, f"'{encode(required)}'", current_user, resolver)
    finally:
        await resolver.aclose()

    return PermissionFilterResponse(permission=encode(required), ids=result.items)


@router.get("/grants", response_model=ScopedGrantsResponse)
async def list_scoped_grants(
    current_user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)],
):
    """The caller's grants in each pool for the requested scope."""
    organization_id = _require_organization(resolver.scope.organization_id)
    kinds = tuple(PoolKind)
    results = await resolver.pools(kinds)

    return ScopedGrantsResponse(
        organization_id=organization_id,
        project_id=resolver.scope.project_id,
        pools={
            result.kind.value: PoolResponse(
                status=result.status.value,
                is_loading=result.is_loading,
                is_success=result.is_success,
                grants=[GrantRecord.from_grant(grant) for grant in result.grants],
            )
            for result in results
        },
    )


@router.get("/catalog", response_model=PermissionCatalogResponse)
async def get_catalog():
    """Known permission strings per role type."""
    return PermissionCatalogResponse(
        role_types={
            ENTITY_ROLE_TYPES[entity]: list(permissions)
            for entity, permissions in KNOWN_PERMISSIONS.items()
        }
    )

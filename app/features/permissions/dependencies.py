"""
FastAPI dependencies for permission checks.

Implements:
- Collaborator wiring (grant source, project/branch directories)
- A per-request PermissionResolver so checks in one request share fetches
- require_permission for route protection
"""
from collections.abc import AsyncGenerator
from typing import Annotated, Callable, Optional
from fastapi import Depends, HTTPException, status

from app.core.database.engine import AsyncSessionLocal
from app.features.users.dependencies import get_current_user, get_optional_user
from app.features.users.models import User
from app.features.permissions.checker import PermissionResolver
from app.features.permissions.codec import decode, encode
from app.features.permissions.db_provider import SqlDirectory, SqlGrantSource
from app.features.permissions.grants import ScopeContext
from app.features.permissions.provider import BranchDirectory, GrantSource, ProjectDirectory
from app.utils import get_logger


log = get_logger(__name__)

ResolverFactory = Callable[[Optional[str], ScopeContext], PermissionResolver]


# ============================================================================
# Collaborators
# ============================================================================

def get_grant_source() -> GrantSource:
    return SqlGrantSource(AsyncSessionLocal)


def get_project_directory() -> ProjectDirectory:
    return SqlDirectory(AsyncSessionLocal)


def get_branch_directory() -> BranchDirectory:
    return SqlDirectory(AsyncSessionLocal)


def get_resolver_factory(
    source: Annotated[GrantSource, Depends(get_grant_source)],
    projects: Annotated[ProjectDirectory, Depends(get_project_directory)],
    branches: Annotated[BranchDirectory, Depends(get_branch_directory)],
) -> ResolverFactory:
    """Build resolvers for scopes that arrive in a request body."""
    def factory(actor_id: Optional[str], scope: ScopeContext) -> PermissionResolver:
        return PermissionResolver(source, projects, branches, actor_id, scope)

    return factory


# ============================================================================
# Scope and resolver
# ============================================================================

def get_scope_context(
    organization_id: Optional[str] = None,
    project_id: Optional[str] = None,
    branch_id: Optional[str] = None,
) -> ScopeContext:
    """
    Scope from path or query parameters of the same name.

    Path parameters win, so routes like /organizations/{organization_id}/...
    scope themselves.
    """
    return ScopeContext(
        organization_id=organization_id,
        project_id=project_id,
        branch_id=branch_id,
    )


async def get_permission_resolver(
    scope: Annotated[ScopeContext, Depends(get_scope_context)],
    user: Annotated[Optional[User], Depends(get_optional_user)],
    factory: Annotated[ResolverFactory, Depends(get_resolver_factory)],
) -> AsyncGenerator[PermissionResolver, None]:
    resolver = factory(user.id if user else None, scope)
    try:
        yield resolver
    finally:
        await resolver.aclose()


# ============================================================================
# Route protection
# ============================================================================

def ensure_loaded(result, subject: str, user: User, resolver: PermissionResolver) -> None:
    """
    Refuse to act on an answer computed from pools that did not load.

    ``result`` is anything carrying ``blocked`` and ``is_success``: a
    PermissionCheckResult or a derived query result.

    Raises:
        HTTPException: 400 if the scope lacks ids the answer needs,
            503 if grants could not be loaded
    """
    if result.blocked:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Scope is incomplete for {subject}",
        )
    if not result.is_success:
        log.warning(
            "Grants for %s could not be loaded for user %s in %s",
            subject, user.id, resolver.scope,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Permissions could not be loaded",
        )


def require_permission(permission: str):
    """
    FastAPI dependency to require a permission in the request's scope.

    The permission string is decoded once, when the route is declared, so a
    typo fails at import time.

    Usage:
        @router.get("/{organization_id}/projects/{project_id}/branches")
        async def list_branches(
            user: User = Depends(require_permission("project:branches:read"))
        ):
            pass

    Raises:
        HTTPException: 400 if the scope lacks ids the check needs,
            503 if grants could not be loaded, 403 if denied
    """
    required = decode(permission)

    async def permission_dependency(
        current_user: Annotated[User, Depends(get_current_user)],
        resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)],
    ) -> User:
        result = await resolver.check_permission(required)
        ensure_loaded(result, f"'{encode(required)}'", current_user, resolver)
        if not result.can:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {encode(required)}",
            )
        return current_user

    return permission_dependency

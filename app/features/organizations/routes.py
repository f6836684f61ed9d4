"""
Organization directory routes.

Listings here are permission-aware: projects are filtered to those the
caller may act on, and branch listings are gated on a project permission.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.dependencies import get_current_user
from app.features.organizations.models import Organization, Project, Branch
from app.features.organizations.schemas import ProjectResponse, BranchResponse
from app.features.organizations.dependencies import (
    get_organization_by_id,
    get_organization_project,
)
from app.features.permissions.checker import PermissionResolver
from app.features.permissions.codec import decode
from app.features.permissions.dependencies import (
    ensure_loaded,
    get_permission_resolver,
    require_permission,
)
from app.features.permissions.queries import filter_by_permission


router = APIRouter(tags=["organizations"])

BRANCH_LISTING_PERMISSION = "project:branches:read"


@router.get("/{organization_id}/projects", response_model=List[ProjectResponse])
async def list_projects(
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    current_user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
    permission: str = Query("project:settings:read", description="Permission the caller needs on each project"),
):
    """
    List the organization's projects the caller may act on with ``permission``.

    Raises:
        HTTPException: 503 if the caller's grants could not be loaded
    """
    required = decode(permission)
    result = await db.execute(
        select(Project)
        .where(Project.organization_id == organization.id)
        .order_by(Project.name)
    )
    projects = result.scalars().all()
    visible = await filter_by_permission(resolver, projects, required, key="id")
    ensure_loaded(visible, f"'{permission}'", current_user, resolver)
    return visible.items


@router.get(
    "/{organization_id}/projects/{project_id}/branches",
    response_model=List[BranchResponse],
)
async def list_branches(
    project: Annotated[Project, Depends(get_organization_project)],
    current_user: Annotated[User, Depends(require_permission(BRANCH_LISTING_PERMISSION))],
    resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    List a project's branches.

    Project grants are pooled per organization, so the gate alone lets a
    grant on any of its projects through; the grant must also name this one.
    """
    visible = await filter_by_permission(resolver, [project], BRANCH_LISTING_PERMISSION, key="id")
    ensure_loaded(visible, f"'{BRANCH_LISTING_PERMISSION}'", current_user, resolver)
    if not visible.items:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied: {BRANCH_LISTING_PERMISSION}"
        )

    result = await db.execute(
        select(Branch)
        .where(Branch.project_id == project.id)
        .order_by(Branch.name)
    )
    return result.scalars().all()

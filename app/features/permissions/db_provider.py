"""
SQLAlchemy-backed grant source and project/branch directories.

Each call opens its own session from the session factory: the engine runs
pool fetches concurrently and an AsyncSession must not be shared between
concurrent tasks.
"""
from __future__ import annotations

from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.organizations.models import Branch, Project
from app.features.permissions.catalog import ENTITY_ROLE_TYPES
from app.features.permissions.codec import Entity, decode
from app.features.permissions.grants import BINDING_FIELDS, Grant
from app.features.permissions.models import Role, RoleAssignment
from app.features.permissions.provider import BranchRecord, ProjectRecord


class SqlGrantSource:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def fetch_grants(
        self,
        actor_id: str,
        organization_id: str,
        entity: Entity,
    ) -> Sequence[Grant]:
        """
        Flatten the actor's role assignments of one role type into grants.

        Raises:
            PermissionDecodeError: if a stored access right is malformed
            GrantScopeError: if an assignment's binding does not fit its role
        """
        stmt = (
            select(RoleAssignment, Role)
            .join(Role, Role.id == RoleAssignment.role_id)
            .where(
                RoleAssignment.user_id == actor_id,
                RoleAssignment.organization_id == organization_id,
                Role.organization_id == organization_id,
                Role.role_type == ENTITY_ROLE_TYPES[entity],
            )
            .order_by(RoleAssignment.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        binding_field = BINDING_FIELDS.get(entity)
        grants: list[Grant] = []
        for assignment, role in rows:
            binding = {binding_field: getattr(assignment, binding_field)} if binding_field else {}
            for raw in role.access_rights or ():
                grants.append(
                    Grant(
                        permission=decode(raw),
                        organization_id=assignment.organization_id,
                        **binding,
                    )
                )
        return tuple(sorted(grants, key=lambda grant: grant.sort_key()))


class SqlDirectory:
    """Project directory and branch directory over the organizations tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_projects(self, organization_id: str) -> Sequence[ProjectRecord]:
        stmt = (
            select(Project.id, Project.organization_id)
            .where(Project.organization_id == organization_id)
            .order_by(Project.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return tuple(ProjectRecord(id=row.id, organization_id=row.organization_id) for row in rows)

    async def list_branches(
        self,
        organization_id: str,
        project_id: str,
    ) -> Sequence[BranchRecord]:
        stmt = (
            select(Branch.id, Branch.project_id)
            .join(Project, Project.id == Branch.project_id)
            .where(
                Branch.project_id == project_id,
                Project.organization_id == organization_id,
            )
            .order_by(Branch.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return tuple(BranchRecord(id=row.id, project_id=row.project_id) for row in rows)

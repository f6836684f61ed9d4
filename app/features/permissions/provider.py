"""
Collaborator protocols for the permission engine, plus in-memory
implementations used for bootstrap and tests.

The engine never owns grants or directories; it reads them through these
interfaces. ``db_provider`` holds the SQLAlchemy-backed implementations.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from app.features.permissions.codec import Entity
from app.features.permissions.grants import Grant


@dataclass(frozen=True)
class ProjectRecord:
    id: str
    organization_id: str


@dataclass(frozen=True)
class BranchRecord:
    id: str
    project_id: str


class GrantSource(Protocol):
    async def fetch_grants(
        self,
        actor_id: str,
        organization_id: str,
        entity: Entity,
    ) -> Sequence[Grant]:
        """Grants the actor holds at one scope level of one organization."""
        ...


class ProjectDirectory(Protocol):
    async def list_projects(self, organization_id: str) -> Sequence[ProjectRecord]:
        ...


class BranchDirectory(Protocol):
    async def list_branches(
        self,
        organization_id: str,
        project_id: str,
    ) -> Sequence[BranchRecord]:
        ...


class InMemoryGrantSource:
    """
    Grants indexed by actor. Filtering by organization and entity happens
    here, the same as the remote store answers per scope level.
    """

    def __init__(self, grants_by_actor: dict[str, Iterable[Grant]] | None = None):
        self._grants: dict[str, tuple[Grant, ...]] = {
            actor_id: tuple(sorted(grants, key=lambda g: g.sort_key()))
            for actor_id, grants in (grants_by_actor or {}).items()
        }

    async def fetch_grants(
        self,
        actor_id: str,
        organization_id: str,
        entity: Entity,
    ) -> Sequence[Grant]:
        return tuple(
            grant
            for grant in self._grants.get(actor_id, ())
            if grant.organization_id == organization_id and grant.entity == entity
        )


class InMemoryDirectory:
    """Project and branch directory over fixed record lists."""

    def __init__(
        self,
        projects: Iterable[ProjectRecord] = (),
        branches: Iterable[BranchRecord] = (),
    ):
        self._projects = tuple(projects)
        self._branches = tuple(branches)

    async def list_projects(self, organization_id: str) -> Sequence[ProjectRecord]:
        return tuple(p for p in self._projects if p.organization_id == organization_id)

    async def list_branches(
        self,
        organization_id: str,
        project_id: str,
    ) -> Sequence[BranchRecord]:
        project_ids = {p.id for p in self._projects if p.organization_id == organization_id}
        if project_id not in project_ids:
            return ()
        return tuple(b for b in self._branches if b.project_id == project_id)

"""
Grant pool resolvers.

One resolver per scope level. Each fetches the actor's grants for that level
and keeps only those that belong to the current scope:

    organization  org-entity grants of ctx.organization_id
    environment   env-entity grants of ctx.organization_id (any env_type)
    project       project grants whose project_id is one of the
                  organization's projects
    branch        branch grants whose branch_id is one of the current
                  project's branches

A resolver never raises for a failed fetch. Failures come back as an ERROR
pool, missing context ids as a BLOCKED pool.
"""
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from app.features.permissions.codec import Entity
from app.features.permissions.grants import Grant, ScopeContext
from app.features.permissions.provider import BranchDirectory, GrantSource, ProjectDirectory
from app.utils import get_logger


log = get_logger(__name__)


class PoolKind(str, enum.Enum):
    ORGANIZATION = "organization"
    ENVIRONMENT = "environment"
    PROJECT = "project"
    BRANCH = "branch"


class PoolStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    BLOCKED = "blocked"


# Context ids a pool needs before its fetch may start.
POOL_REQUIRES = {
    PoolKind.ORGANIZATION: ("organization_id",),
    PoolKind.ENVIRONMENT: ("organization_id",),
    PoolKind.PROJECT: ("organization_id",),
    PoolKind.BRANCH: ("organization_id", "project_id"),
}


@dataclass(frozen=True)
class PoolResult:
    kind: PoolKind
    status: PoolStatus
    grants: tuple[Grant, ...] = ()

    @property
    def is_loading(self) -> bool:
        # A blocked pool never starts, so it never stops loading either.
        return self.status in (PoolStatus.PENDING, PoolStatus.BLOCKED)

    @property
    def is_success(self) -> bool:
        return self.status == PoolStatus.SUCCESS

    @property
    def is_blocked(self) -> bool:
        return self.status == PoolStatus.BLOCKED

    @classmethod
    def pending(cls, kind: PoolKind) -> "PoolResult":
        return cls(kind=kind, status=PoolStatus.PENDING)

    @classmethod
    def blocked(cls, kind: PoolKind) -> "PoolResult":
        return cls(kind=kind, status=PoolStatus.BLOCKED)

    @classmethod
    def error(cls, kind: PoolKind) -> "PoolResult":
        return cls(kind=kind, status=PoolStatus.ERROR)

    @classmethod
    def success(cls, kind: PoolKind, grants: Sequence[Grant]) -> "PoolResult":
        ordered = tuple(sorted(grants, key=lambda grant: grant.sort_key()))
        return cls(kind=kind, status=PoolStatus.SUCCESS, grants=ordered)


def is_enabled(kind: PoolKind, ctx: ScopeContext) -> bool:
    return ctx.has(*POOL_REQUIRES[kind])


async def _guarded(
    kind: PoolKind,
    ctx: ScopeContext,
    load: Callable[[], Awaitable[Sequence[Grant]]],
    timeout: Optional[float],
) -> PoolResult:
    if not is_enabled(kind, ctx):
        log.debug("%s pool blocked: missing %s", kind.value, POOL_REQUIRES[kind])
        return PoolResult.blocked(kind)

    try:
        grants = await asyncio.wait_for(load(), timeout)
    except asyncio.CancelledError:
        raise
    except asyncio.TimeoutError:
        log.warning("%s pool fetch timed out after %ss for %s", kind.value, timeout, ctx)
        return PoolResult.error(kind)
    except Exception as e:
        log.warning("%s pool fetch failed for %s: %s", kind.value, ctx, e, exc_info=True)
        return PoolResult.error(kind)

    return PoolResult.success(kind, grants)


async def resolve_organization_pool(
    ctx: ScopeContext,
    actor_id: str,
    source: GrantSource,
    timeout: Optional[float] = None,
) -> PoolResult:
    async def load() -> list[Grant]:
        grants = await source.fetch_grants(actor_id, ctx.organization_id, Entity.ORGANIZATION)
        return [
            g for g in grants
            if g.entity == Entity.ORGANIZATION and g.organization_id == ctx.organization_id
        ]

    return await _guarded(PoolKind.ORGANIZATION, ctx, load, timeout)


async def resolve_environment_pool(
    ctx: ScopeContext,
    actor_id: str,
    source: GrantSource,
    timeout: Optional[float] = None,
) -> PoolResult:
    # TODO: narrow to the env_type being acted on once callers pass one in ScopeContext
    async def load() -> list[Grant]:
        grants = await source.fetch_grants(actor_id, ctx.organization_id, Entity.ENVIRONMENT)
        return [
            g for g in grants
            if g.entity == Entity.ENVIRONMENT and g.organization_id == ctx.organization_id
        ]

    return await _guarded(PoolKind.ENVIRONMENT, ctx, load, timeout)


async def resolve_project_pool(
    ctx: ScopeContext,
    actor_id: str,
    source: GrantSource,
    projects: ProjectDirectory,
    timeout: Optional[float] = None,
) -> PoolResult:
    async def load() -> list[Grant]:
        grants, members = await asyncio.gather(
            source.fetch_grants(actor_id, ctx.organization_id, Entity.PROJECT),
            projects.list_projects(ctx.organization_id),
        )
        member_ids = {p.id for p in members if p.organization_id == ctx.organization_id}
        return [
            g for g in grants
            if g.entity == Entity.PROJECT and g.project_id in member_ids
        ]

    return await _guarded(PoolKind.PROJECT, ctx, load, timeout)


async def resolve_branch_pool(
    ctx: ScopeContext,
    actor_id: str,
    source: GrantSource,
    branches: BranchDirectory,
    timeout: Optional[float] = None,
) -> PoolResult:
    async def load() -> list[Grant]:
        grants, members = await asyncio.gather(
            source.fetch_grants(actor_id, ctx.organization_id, Entity.BRANCH),
            branches.list_branches(ctx.organization_id, ctx.project_id),
        )
        member_ids = {b.id for b in members if b.project_id == ctx.project_id}
        return [
            g for g in grants
            if g.entity == Entity.BRANCH and g.branch_id in member_ids
        ]

    return await _guarded(PoolKind.BRANCH, ctx, load, timeout)

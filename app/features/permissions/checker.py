"""
Aggregate permission check.

Which pools a check needs depends only on the required permission's entity
(see ENTITY_POOLS). The relevant pools are fetched concurrently, then a pure
reducer turns them into a PermissionCheckResult.

A PermissionResolver caches pool fetches for one actor under one scope.
Switching scope cancels fetches started for the previous scope, so their
grants can never leak into a decision made under the new one.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterable, Optional

from app.core import config
from app.features.permissions.codec import Entity, Permission, coerce, encode
from app.features.permissions.decision import has_permission
from app.features.permissions.grants import ScopeContext
from app.features.permissions.pools import (
    PoolKind,
    PoolResult,
    resolve_branch_pool,
    resolve_environment_pool,
    resolve_organization_pool,
    resolve_project_pool,
)
from app.features.permissions.provider import BranchDirectory, GrantSource, ProjectDirectory
from app.utils import get_logger


log = get_logger(__name__)


ENTITY_POOLS: dict[Entity, tuple[PoolKind, ...]] = {
    Entity.ORGANIZATION: (PoolKind.ORGANIZATION,),
    Entity.ENVIRONMENT: (PoolKind.ORGANIZATION, PoolKind.ENVIRONMENT),
    Entity.PROJECT: (PoolKind.ORGANIZATION, PoolKind.PROJECT),
    Entity.BRANCH: (PoolKind.ORGANIZATION, PoolKind.BRANCH),
}


@dataclass(frozen=True)
class PermissionCheckResult:
    can: bool
    is_loading: bool
    is_success: bool
    blocked: bool = False

    @classmethod
    def unrestricted(cls) -> "PermissionCheckResult":
        """No permission was requested: allowed, but nothing was loaded."""
        return cls(can=True, is_loading=False, is_success=False)

    @classmethod
    def unauthenticated(cls) -> "PermissionCheckResult":
        """No actor yet: reported as loading rather than denied."""
        return cls(can=False, is_loading=True, is_success=False)


def combine(
    required: Permission,
    pools: Iterable[PoolResult],
    organization_id: Optional[str] = None,
) -> PermissionCheckResult:
    pools = tuple(pools)
    grants = [grant for pool in pools for grant in pool.grants]
    return PermissionCheckResult(
        can=has_permission(required, grants, organization_id),
        is_loading=any(pool.is_loading for pool in pools),
        is_success=all(pool.is_success for pool in pools),
        blocked=any(pool.is_blocked for pool in pools),
    )


class PermissionResolver:
    """
    Pool fetches and permission checks for one actor under one scope.

    Usage:
        resolver = PermissionResolver(source, projects, branches, actor_id, scope)
        try:
            result = await resolver.check_permission("branch:auth:admin")
        finally:
            await resolver.aclose()
    """

    def __init__(
        self,
        source: GrantSource,
        projects: ProjectDirectory,
        branches: BranchDirectory,
        actor_id: Optional[str],
        scope: ScopeContext,
        timeout: Optional[float] = None,
    ):
        self._source = source
        self._projects = projects
        self._branches = branches
        self._actor_id = actor_id
        self._scope = scope
        self._timeout = config.POOL_FETCH_TIMEOUT if timeout is None else timeout
        self._tasks: dict[tuple[PoolKind, str, ScopeContext], asyncio.Task] = {}

    @property
    def scope(self) -> ScopeContext:
        return self._scope

    @property
    def actor_id(self) -> Optional[str]:
        return self._actor_id

    @property
    def is_authenticated(self) -> bool:
        return bool(self._actor_id)

    def switch_scope(self, scope: ScopeContext) -> None:
        if scope == self._scope:
            return
        stale = [task for key, task in self._tasks.items() if key[2] != scope]
        for task in stale:
            task.cancel()
        self._tasks = {key: task for key, task in self._tasks.items() if key[2] == scope}
        log.debug("Scope switched %s -> %s, cancelled %d fetches", self._scope, scope, len(stale))
        self._scope = scope

    def _resolve(self, kind: PoolKind, scope: ScopeContext):
        if kind == PoolKind.ORGANIZATION:
            return resolve_organization_pool(scope, self._actor_id, self._source, self._timeout)
        if kind == PoolKind.ENVIRONMENT:
            return resolve_environment_pool(scope, self._actor_id, self._source, self._timeout)
        if kind == PoolKind.PROJECT:
            return resolve_project_pool(
                scope, self._actor_id, self._source, self._projects, self._timeout
            )
        return resolve_branch_pool(
            scope, self._actor_id, self._source, self._branches, self._timeout
        )

    def _task(self, kind: PoolKind) -> asyncio.Task:
        key = (kind, self._actor_id, self._scope)
        task = self._tasks.get(key)
        if task is None:
            loop = asyncio.get_running_loop()
            task = loop.create_task(self._resolve(kind, self._scope))
            self._tasks[key] = task
        return task

    @staticmethod
    def _outcome(kind: PoolKind, task: asyncio.Task) -> PoolResult:
        # Cancelled means the scope moved on; its grants are discarded.
        if not task.done() or task.cancelled():
            return PoolResult.pending(kind)
        return task.result()

    async def pools(self, kinds: Iterable[PoolKind]) -> tuple[PoolResult, ...]:
        """Resolve the given pools concurrently under the current scope."""
        kinds = tuple(kinds)
        if not self.is_authenticated:
            return tuple(PoolResult.pending(kind) for kind in kinds)

        tasks = [self._task(kind) for kind in kinds]
        if tasks:
            await asyncio.wait(tasks)
        return tuple(self._outcome(kind, task) for kind, task in zip(kinds, tasks))

    async def pool(self, kind: PoolKind) -> PoolResult:
        (result,) = await self.pools((kind,))
        return result

    async def check_permission(
        self,
        required: Permission | str | None,
    ) -> PermissionCheckResult:
        """
        Resolve the pools relevant to ``required`` and decide.

        Raises:
            PermissionDecodeError: if ``required`` is a malformed string
        """
        if required is None:
            return PermissionCheckResult.unrestricted()
        required = coerce(required)
        if not self.is_authenticated:
            return PermissionCheckResult.unauthenticated()

        scope = self._scope
        pools = await self.pools(ENTITY_POOLS[required.entity])
        result = combine(required, pools, scope.organization_id)
        log.debug(
            "Permission %s for actor %s in %s: can=%s loading=%s success=%s",
            encode(required), self._actor_id, scope,
            result.can, result.is_loading, result.is_success,
        )
        return result

    def snapshot(self, required: Permission | str | None) -> PermissionCheckResult:
        """
        Current state of a check without waiting: pools still in flight
        report as loading. Starts any fetch that is not running yet, so it
        must be called from a running event loop (RuntimeError otherwise).
        """
        if required is None:
            return PermissionCheckResult.unrestricted()
        required = coerce(required)
        if not self.is_authenticated:
            return PermissionCheckResult.unauthenticated()

        kinds = ENTITY_POOLS[required.entity]
        pools = [self._outcome(kind, self._task(kind)) for kind in kinds]
        return combine(required, pools, self._scope.organization_id)

    async def aclose(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        self._tasks.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


async def check_permission(
    required: Permission | str | None,
    scope: ScopeContext,
    *,
    actor_id: Optional[str],
    source: GrantSource,
    projects: ProjectDirectory,
    branches: BranchDirectory,
    timeout: Optional[float] = None,
) -> PermissionCheckResult:
    """One-shot check with a throwaway resolver."""
    resolver = PermissionResolver(source, projects, branches, actor_id, scope, timeout)
    try:
        return await resolver.check_permission(required)
    finally:
        await resolver.aclose()

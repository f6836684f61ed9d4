"""
Derived permission queries built on the resolver.

Like a permission check, each answer carries the loading/success state of
the pools it was computed from. A failed or blocked pool is never reported
as a plain "no".
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, TypeVar

from app.features.permissions.checker import PermissionResolver
from app.features.permissions.codec import Permission, coerce
from app.features.permissions.decision import SUPERUSER_PERMISSION, has_permission, matches
from app.features.permissions.pools import PoolKind, PoolResult


T = TypeVar("T")


@dataclass(frozen=True)
class OwnerCheckResult:
    is_owner: bool
    is_loading: bool
    is_success: bool
    blocked: bool = False


@dataclass(frozen=True)
class FilterResult(Generic[T]):
    items: list[T]
    is_loading: bool
    is_success: bool
    blocked: bool = False


def _status(*pools: PoolResult) -> dict[str, bool]:
    return dict(
        is_loading=any(pool.is_loading for pool in pools),
        is_success=all(pool.is_success for pool in pools),
        blocked=any(pool.is_blocked for pool in pools),
    )


def _owns(resolver: PermissionResolver, organization_pool: PoolResult) -> bool:
    return has_permission(
        SUPERUSER_PERMISSION, organization_pool.grants, resolver.scope.organization_id
    )


async def is_organization_owner(resolver: PermissionResolver) -> OwnerCheckResult:
    """Whether the actor holds org:owner:admin in the resolver's organization."""
    pool = await resolver.pool(PoolKind.ORGANIZATION)
    return OwnerCheckResult(is_owner=_owns(resolver, pool), **_status(pool))


async def allowed_project_ids(
    resolver: PermissionResolver,
    permission: Permission | str,
) -> FilterResult[str]:
    """Project ids whose project-scoped grants satisfy ``permission``, sorted."""
    required = coerce(permission)
    pool = await resolver.pool(PoolKind.PROJECT)
    ids = {
        grant.project_id
        for grant in pool.grants
        if matches(grant.permission, required)
    }
    return FilterResult(items=sorted(ids), **_status(pool))


def _key_of(item: Any, key: str | Callable[[Any], str]) -> str:
    if callable(key):
        return key(item)
    if isinstance(item, Mapping):
        return item[key]
    return getattr(item, key)


async def filter_by_permission(
    resolver: PermissionResolver,
    items: Iterable[T],
    permission: Permission | str,
    key: str | Callable[[T], str] = "project_id",
) -> FilterResult[T]:
    """
    Keep the items the actor may act on.

    Owners keep everything; everyone else keeps items whose ``key`` is a
    project id with a matching project grant. ``key`` is an attribute or
    mapping key name, or a callable.

    A confirmed owner only depends on the organization pool. Any other
    answer depends on both pools, and is_success is false unless both loaded.
    """
    required = coerce(permission)
    items = list(items)
    organization_pool, project_pool = await resolver.pools(
        (PoolKind.ORGANIZATION, PoolKind.PROJECT)
    )
    if organization_pool.is_success and _owns(resolver, organization_pool):
        return FilterResult(items=items, **_status(organization_pool))

    allowed = {
        grant.project_id
        for grant in project_pool.grants
        if matches(grant.permission, required)
    }
    return FilterResult(
        items=[item for item in items if _key_of(item, key) in allowed],
        **_status(organization_pool, project_pool),
    )

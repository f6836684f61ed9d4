import asyncio

import pytest

from app.features.permissions.checker import (
    ENTITY_POOLS,
    PermissionCheckResult,
    check_permission,
    combine,
)
from app.features.permissions.codec import Entity, PermissionDecodeError, decode
from app.features.permissions.pools import PoolKind, PoolResult
from app.features.permissions.provider import InMemoryGrantSource

from tests.factories import (
    ACTOR,
    BRANCH_1,
    ORG_A,
    ORG_B,
    PROJECT_1,
    PROJECT_2,
    FailingGrantSource,
    GatedGrantSource,
    directory,
    grant,
    make_resolver,
    scope,
)


pytestmark = pytest.mark.anyio


async def wait_for_calls(source: GatedGrantSource, count: int):
    for _ in range(100):
        if len(source.calls) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} fetches, saw {source.calls}")


def test_every_entity_includes_the_organization_pool():
    for entity in Entity:
        assert ENTITY_POOLS[entity][0] == PoolKind.ORGANIZATION
    assert ENTITY_POOLS[Entity.ORGANIZATION] == (PoolKind.ORGANIZATION,)
    assert ENTITY_POOLS[Entity.BRANCH] == (PoolKind.ORGANIZATION, PoolKind.BRANCH)


def test_combine_reduces_loading_and_success():
    pools = [
        PoolResult.success(PoolKind.ORGANIZATION, [grant("org:role:read")]),
        PoolResult.pending(PoolKind.PROJECT),
    ]
    result = combine(decode("org:role:read"), pools, ORG_A)
    assert result == PermissionCheckResult(can=True, is_loading=True, is_success=False)


# Concrete scenarios

async def test_owner_passes_project_requirement():
    resolver = make_resolver([grant("org:owner:admin")])
    result = await resolver.check_permission("project:settings:read")
    assert result == PermissionCheckResult(can=True, is_loading=False, is_success=True)
    await resolver.aclose()


async def test_branch_grant_in_current_project():
    resolver = make_resolver([grant("branch:auth:admin", scope_id=BRANCH_1)])
    result = await resolver.check_permission("branch:auth:admin")
    assert result.can
    assert result.is_success
    await resolver.aclose()


async def test_branch_grant_outside_current_project():
    resolver = make_resolver(
        [grant("branch:auth:admin", scope_id=BRANCH_1)],
        ctx=scope(project_id=PROJECT_2),
    )
    result = await resolver.check_permission("branch:auth:admin")
    assert not result.can
    assert result.is_success
    await resolver.aclose()


async def test_branch_resource_wildcard():
    resolver = make_resolver([grant("branch:*:read", scope_id=BRANCH_1)])
    assert (await resolver.check_permission("branch:rls:read")).can
    assert not (await resolver.check_permission("branch:rls:admin")).can
    await resolver.aclose()


async def test_organization_action_wildcard():
    resolver = make_resolver([grant("org:role:*")])
    assert (await resolver.check_permission("org:role:admin")).can
    await resolver.aclose()


async def test_no_grants_is_a_loaded_denial():
    resolver = make_resolver([])
    for raw in ("org:role:read", "env:projects:create", "project:settings:read", "branch:auth:admin"):
        result = await resolver.check_permission(raw)
        assert result == PermissionCheckResult(can=False, is_loading=False, is_success=True)
    await resolver.aclose()


# Short circuits

async def test_unspecified_permission_passthrough():
    for actor_id in (ACTOR, None):
        resolver = make_resolver([], actor_id=actor_id)
        result = await resolver.check_permission(None)
        assert result == PermissionCheckResult(can=True, is_loading=False, is_success=False)
        assert resolver.snapshot(None) == result


async def test_unauthenticated_reports_loading():
    resolver = make_resolver([grant("org:owner:admin")], actor_id=None)
    result = await resolver.check_permission("org:role:read")
    assert result == PermissionCheckResult(can=False, is_loading=True, is_success=False)
    assert resolver.snapshot("org:role:read") == result
    assert all(pool.is_loading for pool in await resolver.pools(PoolKind))


async def test_malformed_permission_raises():
    resolver = make_resolver([])
    with pytest.raises(PermissionDecodeError):
        await resolver.check_permission("branch:auth")
    await resolver.aclose()


# Degraded pools

async def test_failed_pool_keeps_loaded_grants():
    source = FailingGrantSource(
        InMemoryGrantSource({ACTOR: [grant("org:owner:admin")]}), [Entity.PROJECT]
    )
    resolver = make_resolver(source=source)
    result = await resolver.check_permission("project:settings:read")
    assert result == PermissionCheckResult(can=True, is_loading=False, is_success=False)
    await resolver.aclose()


async def test_failure_in_irrelevant_pool_is_ignored():
    source = FailingGrantSource(
        InMemoryGrantSource({ACTOR: [grant("org:role:read")]}), [Entity.BRANCH]
    )
    resolver = make_resolver(source=source)
    result = await resolver.check_permission("org:role:read")
    assert result.can
    assert result.is_success
    await resolver.aclose()


async def test_missing_project_blocks_branch_checks():
    resolver = make_resolver([grant("org:owner:admin")], ctx=scope(project_id=None))
    result = await resolver.check_permission("branch:auth:admin")
    assert result == PermissionCheckResult(can=True, is_loading=True, is_success=False, blocked=True)

    # Organization checks do not need a project
    result = await resolver.check_permission("org:role:admin")
    assert not result.blocked
    assert result.is_success
    await resolver.aclose()


# Fetch lifecycle

async def test_fetches_are_shared_across_checks():
    source = GatedGrantSource(InMemoryGrantSource({ACTOR: [grant("org:role:read")]}))
    source.release()
    resolver = make_resolver(source=source)
    await resolver.check_permission("org:role:read")
    await resolver.check_permission("org:role:admin")
    await resolver.check_permission("project:settings:read")
    assert [entity for _, _, entity in source.calls] == [Entity.ORGANIZATION, Entity.PROJECT]
    await resolver.aclose()


async def test_snapshot_reports_in_flight_pools_as_loading():
    source = GatedGrantSource(InMemoryGrantSource({ACTOR: [grant("org:role:read")]}))
    resolver = make_resolver(source=source)

    first = resolver.snapshot("org:role:read")
    assert first == PermissionCheckResult(can=False, is_loading=True, is_success=False)

    source.release()
    assert await resolver.check_permission("org:role:read") == PermissionCheckResult(
        can=True, is_loading=False, is_success=True
    )
    assert resolver.snapshot("org:role:read").can
    await resolver.aclose()


def test_snapshot_outside_event_loop():
    resolver = make_resolver([grant("org:role:read")])
    assert resolver.snapshot(None) == PermissionCheckResult.unrestricted()
    with pytest.raises(RuntimeError):
        resolver.snapshot("org:role:read")
    assert make_resolver(actor_id=None).snapshot("org:role:read").is_loading


async def test_switch_scope_discards_stale_fetches():
    source = GatedGrantSource(InMemoryGrantSource({ACTOR: [grant("org:role:admin", ORG_A)]}))
    resolver = make_resolver(source=source, ctx=scope(ORG_A))

    resolver.snapshot("org:role:admin")
    await wait_for_calls(source, 1)

    resolver.switch_scope(scope(ORG_B))
    assert resolver.scope.organization_id == ORG_B
    source.release()

    result = await resolver.check_permission("org:role:admin")
    assert result == PermissionCheckResult(can=False, is_loading=False, is_success=True)
    assert [org for _, org, _ in source.calls] == [ORG_A, ORG_B]
    await resolver.aclose()


async def test_switch_to_same_scope_keeps_fetches():
    source = GatedGrantSource(InMemoryGrantSource({ACTOR: [grant("org:role:admin")]}))
    source.release()
    resolver = make_resolver(source=source)
    await resolver.check_permission("org:role:admin")
    resolver.switch_scope(scope())
    await resolver.check_permission("org:role:admin")
    assert len(source.calls) == 1
    await resolver.aclose()


async def test_aclose_cancels_pending_fetches():
    source = GatedGrantSource(InMemoryGrantSource({}))
    resolver = make_resolver(source=source)
    resolver.snapshot("project:settings:read")
    await wait_for_calls(source, 1)
    await resolver.aclose()
    assert resolver.snapshot("org:role:read").is_loading
    await resolver.aclose()


async def test_one_shot_check():
    dirs = directory()
    result = await check_permission(
        "project:settings:read",
        scope(),
        actor_id=ACTOR,
        source=InMemoryGrantSource({ACTOR: [grant("project:settings:*", scope_id=PROJECT_1)]}),
        projects=dirs,
        branches=dirs,
    )
    assert result.can
    assert result.is_success

from dataclasses import dataclass

import pytest

from app.features.permissions.codec import Entity, PermissionDecodeError
from app.features.permissions.provider import InMemoryGrantSource
from app.features.permissions.queries import (
    FilterResult,
    OwnerCheckResult,
    allowed_project_ids,
    filter_by_permission,
    is_organization_owner,
)

from tests.factories import (
    ACTOR,
    FOREIGN_PROJECT,
    ORG_B,
    PROJECT_1,
    PROJECT_2,
    FailingGrantSource,
    grant,
    make_resolver,
    scope,
)


pytestmark = pytest.mark.anyio


@dataclass
class Database:
    name: str
    project_id: str


DATABASES = [
    Database("orders", PROJECT_1),
    Database("billing", PROJECT_2),
    Database("elsewhere", FOREIGN_PROJECT),
]


def failing(grants, *entities):
    return FailingGrantSource(InMemoryGrantSource({ACTOR: grants}), entities)


async def test_is_organization_owner():
    owner = make_resolver([grant("org:owner:admin")])
    member = make_resolver([grant("org:role:admin")])
    foreign_owner = make_resolver([grant("org:owner:admin", ORG_B)])

    loaded = dict(is_loading=False, is_success=True)
    assert await is_organization_owner(owner) == OwnerCheckResult(is_owner=True, **loaded)
    assert await is_organization_owner(member) == OwnerCheckResult(is_owner=False, **loaded)
    assert await is_organization_owner(foreign_owner) == OwnerCheckResult(is_owner=False, **loaded)

    for resolver in (owner, member, foreign_owner):
        await resolver.aclose()


async def test_anonymous_owner_check_is_loading():
    resolver = make_resolver([grant("org:owner:admin")], actor_id=None)
    assert await is_organization_owner(resolver) == OwnerCheckResult(
        is_owner=False, is_loading=True, is_success=False
    )


async def test_owner_check_with_failed_pool_is_not_a_denial():
    resolver = make_resolver(source=failing([grant("org:owner:admin")], Entity.ORGANIZATION))
    result = await is_organization_owner(resolver)
    assert not result.is_owner
    assert not result.is_success
    assert not result.is_loading
    await resolver.aclose()


async def test_owner_check_blocked_without_organization():
    resolver = make_resolver([grant("org:owner:admin")], ctx=scope(organization_id=None))
    result = await is_organization_owner(resolver)
    assert result.blocked
    assert result.is_loading
    assert not result.is_success
    await resolver.aclose()


async def test_allowed_project_ids_uses_matching_grants():
    resolver = make_resolver([
        grant("project:settings:read", scope_id=PROJECT_1),
        grant("project:*:write", scope_id=PROJECT_2),
        grant("project:settings:write", scope_id=FOREIGN_PROJECT),
    ])
    read = await allowed_project_ids(resolver, "project:settings:read")
    assert read == FilterResult(items=[PROJECT_1], is_loading=False, is_success=True)
    write = await allowed_project_ids(resolver, "project:settings:write")
    assert write.items == [PROJECT_2]
    await resolver.aclose()


async def test_allowed_project_ids_with_failed_pool():
    resolver = make_resolver(
        source=failing([grant("project:settings:read", scope_id=PROJECT_1)], Entity.PROJECT)
    )
    result = await allowed_project_ids(resolver, "project:settings:read")
    assert result.items == []
    assert not result.is_success
    await resolver.aclose()


async def test_filter_by_attribute():
    resolver = make_resolver([grant("project:settings:read", scope_id=PROJECT_2)])
    result = await filter_by_permission(resolver, DATABASES, "project:settings:read")
    assert [db.name for db in result.items] == ["billing"]
    assert result.is_success
    await resolver.aclose()


async def test_filter_by_mapping_key_and_callable():
    resolver = make_resolver([grant("project:settings:read", scope_id=PROJECT_1)])
    rows = [{"id": PROJECT_1}, {"id": PROJECT_2}]
    result = await filter_by_permission(resolver, rows, "project:settings:read", key="id")
    assert result.items == [{"id": PROJECT_1}]

    ids = [PROJECT_1, PROJECT_2]
    result = await filter_by_permission(
        resolver, ids, "project:settings:read", key=lambda project_id: project_id
    )
    assert result.items == [PROJECT_1]
    await resolver.aclose()


async def test_owner_keeps_everything():
    resolver = make_resolver([grant("org:owner:admin")])
    result = await filter_by_permission(resolver, iter(DATABASES), "project:settings:write")
    assert result.items == DATABASES
    assert result.is_success
    await resolver.aclose()


async def test_owner_keeps_everything_when_project_pool_fails():
    resolver = make_resolver(source=failing([grant("org:owner:admin")], Entity.PROJECT))
    result = await filter_by_permission(resolver, DATABASES, "project:settings:write")
    assert result == FilterResult(items=DATABASES, is_loading=False, is_success=True)
    await resolver.aclose()


async def test_filter_with_failed_project_pool_is_not_a_denial():
    resolver = make_resolver(
        source=failing([grant("project:settings:read", scope_id=PROJECT_1)], Entity.PROJECT)
    )
    result = await filter_by_permission(resolver, DATABASES, "project:settings:read")
    assert result.items == []
    assert not result.is_success
    assert not result.is_loading
    await resolver.aclose()


async def test_filter_with_failed_organization_pool_is_not_a_success():
    resolver = make_resolver(
        source=failing([grant("project:settings:read", scope_id=PROJECT_1)], Entity.ORGANIZATION)
    )
    result = await filter_by_permission(resolver, DATABASES, "project:settings:read")
    assert [db.name for db in result.items] == ["orders"]
    assert not result.is_success
    await resolver.aclose()


async def test_filter_without_grants_is_a_loaded_empty_list():
    resolver = make_resolver([])
    result = await filter_by_permission(resolver, DATABASES, "project:settings:read")
    assert result == FilterResult(items=[], is_loading=False, is_success=True)
    await resolver.aclose()


async def test_filter_rejects_malformed_permission():
    resolver = make_resolver([])
    with pytest.raises(PermissionDecodeError):
        await filter_by_permission(resolver, DATABASES, "settings:read")
    await resolver.aclose()

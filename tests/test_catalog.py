from app.features.permissions.catalog import (
    ENTITY_ROLE_TYPES,
    KNOWN_PERMISSIONS,
    ROLE_TYPE_ENTITIES,
    is_known,
    known_permissions,
    validate_access_rights,
)
from app.features.permissions.codec import Entity, decode


def test_catalog_entries_belong_to_their_entity():
    for entity, raws in KNOWN_PERMISSIONS.items():
        assert all(p.entity == entity for p in known_permissions(entity))
        assert len(set(raws)) == len(raws)


def test_role_types_cover_every_entity():
    assert set(ROLE_TYPE_ENTITIES.values()) == set(Entity)
    assert ENTITY_ROLE_TYPES[Entity.ORGANIZATION] == "organization"


def test_is_known_with_wildcards():
    assert is_known(decode("branch:auth:admin"))
    assert is_known(decode("branch:*:read"))
    assert is_known(decode("project:*:*"))
    assert not is_known(decode("branch:billing:read"))
    assert not is_known(decode("env:projects:delete"))


def test_validate_access_rights():
    assert validate_access_rights("branch", ["branch:auth:admin", "branch:*:read"]) == []

    violations = validate_access_rights(
        "project",
        ["project:settings:read", "branch:auth:admin", "project:nothing:read", "bad"],
    )
    assert len(violations) == 3
    assert "'branch:auth:admin' does not belong to a project role" in violations
    assert "'project:nothing:read' matches no known permission" in violations


def test_validate_unknown_role_type():
    assert validate_access_rights("team", ["org:role:read"]) == ["unknown role_type 'team'"]

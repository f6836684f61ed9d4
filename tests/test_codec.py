import pytest

from app.features.permissions.codec import (
    Entity,
    Permission,
    PermissionDecodeError,
    coerce,
    decode,
    encode,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("branch:auth:admin", Permission(Entity.BRANCH, "auth", "admin")),
        ("org:projects:*", Permission(Entity.ORGANIZATION, "projects", "*")),
        ("env:*:read", Permission(Entity.ENVIRONMENT, "*", "read")),
        ("project:settings:write", Permission(Entity.PROJECT, "settings", "write")),
    ],
)
def test_decode(raw, expected):
    assert decode(raw) == expected
    assert encode(decode(raw)) == raw


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "branch",
        "branch:auth",
        "branch:auth:admin:extra",
        "branch::admin",
        "branch:auth:",
        "team:auth:admin",
        "*:auth:admin",
        "organization:role:admin",
    ],
)
def test_decode_rejects_malformed(raw):
    with pytest.raises(PermissionDecodeError) as exc_info:
        decode(raw)
    assert exc_info.value.raw == raw


def test_decode_error_is_value_error():
    with pytest.raises(ValueError):
        decode("nope")


def test_decode_rejects_non_string():
    with pytest.raises(PermissionDecodeError, match="expected a string"):
        decode(None)  # type: ignore[arg-type]


def test_permission_validates_fields():
    with pytest.raises(ValueError, match="entity"):
        Permission("team", "auth", "admin")  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="resource"):
        Permission(Entity.BRANCH, "", "admin")
    with pytest.raises(ValueError, match="action"):
        Permission(Entity.BRANCH, "auth", "a:b")


def test_permission_accepts_entity_token():
    permission = Permission("org", "role", "admin")  # type: ignore[arg-type]
    assert permission.entity is Entity.ORGANIZATION
    assert str(permission) == "org:role:admin"


def test_coerce():
    permission = Permission(Entity.PROJECT, "settings", "read")
    assert coerce(permission) is permission
    assert coerce("project:settings:read") == permission
    with pytest.raises(PermissionDecodeError):
        coerce("project:settings")

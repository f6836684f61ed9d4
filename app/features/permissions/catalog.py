"""
Known permissions per role type.

Dashboard controls are gated on these strings. Roles may also carry
wildcards (``branch:*:read``) as long as the wildcard covers at least one
known permission of the role's entity.
"""
from __future__ import annotations

from app.features.permissions.codec import (
    Entity,
    Permission,
    PermissionDecodeError,
    decode,
)
from app.features.permissions.decision import matches


ROLE_TYPE_ENTITIES = {
    "organization": Entity.ORGANIZATION,
    "environment": Entity.ENVIRONMENT,
    "project": Entity.PROJECT,
    "branch": Entity.BRANCH,
}

ENTITY_ROLE_TYPES = {entity: role_type for role_type, entity in ROLE_TYPE_ENTITIES.items()}


KNOWN_PERMISSIONS: dict[Entity, tuple[str, ...]] = {
    Entity.ORGANIZATION: (
        "org:owner:admin",
        "org:auth:read",
        "org:auth:admin",
        "org:user:admin",
        "org:role:read",
        "org:role:admin",
        "org:metering:read",
        "org:projects:read",
        "org:projects:create",
        "org:backups:read",
        "org:backups:admin",
        "org:settings:read",
        "org:settings:admin",
    ),
    Entity.ENVIRONMENT: (
        "env:projects:read",
        "env:projects:create",
        "env:projects:write",
        "env:projects:pause",
        "env:branches:create",
    ),
    Entity.PROJECT: (
        "project:settings:read",
        "project:settings:write",
        "project:branches:read",
        "project:branches:create",
        "project:branches:stop",
        "project:branches:delete",
    ),
    Entity.BRANCH: (
        "branch:auth:read",
        "branch:auth:admin",
        "branch:settings:read",
        "branch:settings:admin",
        "branch:logging:read",
        "branch:edge:admin",
        "branch:rls:read",
        "branch:rls:admin",
        "branch:backups:read",
        "branch:backups:admin",
    ),
}


def known_permissions(entity: Entity) -> tuple[Permission, ...]:
    return tuple(decode(raw) for raw in KNOWN_PERMISSIONS[entity])


def is_known(permission: Permission) -> bool:
    """True if ``permission`` is, or by wildcard covers, a catalog entry."""
    return any(
        matches(permission, candidate)
        for candidate in known_permissions(permission.entity)
    )


def validate_access_rights(role_type: str, access_rights: list[str]) -> list[str]:
    """
    Check a role's access rights against its role type.

    Returns:
        List of human readable violations; empty when the role is valid.
    """
    entity = ROLE_TYPE_ENTITIES.get(role_type)
    if entity is None:
        return [f"unknown role_type '{role_type}'"]

    violations = []
    for raw in access_rights:
        try:
            permission = decode(raw)
        except PermissionDecodeError as e:
            violations.append(str(e))
            continue
        if permission.entity != entity:
            violations.append(f"'{raw}' does not belong to a {role_type} role")
        elif not is_known(permission):
            violations.append(f"'{raw}' matches no known permission")
    return violations

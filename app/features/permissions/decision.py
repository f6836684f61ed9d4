"""
Permission decision.

Pure and order independent: the same (required, grants) always gives the
same answer.
"""
from __future__ import annotations

from typing import Iterable, Optional

from app.features.permissions.codec import WILDCARD, Entity, Permission
from app.features.permissions.grants import Grant


# Organization owners pass every check, at every entity level.
SUPERUSER_PERMISSION = Permission(Entity.ORGANIZATION, "owner", "admin")


def is_superuser_grant(grant: Grant, organization_id: Optional[str] = None) -> bool:
    if grant.permission != SUPERUSER_PERMISSION:
        return False
    return organization_id is None or grant.organization_id == organization_id


def matches(granted: Permission, required: Permission) -> bool:
    """Wildcards apply to resource and action only, never to entity."""
    if granted.entity != required.entity:
        return False
    if granted.resource != WILDCARD and granted.resource != required.resource:
        return False
    if granted.action != WILDCARD and granted.action != required.action:
        return False
    return True


def has_permission(
    required: Permission,
    grants: Iterable[Grant],
    organization_id: Optional[str] = None,
) -> bool:
    """
    Return True if any grant satisfies ``required``.

    When ``organization_id`` is given, a superuser grant only counts for
    that organization.
    """
    for grant in grants:
        if is_superuser_grant(grant, organization_id):
            return True
        if matches(grant.permission, required):
            return True
    return False

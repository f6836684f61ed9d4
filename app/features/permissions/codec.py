"""
Permission codec.

A permission is written ``entity:resource:action``, e.g. ``branch:auth:admin``
or ``org:projects:*``. ``decode`` is strict: anything that is not exactly
three non-empty segments with a known entity raises PermissionDecodeError.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass


WILDCARD = "*"
SEPARATOR = ":"


class Entity(str, enum.Enum):
    """Scope level a permission applies to."""
    ORGANIZATION = "org"
    ENVIRONMENT = "env"
    PROJECT = "project"
    BRANCH = "branch"


class PermissionDecodeError(ValueError):
    """Raised when a permission string is not ``entity:resource:action``."""

    def __init__(self, raw: object, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Invalid permission {raw!r}: {reason}")


@dataclass(frozen=True)
class Permission:
    entity: Entity
    resource: str
    action: str

    def __post_init__(self):
        try:
            object.__setattr__(self, "entity", Entity(self.entity))
        except ValueError:
            raise ValueError(
                f"entity '{self.entity}' not valid. "
                f"Must be one of: {sorted(e.value for e in Entity)}"
            ) from None

        for field_name in ("resource", "action"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"{field_name} must be a non-empty string.")
            if SEPARATOR in value:
                raise ValueError(f"{field_name} must not contain '{SEPARATOR}'.")

    def __str__(self) -> str:
        return encode(self)


def encode(permission: Permission) -> str:
    return SEPARATOR.join((permission.entity.value, permission.resource, permission.action))


def decode(raw: str) -> Permission:
    if not isinstance(raw, str):
        raise PermissionDecodeError(raw, "expected a string")

    parts = raw.split(SEPARATOR)
    if len(parts) != 3:
        raise PermissionDecodeError(raw, "expected entity:resource:action")

    entity, resource, action = parts
    if not resource or not action:
        raise PermissionDecodeError(raw, "resource and action must be non-empty")

    try:
        return Permission(Entity(entity), resource, action)
    except ValueError:
        raise PermissionDecodeError(raw, f"unknown entity '{entity}'") from None


def coerce(value: Permission | str) -> Permission:
    """Accept either a Permission or its string form."""
    if isinstance(value, Permission):
        return value
    return decode(value)

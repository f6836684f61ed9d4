"""
Grants and scope context.

A Grant is a permission the actor holds, bound to one concrete scope
instance. The binding field must agree with the permission's entity:

    org      -> no binding beyond organization_id
    env      -> env_type
    project  -> project_id
    branch   -> branch_id
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.features.permissions.codec import Entity, Permission


BINDING_FIELDS = {
    Entity.ENVIRONMENT: "env_type",
    Entity.PROJECT: "project_id",
    Entity.BRANCH: "branch_id",
}


class GrantScopeError(ValueError):
    """Raised when a grant's scope binding does not match its entity."""


@dataclass(frozen=True)
class Grant:
    permission: Permission
    organization_id: str
    env_type: Optional[str] = None
    project_id: Optional[str] = None
    branch_id: Optional[str] = None

    def __post_init__(self):
        if not self.organization_id or not isinstance(self.organization_id, str):
            raise GrantScopeError("organization_id must be a non-empty string.")

        expected = BINDING_FIELDS.get(self.permission.entity)
        for field_name in BINDING_FIELDS.values():
            value = getattr(self, field_name)
            if field_name == expected:
                if not value or not isinstance(value, str):
                    raise GrantScopeError(
                        f"{field_name} is required for "
                        f"'{self.permission.entity.value}' grants."
                    )
            elif value is not None:
                raise GrantScopeError(
                    f"{field_name} must be None for "
                    f"'{self.permission.entity.value}' grants."
                )

    @property
    def entity(self) -> Entity:
        return self.permission.entity

    @property
    def scope_id(self) -> Optional[str]:
        """The env_type/project_id/branch_id this grant is bound to."""
        field_name = BINDING_FIELDS.get(self.entity)
        return getattr(self, field_name) if field_name else None

    def sort_key(self) -> tuple[str, str, str, str, str]:
        return (
            self.organization_id,
            self.entity.value,
            self.scope_id or "",
            self.permission.resource,
            self.permission.action,
        )


@dataclass(frozen=True)
class ScopeContext:
    """
    The organization/project/branch a decision is evaluated under.

    Passed explicitly into every resolver call. Hashable, so it doubles as
    the cache key for pool fetches.
    """
    organization_id: Optional[str] = None
    project_id: Optional[str] = None
    branch_id: Optional[str] = None

    def has(self, *fields: str) -> bool:
        return all(getattr(self, name) for name in fields)

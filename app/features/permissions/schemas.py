"""
Pydantic schemas for the permission API.

GrantRecord is the wire shape of a grant; the other models are request and
response bodies of the routes.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from app.features.permissions.codec import Entity, Permission
from app.features.permissions.grants import Grant, ScopeContext


# ============================================================================
# Grant Schemas
# ============================================================================

class PermissionSchema(BaseModel):
    """Structured permission."""
    entity: Entity
    resource: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)

    def to_permission(self) -> Permission:
        return Permission(self.entity, self.resource, self.action)


class GrantRecord(BaseModel):
    """Grant as returned by the permissions store."""
    organization_id: str
    env_type: Optional[str] = None
    project_id: Optional[str] = None
    branch_id: Optional[str] = None
    permission: PermissionSchema

    @classmethod
    def from_grant(cls, grant: Grant) -> "GrantRecord":
        return cls(
            organization_id=grant.organization_id,
            env_type=grant.env_type,
            project_id=grant.project_id,
            branch_id=grant.branch_id,
            permission=PermissionSchema(
                entity=grant.entity,
                resource=grant.permission.resource,
                action=grant.permission.action,
            ),
        )

    def to_grant(self) -> Grant:
        return Grant(
            permission=self.permission.to_permission(),
            organization_id=self.organization_id,
            env_type=self.env_type,
            project_id=self.project_id,
            branch_id=self.branch_id,
        )


class ScopeSchema(BaseModel):
    """Scope context fields shared by request bodies."""
    organization_id: Optional[str] = Field(None, description="Current organization ID")
    project_id: Optional[str] = Field(None, description="Current project ID")
    branch_id: Optional[str] = Field(None, description="Current branch ID")

    def to_scope(self) -> ScopeContext:
        return ScopeContext(
            organization_id=self.organization_id,
            project_id=self.project_id,
            branch_id=self.branch_id,
        )


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(ScopeSchema):
    """Ask whether the caller may perform ``permission`` in the given scope."""
    permission: Optional[str] = Field(
        None, description="entity:resource:action; omitted means no requirement"
    )


class PermissionCheckResponse(BaseModel):
    can: bool
    is_loading: bool
    is_success: bool
    blocked: bool = False


class OwnerCheckResponse(BaseModel):
    organization_id: str
    is_owner: bool


class PermissionFilterRequest(ScopeSchema):
    """Filter candidate project ids down to those the caller may act on."""
    permission: str = Field(..., description="entity:resource:action")
    ids: List[str] = Field(default_factory=list)


class PermissionFilterResponse(BaseModel):
    permission: str
    ids: List[str]


class PoolResponse(BaseModel):
    status: str
    is_loading: bool
    is_success: bool
    grants: List[GrantRecord] = []


class ScopedGrantsResponse(BaseModel):
    """The caller's grants per pool for a scope."""
    organization_id: str
    project_id: Optional[str] = None
    pools: Dict[str, PoolResponse]


class PermissionCatalogResponse(BaseModel):
    """Known permission strings keyed by role type."""
    role_types: Dict[str, List[str]]

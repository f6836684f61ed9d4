"""
Pydantic schemas for organization directory responses.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class ProjectResponse(BaseModel):
    """Schema for project response."""
    id: str
    organization_id: str
    name: str
    env_type: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BranchResponse(BaseModel):
    """Schema for branch response."""
    id: str
    project_id: str
    name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

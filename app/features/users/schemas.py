"""
Pydantic schemas for user responses.
"""
from datetime import datetime
from pydantic import BaseModel


class UserResponse(BaseModel):
    """Local profile of an authenticated user."""
    id: str
    email: str
    name: str
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

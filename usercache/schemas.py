from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


# --- User ---

class UserBase(BaseModel):
    username: str = Field(max_length=50)
    email: str = Field(max_length=255)
    display_name: str | None = None
    bio: str | None = None


class UserCreate(UserBase):
    pass


class UserEdit(UserBase):
    """Request body for a full-record edit; the id comes from the path."""


class UserUpdate(UserBase):
    id: int


class UserResponse(UserBase):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Aggregates ---

class UserCountResponse(BaseModel):
    count: int


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_users: int
    cache_info: dict = {}

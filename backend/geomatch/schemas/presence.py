"""
Pydantic schemas for presence events and responses.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from geomatch.models.enums import Role


class SelectRolePayload(BaseModel):
    role: Role
    name: str = Field(..., max_length=100)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value


class LocationUpdatePayload(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)


class GetLocationsPayload(BaseModel):
    role: Optional[Role] = None


class IdentityResponse(BaseModel):
    id: str = Field(validation_alias="connection_id")
    name: str
    role: Role
    latitude: Optional[float]
    longitude: Optional[float]
    accuracy: Optional[float]
    last_seen: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}

"""
Pydantic schemas for booking request events and responses.
"""

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from geomatch.models.enums import RequestStatus


class CreateRequestPayload(BaseModel):
    # workerId is the field name older clients send
    target_id: str = Field(..., min_length=1, validation_alias=AliasChoices("targetId", "workerId", "target_id"))


class RequestActionPayload(BaseModel):
    request_id: int = Field(..., gt=0, validation_alias=AliasChoices("requestId", "request_id"))


class BookingRequestResponse(BaseModel):
    id: int
    requester_id: str
    requester_role: str
    target_id: str
    acceptor_id: Optional[str]
    status: RequestStatus
    cancel_reason: Optional[str]
    created_at: datetime
    accepted_at: Optional[datetime]
    closed_at: Optional[datetime]

    model_config = {"from_attributes": True}

"""
Pydantic schemas for the SharePlate API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FoodCreate(BaseModel):
    """A donor's listing. Donor attributes are free-form and unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    food_name: Any = None
    food_image: Any = None
    food_quantity: Any = None
    pickup_location: Any = None
    expired_date: Any = None
    additional_notes: Any = None
    donator_name: Any = None
    donator_image: Any = None
    featured: bool = False


class FoodUpdate(BaseModel):
    """Partial update; only the keys that were sent are applied."""

    model_config = ConfigDict(extra="allow")

    food_name: Any = None
    food_image: Any = None
    food_quantity: Any = None
    pickup_location: Any = None
    expired_date: Any = None
    additional_notes: Any = None
    featured: Optional[bool] = None


class RequestCreate(BaseModel):
    food_id: str = Field(..., min_length=1, max_length=64)
    user_name: str = Field(..., min_length=1, max_length=256)


class RequestStatusUpdate(BaseModel):
    status: Optional[str] = None


class FoodCreatedResponse(BaseModel):
    acknowledged: bool = True
    insertedId: str


class RequestCreatedResponse(BaseModel):
    message: str
    requestId: str


class MessageResponse(BaseModel):
    message: str


class FoodUpdatedResponse(BaseModel):
    message: str
    modifiedCount: int


class HealthResponse(BaseModel):
    status: str
    database: str

"""Service option schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel

from ..services.schemas import PricingFields


class ServiceOptionCreate(PricingFields):
    """Schema for adding an option to a service"""

    name: str
    description: Optional[str] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None


class ServiceOptionUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    price: Optional[float] = None
    time_varies: Optional[bool] = None
    price_varies: Optional[bool] = None
    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None


class ServiceOptionResponse(BaseModel):
    id: str
    service_id: str
    name: str
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    price: Optional[float] = None
    time_varies: Optional[bool] = False
    price_varies: Optional[bool] = False
    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    display_order: Optional[int] = 0
    is_active: Optional[bool] = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    price_display: Optional[str] = None
    duration_display: Optional[str] = None

    class Config:
        extra = "allow"


class ReorderRequest(BaseModel):
    """Option ids in their new display order"""

    optionIds: list[str]

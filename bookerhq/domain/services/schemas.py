"""Service domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel


class PricingFields(BaseModel):
    """Price and duration shape shared by services and service options"""

    duration_minutes: Optional[int] = None
    price: Optional[float] = None
    time_varies: bool = False
    price_varies: bool = False
    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None


class ServiceCreate(PricingFields):
    """Schema for creating a new service"""

    name: str
    description: Optional[str] = None
    is_active: Optional[bool] = None
    has_options: bool = False


class ServiceUpdate(BaseModel):
    """Schema for updating a service; only the fields sent are changed"""

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
    has_options: Optional[bool] = None


class ServiceResponse(BaseModel):
    """Service row, or a row of one of the services-with-options views"""

    id: str
    name: str
    description: Optional[str] = None
    stylist_id: Optional[str] = None
    tenant_id: Optional[str] = None
    duration_minutes: Optional[int] = None
    price: Optional[float] = None
    time_varies: Optional[bool] = False
    price_varies: Optional[bool] = False
    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    is_active: Optional[bool] = True
    has_options: Optional[bool] = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    price_display: Optional[str] = None
    duration_display: Optional[str] = None

    class Config:
        extra = "allow"


class ServiceDeleteResponse(BaseModel):
    message: str

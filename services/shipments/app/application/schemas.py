from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_serializer
from typing import Optional, List
from app.domain.models import ShipmentStatus

def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() + "Z"

class ShipmentCreate(BaseModel):
    # Blank recipient fields fail min_length once stripped
    model_config = ConfigDict(str_strip_whitespace=True)

    order_id: int
    recipient_name: str = Field(min_length=1, max_length=100)
    recipient_address: str = Field(min_length=1, max_length=255)
    recipient_city: str = Field(min_length=1, max_length=100)
    recipient_postal_code: str = Field(min_length=1, max_length=20)
    recipient_country: str = Field(min_length=1, max_length=100)
    recipient_phone: Optional[str] = Field(default=None, max_length=20)
    weight_kg: float = Field(default=0.0, ge=0)
    notes: Optional[str] = None

class ShipmentStatusUpdate(BaseModel):
    status: ShipmentStatus
    location: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None

class ShipmentCancel(BaseModel):
    reason: str = ""

class ShipmentHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: ShipmentStatus
    location: Optional[str] = None
    notes: Optional[str] = None
    timestamp: datetime

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return isoformat_utc(value)

class ShipmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    tracking_number: str
    status: ShipmentStatus
    recipient_name: str
    recipient_address: str
    recipient_city: str
    recipient_postal_code: str
    recipient_country: str
    recipient_phone: Optional[str] = None
    weight_kg: float
    current_location: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    history: List[ShipmentHistoryRead] = []

    @field_serializer("estimated_delivery", "created_at", "updated_at")
    def serialize_dates(self, value: Optional[datetime]) -> Optional[str]:
        return isoformat_utc(value)

class ShipmentResponse(BaseModel):
    """Envelope for unary operations, ``shipment`` is only set on success."""
    success: bool
    message: str = ""
    shipment: Optional[ShipmentRead] = None

class ShipmentListResponse(BaseModel):
    success: bool
    message: str = ""
    items: List[ShipmentRead] = []
    total_count: int = 0
    page: int = 0
    page_size: int = 0

class ShipmentHistoryResponse(BaseModel):
    success: bool
    message: str = ""
    shipment_id: Optional[int] = None
    history: List[ShipmentHistoryRead] = []

class ShipmentUpdateEvent(BaseModel):
    """One line of the live tracking stream."""
    shipment_id: int
    status: ShipmentStatus
    location: Optional[str] = None
    timestamp: str
    notes: Optional[str] = None

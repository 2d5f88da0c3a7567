from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, ForeignKey, DateTime, Float, Text
from sqlalchemy import Enum as SAEnum

class Base(DeclarativeBase):
    pass

class ShipmentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"

def _status_column():
    return SAEnum(ShipmentStatus, native_enum=False, length=30, validate_strings=True)

class Shipment(Base):
    __tablename__ = "shipments"
    id: Mapped[int] = mapped_column(primary_key=True)
    # Order reference only, the orders table lives in another service
    order_id: Mapped[int] = mapped_column(index=True)
    tracking_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    status: Mapped[ShipmentStatus] = mapped_column(_status_column(), index=True)
    recipient_name: Mapped[str] = mapped_column(String(100))
    recipient_address: Mapped[str] = mapped_column(String(255))
    recipient_city: Mapped[str] = mapped_column(String(100))
    recipient_postal_code: Mapped[str] = mapped_column(String(20))
    recipient_country: Mapped[str] = mapped_column(String(100))
    recipient_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    weight_kg: Mapped[float] = mapped_column(Float, default=0.0)
    current_location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)
    # Newest first, the record view order
    history: Mapped[list["ShipmentHistory"]] = relationship(
        "ShipmentHistory",
        back_populates="shipment",
        cascade="all, delete-orphan",
        order_by=lambda: [ShipmentHistory.timestamp.desc(), ShipmentHistory.id.desc()],
    )

class ShipmentHistory(Base):
    __tablename__ = "shipment_history"
    id: Mapped[int] = mapped_column(primary_key=True)
    shipment_id: Mapped[int] = mapped_column(ForeignKey("shipments.id", ondelete="CASCADE"), index=True)
    status: Mapped[ShipmentStatus] = mapped_column(_status_column())
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime)
    shipment: Mapped[Shipment] = relationship("Shipment", back_populates="history")

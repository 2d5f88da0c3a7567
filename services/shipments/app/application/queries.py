from typing import List, Optional
from sqlalchemy.orm import Session
from app.domain.models import Shipment, ShipmentHistory, ShipmentStatus
from app.domain.exceptions import ShipmentNotFound
from app.infrastructure.repository import ShipmentStore
from .schemas import ShipmentUpdateEvent, isoformat_utc

class ShipmentQueryService:
    """Read-only lookups. Histories come back newest first."""

    def __init__(self, db: Session):
        self.db = db
        self.store = ShipmentStore(db)

    def get_by_id(self, shipment_id: int) -> Shipment:
        shipment = self.store.get_by_id(shipment_id)
        if not shipment:
            raise ShipmentNotFound(f"Shipment with ID {shipment_id} not found")
        return shipment

    def get_by_order_id(self, order_id: int) -> Shipment:
        shipment = self.store.get_by_order_id(order_id)
        if not shipment:
            raise ShipmentNotFound(f"Shipment for order {order_id} not found")
        return shipment

    def get_by_tracking_number(self, tracking_number: str) -> Shipment:
        shipment = self.store.get_by_tracking_number(tracking_number)
        if not shipment:
            raise ShipmentNotFound(f"Shipment with tracking number {tracking_number} not found")
        return shipment

    def list(self, page: int, page_size: int, status: Optional[ShipmentStatus] = None) -> List[Shipment]:
        return self.store.list(offset=page * page_size, limit=page_size, status=status)

    def count(self, status: Optional[ShipmentStatus] = None) -> int:
        return self.store.count(status)

    def history(self, shipment_id: int) -> List[ShipmentHistory]:
        if not self.store.exists(shipment_id):
            raise ShipmentNotFound(f"Shipment with ID {shipment_id} not found")
        return self.store.history(shipment_id)

    def tracking_snapshot(self, shipment_id: int) -> Optional[ShipmentUpdateEvent]:
        """Current tracking state taken from the latest history entry, None if the shipment is gone."""
        shipment = self.store.get_by_id(shipment_id, with_history=False)
        if shipment is None:
            return None
        latest = self.store.latest_history(shipment_id)
        if latest is None:
            return ShipmentUpdateEvent(
                shipment_id=shipment.id,
                status=shipment.status,
                location=shipment.current_location,
                timestamp=isoformat_utc(shipment.updated_at),
                notes=shipment.notes,
            )
        return ShipmentUpdateEvent(
            shipment_id=shipment.id,
            status=latest.status,
            location=shipment.current_location,
            timestamp=isoformat_utc(latest.timestamp),
            notes=latest.notes,
        )

def read_tracking_snapshot(session_factory, shipment_id: int) -> Optional[ShipmentUpdateEvent]:
    """Blocking read used by the update stream, one short session per call."""
    with session_factory() as db:
        return ShipmentQueryService(db).tracking_snapshot(shipment_id)

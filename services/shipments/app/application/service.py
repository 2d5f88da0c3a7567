from datetime import timedelta
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from shared.core import get_logger, set_request_context, shipment_context
from app.core_settings import get_settings
from app.domain.models import Shipment, ShipmentHistory, ShipmentStatus
from app.domain.lifecycle import check_transition, generate_tracking_number
from app.domain.exceptions import ShipmentNotFound, TransitionRejected, TrackingNumberConflict
from app.infrastructure.repository import ShipmentStore
from .schemas import ShipmentCreate

logger = get_logger(__name__)

def _is_tracking_number_conflict(exc: IntegrityError) -> bool:
    return "tracking_number" in str(exc.orig).lower()

class ShipmentService:
    """Applies shipment lifecycle changes; every status change is committed with its history row."""

    def __init__(self, db: Session, strict_transitions: Optional[bool] = None):
        self.db = db
        self.store = ShipmentStore(db)
        self.settings = get_settings()
        self.strict_transitions = (
            self.settings.STRICT_TRANSITIONS if strict_transitions is None else strict_transitions
        )

    def _get_for_update(self, shipment_id: int) -> Shipment:
        # Row lock held until commit or rollback, concurrent writers queue behind it
        shipment = self.store.get_by_id(shipment_id, for_update=True, with_history=False)
        if not shipment:
            raise ShipmentNotFound(f"Shipment with ID {shipment_id} not found")
        return shipment

    def _build(self, data: ShipmentCreate) -> Shipment:
        return Shipment(
            order_id=data.order_id,
            tracking_number=generate_tracking_number(self.settings.TRACKING_NUMBER_PREFIX),
            status=ShipmentStatus.PENDING,
            recipient_name=data.recipient_name,
            recipient_address=data.recipient_address,
            recipient_city=data.recipient_city,
            recipient_postal_code=data.recipient_postal_code,
            recipient_country=data.recipient_country,
            recipient_phone=data.recipient_phone or None,
            weight_kg=data.weight_kg,
            current_location=self.settings.DEFAULT_LOCATION,
            notes=data.notes,
        )

    def create(self, data: ShipmentCreate) -> Shipment:
        with shipment_context():
            return self._create(data)

    def _create(self, data: ShipmentCreate) -> Shipment:
        max_attempts = max(1, self.settings.TRACKING_NUMBER_MAX_ATTEMPTS)
        for attempt in range(1, max_attempts + 1):
            shipment = self._build(data)
            try:
                self.store.create(shipment)
                shipment.estimated_delivery = shipment.created_at + timedelta(
                    days=self.settings.ESTIMATED_DELIVERY_DAYS
                )
                self.store.append_history(ShipmentHistory(
                    shipment_id=shipment.id,
                    status=ShipmentStatus.PENDING,
                    location=self.settings.DEFAULT_LOCATION,
                    notes="Shipment created",
                ))
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                if not _is_tracking_number_conflict(e):
                    raise
                logger.warning(
                    f"Tracking number collision on attempt {attempt}/{max_attempts}",
                    extra={'extra_fields': {'tracking_number': shipment.tracking_number}}
                )
                continue
            except Exception:
                self.db.rollback()
                raise

            set_request_context(shipment_id=shipment.id)
            logger.info(
                f"Shipment created with tracking number: {shipment.tracking_number}",
                extra={'extra_fields': {'order_id': data.order_id, 'shipment_id': shipment.id}}
            )
            return self.store.get_by_id(shipment.id)

        raise TrackingNumberConflict(
            f"Could not allocate a unique tracking number after {max_attempts} attempts"
        )

    def update_status(
        self,
        shipment_id: int,
        status: ShipmentStatus,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Shipment:
        with shipment_context(shipment_id):
            try:
                shipment = self._get_for_update(shipment_id)
                check_transition(shipment.status, status, strict=self.strict_transitions)

                previous = shipment.status
                shipment.status = status
                # Location is sticky unless a new one is supplied
                if location:
                    shipment.current_location = location
                self.store.update(shipment)
                self.store.append_history(ShipmentHistory(
                    shipment_id=shipment.id,
                    status=status,
                    location=location or shipment.current_location,
                    notes=notes,
                ))
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

            logger.info(f"Shipment {shipment_id} status updated: {previous.value} -> {status.value}")
            return self.store.get_by_id(shipment_id)

    def cancel(self, shipment_id: int, reason: str = "") -> Shipment:
        with shipment_context(shipment_id):
            try:
                shipment = self._get_for_update(shipment_id)
                if shipment.status == ShipmentStatus.DELIVERED:
                    raise TransitionRejected("Cannot cancel a delivered shipment")
                if shipment.status == ShipmentStatus.CANCELLED:
                    raise TransitionRejected("Cannot cancel a cancelled shipment")
                if self.strict_transitions:
                    check_transition(shipment.status, ShipmentStatus.CANCELLED, strict=True)

                shipment.status = ShipmentStatus.CANCELLED
                self.store.update(shipment)
                self.store.append_history(ShipmentHistory(
                    shipment_id=shipment.id,
                    status=ShipmentStatus.CANCELLED,
                    notes=f"Cancelled: {reason}",
                ))
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

            logger.info(f"Shipment {shipment_id} cancelled", extra={'extra_fields': {'reason': reason}})
            return self.store.get_by_id(shipment_id)

    def delete(self, shipment_id: int) -> None:
        with shipment_context(shipment_id):
            try:
                shipment = self._get_for_update(shipment_id)
                self.store.delete(shipment)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            logger.info(f"Shipment {shipment_id} deleted with its history")

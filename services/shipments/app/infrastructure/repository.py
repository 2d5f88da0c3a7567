"""Shipment store: SQLAlchemy persistence for shipments and their history ledger.

The store only adds and flushes. Committing (and rolling back) is left to the
caller so a shipment write and its history row share one transaction.
"""

import logging
from typing import Optional, List
from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload
from app.domain.models import Shipment, ShipmentHistory, ShipmentStatus
from app.domain.lifecycle import utcnow

logger = logging.getLogger(__name__)

class ShipmentStore:
    def __init__(self, db: Session):
        self.db = db

    def _with_history(self):
        return (
            select(Shipment)
            .options(selectinload(Shipment.history))
            .execution_options(populate_existing=True)
        )

    def create(self, shipment: Shipment) -> Shipment:
        now = utcnow()
        shipment.created_at = now
        shipment.updated_at = now
        self.db.add(shipment)
        self.db.flush()  # assign id, surfaces unique violations
        logger.debug(f"Shipment row created with id {shipment.id}")
        return shipment

    def get_by_id(
        self, shipment_id: int, for_update: bool = False, with_history: bool = True
    ) -> Optional[Shipment]:
        """
        ``for_update`` locks the row until the caller commits, so mutations
        re-check the current status under the lock. Ignored by SQLite.
        """
        if with_history:
            stmt = self._with_history()
        else:
            stmt = select(Shipment).execution_options(populate_existing=True)
        stmt = stmt.where(Shipment.id == shipment_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def exists(self, shipment_id: int) -> bool:
        stmt = select(Shipment.id).where(Shipment.id == shipment_id)
        return self.db.execute(stmt).first() is not None

    def get_by_order_id(self, order_id: int) -> Optional[Shipment]:
        # One order may be shipped more than once, the latest shipment wins
        stmt = (
            self._with_history()
            .where(Shipment.order_id == order_id)
            .order_by(Shipment.created_at.desc(), Shipment.id.desc())
        )
        return self.db.execute(stmt).scalars().first()

    def get_by_tracking_number(self, tracking_number: str) -> Optional[Shipment]:
        stmt = self._with_history().where(Shipment.tracking_number == tracking_number)
        return self.db.execute(stmt).scalars().first()

    def list(self, offset: int, limit: int, status: Optional[ShipmentStatus] = None) -> List[Shipment]:
        stmt = self._with_history()
        if status is not None:
            stmt = stmt.where(Shipment.status == status)
        stmt = stmt.order_by(Shipment.created_at.desc(), Shipment.id.desc()).offset(offset).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def count(self, status: Optional[ShipmentStatus] = None) -> int:
        stmt = select(func.count(Shipment.id))
        if status is not None:
            stmt = stmt.where(Shipment.status == status)
        return self.db.execute(stmt).scalar_one()

    def update(self, shipment: Shipment) -> Shipment:
        now = utcnow()
        shipment.updated_at = max(now, shipment.updated_at) if shipment.updated_at else now
        self.db.flush()
        return shipment

    def append_history(self, entry: ShipmentHistory) -> ShipmentHistory:
        now = utcnow()
        latest = self.latest_history(entry.shipment_id)
        # The ledger is ordered by timestamp, keep it non-decreasing
        entry.timestamp = max(now, latest.timestamp) if latest is not None else now
        self.db.add(entry)
        self.db.flush()
        return entry

    def history(self, shipment_id: int) -> List[ShipmentHistory]:
        stmt = (
            select(ShipmentHistory)
            .where(ShipmentHistory.shipment_id == shipment_id)
            .order_by(ShipmentHistory.timestamp.desc(), ShipmentHistory.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def latest_history(self, shipment_id: int) -> Optional[ShipmentHistory]:
        stmt = (
            select(ShipmentHistory)
            .where(ShipmentHistory.shipment_id == shipment_id)
            .order_by(ShipmentHistory.timestamp.desc(), ShipmentHistory.id.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def delete(self, shipment: Shipment) -> None:
        self.db.delete(shipment)
        self.db.flush()

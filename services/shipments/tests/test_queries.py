import pytest
from sqlalchemy import inspect

from app.application.queries import ShipmentQueryService, read_tracking_snapshot
from app.application.service import ShipmentService
from app.domain.exceptions import ShipmentNotFound
from app.domain.models import Shipment, ShipmentStatus
from app.infrastructure.db import SessionLocal

@pytest.fixture
def seeded(db, shipment_data):
    service = ShipmentService(db)
    shipments = [service.create(shipment_data(order_id=100 + i)) for i in range(5)]
    service.update_status(shipments[1].id, ShipmentStatus.SHIPPED, location="Hub A")
    service.update_status(shipments[3].id, ShipmentStatus.SHIPPED, location="Hub B")
    return shipments

def test_list_is_newest_first_and_paginated(db, seeded):
    queries = ShipmentQueryService(db)
    newest_first = [s.id for s in reversed(seeded)]

    page0 = queries.list(page=0, page_size=2)
    page1 = queries.list(page=1, page_size=2)
    page2 = queries.list(page=2, page_size=2)

    assert [s.id for s in page0] == newest_first[:2]
    assert [s.id for s in page1] == newest_first[2:4]
    assert [s.id for s in page2] == newest_first[4:]
    assert queries.list(page=3, page_size=2) == []

def test_count_matches_sum_over_pages(db, seeded):
    queries = ShipmentQueryService(db)
    for status in (None, ShipmentStatus.SHIPPED, ShipmentStatus.PENDING, ShipmentStatus.DELIVERED):
        total = sum(len(queries.list(page, 2, status)) for page in range(5))
        assert queries.count(status) == total
    assert queries.count() == 5
    assert queries.count(ShipmentStatus.SHIPPED) == 2

def test_list_with_status_filter(db, seeded):
    shipped = ShipmentQueryService(db).list(0, 10, ShipmentStatus.SHIPPED)
    assert [s.id for s in shipped] == [seeded[3].id, seeded[1].id]
    assert all(s.status == ShipmentStatus.SHIPPED for s in shipped)

def test_lookups_by_id_order_and_tracking_number(db, seeded):
    queries = ShipmentQueryService(db)
    target = seeded[2]

    assert queries.get_by_id(target.id).tracking_number == target.tracking_number
    assert queries.get_by_order_id(target.order_id).id == target.id
    assert queries.get_by_tracking_number(target.tracking_number).id == target.id

    with pytest.raises(ShipmentNotFound):
        queries.get_by_id(12345)
    with pytest.raises(ShipmentNotFound):
        queries.get_by_order_id(12345)
    with pytest.raises(ShipmentNotFound):
        queries.get_by_tracking_number("SHP-NOPE")

def test_order_lookup_returns_latest_shipment(db, shipment_data):
    service = ShipmentService(db)
    service.create(shipment_data(order_id=7))
    latest = service.create(shipment_data(order_id=7))

    assert ShipmentQueryService(db).get_by_order_id(7).id == latest.id

def test_history_is_newest_first(db, shipment_data):
    service = ShipmentService(db)
    shipment = service.create(shipment_data())
    service.update_status(shipment.id, ShipmentStatus.PROCESSING)
    service.update_status(shipment.id, ShipmentStatus.SHIPPED)

    history = ShipmentQueryService(db).history(shipment.id)
    assert [h.status for h in history] == [
        ShipmentStatus.SHIPPED, ShipmentStatus.PROCESSING, ShipmentStatus.PENDING
    ]
    timestamps = [h.timestamp for h in history]
    assert timestamps == sorted(timestamps, reverse=True)

    with pytest.raises(ShipmentNotFound):
        ShipmentQueryService(db).history(999)

def test_tracking_snapshot_reflects_latest_entry(db, shipment_data):
    service = ShipmentService(db)
    shipment = service.create(shipment_data())
    service.update_status(shipment.id, ShipmentStatus.SHIPPED, location="Hub A", notes="On the truck")

    snapshot = read_tracking_snapshot(SessionLocal, shipment.id)
    assert snapshot.shipment_id == shipment.id
    assert snapshot.status == ShipmentStatus.SHIPPED
    assert snapshot.location == "Hub A"
    assert snapshot.notes == "On the truck"
    assert snapshot.timestamp.endswith("Z")

    assert read_tracking_snapshot(SessionLocal, 999) is None

def test_snapshot_and_history_do_not_eager_load_the_ledger(db, shipment_data):
    service = ShipmentService(db)
    shipment = service.create(shipment_data())
    for status in (ShipmentStatus.PROCESSING, ShipmentStatus.SHIPPED, ShipmentStatus.IN_TRANSIT):
        service.update_status(shipment.id, status)

    with SessionLocal() as fresh:
        snapshot = ShipmentQueryService(fresh).tracking_snapshot(shipment.id)
        assert snapshot.status == ShipmentStatus.IN_TRANSIT
        loaded = fresh.get(Shipment, shipment.id)
        assert "history" in inspect(loaded).unloaded

    with SessionLocal() as fresh:
        history = ShipmentQueryService(fresh).history(shipment.id)
        assert len(history) == 4
        assert not any(isinstance(obj, Shipment) for obj in fresh.identity_map.values())

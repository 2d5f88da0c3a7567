from functools import partial
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from shared.core import get_logger
from app.core_settings import get_settings
from app.domain.models import ShipmentStatus
from app.domain.exceptions import ShipmentError, ShipmentNotFound, TransitionRejected, TrackingNumberConflict
from app.infrastructure.db import get_db, get_session_factory
from app.application.service import ShipmentService
from app.application.queries import ShipmentQueryService, read_tracking_snapshot
from app.application.streaming import ShipmentUpdateStream
from app.application.schemas import (
    ShipmentCreate,
    ShipmentStatusUpdate,
    ShipmentCancel,
    ShipmentRead,
    ShipmentResponse,
    ShipmentListResponse,
    ShipmentHistoryRead,
    ShipmentHistoryResponse,
)

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/shipments", tags=["shipments"])

ERROR_STATUS = {
    ShipmentNotFound: status.HTTP_404_NOT_FOUND,
    TransitionRejected: status.HTTP_409_CONFLICT,
    TrackingNumberConflict: status.HTTP_409_CONFLICT,
}

def _fail(response: Response, exc: Exception, action: str, envelope=ShipmentResponse):
    """Turn an exception into a failed envelope; nothing escapes a handler."""
    if isinstance(exc, ShipmentError):
        response.status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
        logger.info(f"{action} rejected: {exc.message}")
        return envelope(success=False, message=exc.message)
    logger.exception(f"Error {action.lower()}")
    response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return envelope(success=False, message=f"Error {action.lower()}: {exc}")

def _ok(shipment, message: str = "") -> ShipmentResponse:
    return ShipmentResponse(success=True, message=message, shipment=ShipmentRead.model_validate(shipment))

@router.get("/", response_model=ShipmentListResponse)
def list_shipments(
    response: Response,
    page: int = Query(0, ge=0),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    status_filter: Optional[ShipmentStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    try:
        queries = ShipmentQueryService(db)
        items = queries.list(page, page_size, status_filter)
        total = queries.count(status_filter)
    except Exception as e:
        return _fail(response, e, "Listing shipments", ShipmentListResponse)
    return ShipmentListResponse(
        success=True,
        items=[ShipmentRead.model_validate(s) for s in items],
        total_count=total,
        page=page,
        page_size=page_size,
    )

@router.post("/", response_model=ShipmentResponse, status_code=201)
def create_shipment(payload: ShipmentCreate, response: Response, db: Session = Depends(get_db)):
    logger.info(f"Creating shipment for order: {payload.order_id}")
    try:
        shipment = ShipmentService(db).create(payload)
    except Exception as e:
        return _fail(response, e, "Creating shipment")
    return _ok(shipment, "Shipment created successfully")

@router.get("/order/{order_id}", response_model=ShipmentResponse)
def get_shipment_by_order(order_id: int, response: Response, db: Session = Depends(get_db)):
    try:
        return _ok(ShipmentQueryService(db).get_by_order_id(order_id))
    except Exception as e:
        return _fail(response, e, "Getting shipment")

@router.get("/tracking/{tracking_number}", response_model=ShipmentResponse)
def get_shipment_by_tracking_number(tracking_number: str, response: Response, db: Session = Depends(get_db)):
    try:
        return _ok(ShipmentQueryService(db).get_by_tracking_number(tracking_number))
    except Exception as e:
        return _fail(response, e, "Getting shipment")

@router.get("/{shipment_id}", response_model=ShipmentResponse)
def get_shipment(shipment_id: int, response: Response, db: Session = Depends(get_db)):
    try:
        return _ok(ShipmentQueryService(db).get_by_id(shipment_id))
    except Exception as e:
        return _fail(response, e, "Getting shipment")

@router.get("/{shipment_id}/history", response_model=ShipmentHistoryResponse)
def get_shipment_history(shipment_id: int, response: Response, db: Session = Depends(get_db)):
    try:
        entries = ShipmentQueryService(db).history(shipment_id)
    except Exception as e:
        return _fail(response, e, "Getting history", ShipmentHistoryResponse)
    return ShipmentHistoryResponse(
        success=True,
        shipment_id=shipment_id,
        history=[ShipmentHistoryRead.model_validate(h) for h in entries],
    )

@router.put("/{shipment_id}/status", response_model=ShipmentResponse)
def update_shipment_status(
    shipment_id: int,
    payload: ShipmentStatusUpdate,
    response: Response,
    db: Session = Depends(get_db),
):
    logger.info(f"Updating shipment {shipment_id} status to: {payload.status.value}")
    try:
        shipment = ShipmentService(db).update_status(
            shipment_id, payload.status, payload.location, payload.notes
        )
    except Exception as e:
        return _fail(response, e, "Updating shipment status")
    return _ok(shipment, "Shipment status updated successfully")

@router.post("/{shipment_id}/cancel", response_model=ShipmentResponse)
def cancel_shipment(
    shipment_id: int,
    response: Response,
    payload: Optional[ShipmentCancel] = None,
    db: Session = Depends(get_db),
):
    logger.info(f"Cancelling shipment: {shipment_id}")
    reason = payload.reason if payload else ""
    try:
        shipment = ShipmentService(db).cancel(shipment_id, reason)
    except Exception as e:
        return _fail(response, e, "Cancelling shipment")
    return _ok(shipment, "Shipment cancelled successfully")

@router.delete("/{shipment_id}", response_model=ShipmentResponse)
def delete_shipment(shipment_id: int, response: Response, db: Session = Depends(get_db)):
    try:
        ShipmentService(db).delete(shipment_id)
    except Exception as e:
        return _fail(response, e, "Deleting shipment")
    return ShipmentResponse(success=True, message="Shipment deleted successfully")

async def _ndjson(stream: ShipmentUpdateStream):
    async for event in stream.events():
        yield event.model_dump_json() + "\n"

@router.get("/{shipment_id}/updates")
async def stream_shipment_updates(shipment_id: int, session_factory=Depends(get_session_factory)):
    """Newline-delimited JSON feed of status changes, see ShipmentUpdateStream."""
    reader = partial(read_tracking_snapshot, session_factory)
    try:
        exists = await run_in_threadpool(reader, shipment_id) is not None
    except Exception as e:
        logger.exception("Error opening shipment update stream")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ShipmentResponse(success=False, message=f"Error opening stream: {e}").model_dump(),
        )
    if not exists:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=ShipmentResponse(success=False, message=f"Shipment with ID {shipment_id} not found").model_dump(),
        )

    stream = ShipmentUpdateStream(
        shipment_id,
        reader,
        poll_interval=settings.STREAM_POLL_INTERVAL_SECONDS,
        read_attempts=settings.STREAM_READ_ATTEMPTS,
        read_backoff=settings.STREAM_READ_BACKOFF_SECONDS,
    )
    return StreamingResponse(_ndjson(stream), media_type="application/x-ndjson")

"""Administrator billing endpoints.

Mounted under /api/admin so an upstream auth layer can restrict the whole
prefix to administrators.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from src.api.consumers import submit_reading
from src.api.dependencies import get_consumer_service, get_now
from src.api.schemas import (
    AdminReadingPayload,
    ConsumerResponse,
    FinedConsumerResponse,
    MissedReadingResponse,
)
from src.models.consumer import Consumer
from src.services.billing_cycle import resolve_cycle
from src.services.consumer_service import ConsumerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.put("/consumers/{consumer_number}/readings", response_model=ConsumerResponse)
def add_reading_as_admin(
    consumer_number: str,
    payload: AdminReadingPayload,
    service: ConsumerService = Depends(get_consumer_service),
    now: datetime = Depends(get_now),
) -> Consumer:
    """Submit a reading; with ``admin_override`` window and monotonicity checks are skipped."""
    if payload.admin_override:
        logger.info("Admin override reading for %s", consumer_number)
    return submit_reading(service, consumer_number, payload, now, is_override=payload.admin_override)


@router.get("/fines", response_model=list[FinedConsumerResponse])
def list_fined_consumers(
    service: ConsumerService = Depends(get_consumer_service),
    now: datetime = Depends(get_now),
) -> list[Consumer]:
    """Apply due fines to all unpaid consumers and list everyone carrying a fine."""
    return service.sweep_fines(now)


@router.get("/missed-readings", response_model=list[MissedReadingResponse])
def list_missed_readings(
    service: ConsumerService = Depends(get_consumer_service),
    now: datetime = Depends(get_now),
) -> list[MissedReadingResponse]:
    """Consumers who did not submit a reading in the current cycle's window."""
    windows = resolve_cycle(now, service.config)
    return [
        MissedReadingResponse(
            consumer_number=consumer.consumer_number,
            name=consumer.name,
            address=consumer.address,
            phone_number=consumer.phone_number,
            meter_serial_number=consumer.meter_serial_number,
            tariff_plan=consumer.tariff_plan,
            last_bill_date=consumer.last_bill_date,
            reading_window_start=windows.reading_start,
            reading_window_end=windows.reading_end,
        )
        for consumer in service.find_missed_readings(now)
    ]

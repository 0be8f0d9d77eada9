"""Consumer billing API endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_consumer_service, get_now
from src.api.schemas import (
    BillSummaryResponse,
    ConsumerCreatePayload,
    ConsumerDetailsResponse,
    ConsumerResponse,
    ConsumerUpdatePayload,
    FineDetails,
    MessageResponse,
    PaymentResponse,
    ReadingPayload,
)
from src.models.consumer import Consumer
from src.services.billing_cycle import BillSummary
from src.services.consumer_service import ConsumerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/consumers", tags=["consumers"])


def submit_reading(
    service: ConsumerService,
    consumer_number: str,
    payload: ReadingPayload,
    now: datetime,
    is_override: bool = False,
) -> Consumer:
    """Forward a reading payload to the service; the reading date defaults to ``now``."""
    return service.submit_reading(
        consumer_number,
        payload.reading_date or now,
        current_reading=payload.current_reading,
        units_consumed=payload.units_consumed,
        is_override=is_override,
        ai_extracted_reading=payload.ai_extracted_reading,
    )


def _summary_response(consumer: Consumer, summary: BillSummary) -> BillSummaryResponse:
    state = summary.state
    return BillSummaryResponse(
        consumer_number=consumer.consumer_number,
        name=consumer.name,
        address=consumer.address,
        phone_number=consumer.phone_number,
        meter_serial_number=consumer.meter_serial_number,
        tariff_plan=consumer.tariff_plan,
        bill_amount=state.amount,
        current_reading=state.current_reading,
        last_units_consumed=summary.last_units_consumed,
        tariff_rate=summary.tariff_rate,
        payment_status=state.payment_status,
        last_payment_date=state.last_payment_date,
        last_paid_amount=state.last_paid_amount,
        next_payment_deadline=state.next_payment_deadline,
        days_until_deadline=summary.days_until_deadline,
        is_overdue=summary.is_overdue,
        is_fine_applied=state.is_fine_applied,
        fine_details=FineDetails.model_validate(summary.fine),
        total_amount_due=summary.total_amount_due,
        reminder_type=summary.reminder.type,
        reminder_message=summary.reminder.message,
        reading_pending=summary.reading_pending,
        reading_window_start=summary.reading_window_start,
        reading_window_end=summary.reading_window_end,
    )


@router.post("", response_model=ConsumerResponse, status_code=status.HTTP_201_CREATED)
def create_consumer(
    payload: ConsumerCreatePayload,
    service: ConsumerService = Depends(get_consumer_service),
) -> Consumer:
    """Register a new consumer.

    Returns:
        201: Created consumer
        400: Duplicate consumer number or unknown tariff plan
    """
    return service.create_consumer(**payload.model_dump())


@router.get("", response_model=list[ConsumerResponse])
def list_consumers(service: ConsumerService = Depends(get_consumer_service)) -> list[Consumer]:
    return service.list_consumers()


@router.get("/{consumer_number}", response_model=ConsumerResponse)
def get_consumer(
    consumer_number: str,
    service: ConsumerService = Depends(get_consumer_service),
) -> Consumer:
    """Get a consumer; a zero-amount Pending bill is reported (and stored) as Paid."""
    return service.get_consumer(consumer_number)


@router.get("/{consumer_number}/details", response_model=ConsumerDetailsResponse)
def get_consumer_details(
    consumer_number: str,
    service: ConsumerService = Depends(get_consumer_service),
):
    return service.get_consumer_details(consumer_number)


@router.put("/{consumer_number}", response_model=ConsumerResponse)
def update_consumer(
    consumer_number: str,
    payload: ConsumerUpdatePayload,
    service: ConsumerService = Depends(get_consumer_service),
) -> Consumer:
    """Update profile fields of a consumer."""
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    return service.update_profile(consumer_number, **changes)


@router.delete("/{consumer_number}", response_model=MessageResponse)
def delete_consumer(
    consumer_number: str,
    service: ConsumerService = Depends(get_consumer_service),
) -> MessageResponse:
    service.delete_consumer(consumer_number)
    return MessageResponse(message="Consumer deleted successfully")


@router.put("/{consumer_number}/readings", response_model=ConsumerResponse)
def add_reading(
    consumer_number: str,
    payload: ReadingPayload,
    service: ConsumerService = Depends(get_consumer_service),
    now: datetime = Depends(get_now),
) -> Consumer:
    """Submit the consumer's own reading (days 1-15 of the cycle, once per cycle).

    Returns:
        200: Updated consumer with new bill
        400: Outside reading window, duplicate, non-increasing reading or bad tariff
        404: Unknown consumer
    """
    return submit_reading(service, consumer_number, payload, now)


@router.get("/{consumer_number}/bill-summary", response_model=BillSummaryResponse)
def get_bill_summary(
    consumer_number: str,
    service: ConsumerService = Depends(get_consumer_service),
    now: datetime = Depends(get_now),
) -> BillSummaryResponse:
    """Bill, deadline, fine and reminder; applies a due fine before answering."""
    consumer, summary = service.get_bill_summary(consumer_number, now)
    return _summary_response(consumer, summary)


@router.post("/{consumer_number}/mark-paid", response_model=PaymentResponse)
def mark_paid(
    consumer_number: str,
    service: ConsumerService = Depends(get_consumer_service),
    now: datetime = Depends(get_now),
) -> PaymentResponse:
    consumer = service.mark_paid(consumer_number, now)
    return PaymentResponse(
        message="Payment marked as successful",
        consumer=ConsumerResponse.model_validate(consumer),
    )

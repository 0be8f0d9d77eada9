"""Standalone bill calculation endpoint."""

from datetime import datetime

from fastapi import APIRouter, Depends

from src.api.dependencies import get_billing_config, get_now
from src.api.schemas import BillCalculationPayload, BillCalculationResponse, FineDetails
from src.services.billing_cycle import BillingConfig, calculate_bill

router = APIRouter(prefix="/api/bills", tags=["bills"])


@router.post("/calculate", response_model=BillCalculationResponse)
def calculate(
    payload: BillCalculationPayload,
    config: BillingConfig = Depends(get_billing_config),
    now: datetime = Depends(get_now),
) -> BillCalculationResponse:
    """Days left, overdue flag, reminder, fine and total due for a bill amount and deadline.

    Returns:
        200: Calculated bill details
        400: Missing amount or deadline, or amount not positive
    """
    result = calculate_bill(payload.bill_amount, payload.deadline_date, now, config)
    return BillCalculationResponse(
        bill_amount=result.bill_amount,
        deadline_date=result.deadline,
        days_until_deadline=result.days_until_deadline,
        is_overdue=result.is_overdue,
        reminder_type=result.reminder.type,
        reminder_message=result.reminder.message,
        fine_details=FineDetails.model_validate(result.fine) if result.fine else None,
        total_amount_due=result.total_amount_due,
    )

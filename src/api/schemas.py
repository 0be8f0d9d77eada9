"""Pydantic schemas for consumer and billing endpoints."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.services.billing_cycle import PaymentStatus, ReminderType


class ConsumerCreatePayload(BaseModel):
    """Request payload for POST /api/consumers."""

    consumer_number: str = Field(..., min_length=1, max_length=50)
    meter_serial_number: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1, max_length=500)
    phone_number: str = Field(..., min_length=1, max_length=20)
    tariff_plan: str = Field(..., description="Domestic, Commercial or Industrial")
    current_reading: Decimal = Field(default=Decimal("0"), ge=0, description="Initial meter value")


class ConsumerUpdatePayload(BaseModel):
    """Request payload for PUT /api/consumers/{consumer_number}. Only profile fields."""

    meter_serial_number: str | None = Field(None, min_length=1, max_length=100)
    name: str | None = Field(None, min_length=1, max_length=255)
    address: str | None = Field(None, min_length=1, max_length=500)
    phone_number: str | None = Field(None, min_length=1, max_length=20)
    tariff_plan: str | None = None

    model_config = ConfigDict(extra="forbid")


class ReadingPayload(BaseModel):
    """Meter reading submitted by a consumer."""

    reading_date: date | None = Field(None, description="Defaults to today")
    current_reading: Decimal | None = Field(None, ge=0, description="New cumulative meter value")
    units_consumed: Decimal | None = Field(None, description="Units since the previous reading")
    ai_extracted_reading: Decimal | None = Field(
        None, ge=0, description="Value proposed by the meter image service"
    )


class AdminReadingPayload(ReadingPayload):
    """Meter reading submitted by an administrator."""

    admin_override: bool = Field(
        False, description="Bypass window, duplicate and monotonicity checks"
    )


class ReadingResponse(BaseModel):
    reading_date: datetime
    units: Decimal
    manual_reading: Decimal | None = None
    ai_extracted_reading: Decimal | None = None

    model_config = ConfigDict(from_attributes=True)


class ConsumerResponse(BaseModel):
    """Full consumer record."""

    consumer_number: str
    meter_serial_number: str
    name: str
    address: str
    phone_number: str
    tariff_plan: str
    current_reading: Decimal
    amount: Decimal
    last_paid_amount: Decimal
    last_bill_date: datetime | None = None
    next_payment_deadline: datetime | None = None
    payment_status: PaymentStatus
    last_payment_date: datetime | None = None
    is_fine_applied: bool
    fine_amount: Decimal
    cgst_on_fine: Decimal
    sgst_on_fine: Decimal
    total_fine_with_tax: Decimal
    fine_applied_date: datetime | None = None
    readings: list[ReadingResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ConsumerDetailsResponse(BaseModel):
    """Reading-form view of a consumer."""

    consumer_number: str
    name: str
    meter_serial_number: str
    tariff_plan: str
    amount: Decimal
    previous_reading: Decimal
    last_units_consumed: Decimal
    last_reading_date: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FineDetails(BaseModel):
    fine_amount: Decimal
    cgst_on_fine: Decimal
    sgst_on_fine: Decimal
    total_fine_with_tax: Decimal

    model_config = ConfigDict(from_attributes=True)


class BillSummaryResponse(BaseModel):
    """Bill, deadline, fine and reminder for one consumer."""

    consumer_number: str
    name: str
    address: str
    phone_number: str
    meter_serial_number: str
    tariff_plan: str

    # Bill
    bill_amount: Decimal
    current_reading: Decimal
    last_units_consumed: Decimal | None = None
    tariff_rate: Decimal
    payment_status: PaymentStatus
    last_payment_date: datetime | None = None
    last_paid_amount: Decimal

    # Deadline
    next_payment_deadline: datetime | None = None
    days_until_deadline: int
    is_overdue: bool

    # Fine
    is_fine_applied: bool
    fine_details: FineDetails
    total_amount_due: Decimal

    # Reminder
    reminder_type: ReminderType
    reminder_message: str

    # Reading window
    reading_pending: bool
    reading_window_start: date
    reading_window_end: date


class PaymentResponse(BaseModel):
    message: str
    consumer: ConsumerResponse


class FinedConsumerResponse(BaseModel):
    """Admin list entry for a consumer carrying a fine."""

    consumer_number: str
    name: str
    address: str
    phone_number: str
    meter_serial_number: str
    tariff_plan: str
    amount: Decimal
    fine_amount: Decimal
    cgst_on_fine: Decimal
    sgst_on_fine: Decimal
    total_fine_with_tax: Decimal
    fine_applied_date: datetime | None = None
    payment_status: PaymentStatus

    model_config = ConfigDict(from_attributes=True)


class MissedReadingResponse(BaseModel):
    """Admin list entry for a consumer who missed the reading window."""

    consumer_number: str
    name: str
    address: str
    phone_number: str
    meter_serial_number: str
    tariff_plan: str
    last_bill_date: datetime | None = None
    reading_window_start: date
    reading_window_end: date


class MessageResponse(BaseModel):
    message: str


class BillCalculationPayload(BaseModel):
    """Request payload for POST /api/bills/calculate."""

    bill_amount: Decimal | None = Field(default=None, description="Outstanding bill amount")
    deadline_date: datetime | None = Field(default=None, description="Payment deadline")


class BillCalculationResponse(BaseModel):
    """Fine, reminder and total due for a standalone bill."""

    bill_amount: Decimal
    deadline_date: datetime
    days_until_deadline: int
    is_overdue: bool
    reminder_type: ReminderType
    reminder_message: str
    fine_details: FineDetails | None = None
    total_amount_due: Decimal

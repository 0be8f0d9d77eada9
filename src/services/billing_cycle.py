"""Billing cycle engine for the 60-day reading/payment/idle cycle.

Every function here is pure: it takes a BillingState plus an explicit date or
instant and returns a new BillingState (or a value object derived from it).
Persisting the result is the caller's job.

Cycle layout, counted from the configured epoch:
    days 1-15   reading window
    days 16-30  payment window (deadline is the start of day 30)
    days 31-60  idle
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from src.services.errors import (
    DateOutOfRangeError,
    DuplicateReadingThisCycleError,
    InvalidBillError,
    InvalidReadingError,
    InvalidTariffPlanError,
    NonIncreasingReadingError,
    OutsideReadingWindowError,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
DAY = timedelta(days=1)


class PaymentStatus(str, Enum):
    """Payment status of a consumer's current bill."""

    PAID = "Paid"
    PENDING = "Pending"
    OVERDUE = "Overdue"


class TariffPlan(str, Enum):
    """Consumer category determining the per-unit rate."""

    DOMESTIC = "Domestic"
    COMMERCIAL = "Commercial"
    INDUSTRIAL = "Industrial"


class ReminderType(str, Enum):
    """Reminder kinds, in precedence order."""

    READING = "reading"
    OVERDUE = "overdue"
    URGENT = "urgent"
    WARNING = "warning"
    NOTICE = "notice"
    NONE = "none"


DEFAULT_TARIFF_RATES: Mapping[str, Decimal] = MappingProxyType(
    {
        "domestic": Decimal("5"),
        "commercial": Decimal("10"),
        "industrial": Decimal("15"),
    }
)


def to_money(value: Any) -> Decimal:
    """Round a number to 2 decimal places (half up)."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _as_date(value: date | datetime) -> date:
    """Calendar date of the naive UTC view, so aware datetimes agree with stored instants."""
    if isinstance(value, datetime):
        return _as_datetime(value).date()
    return value


def _as_datetime(value: date | datetime) -> datetime:
    """Normalize to a naive UTC datetime; bare dates become midnight."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime.combine(value, time.min)


def _to_decimal(value: Any, name: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidReadingError(f"Invalid {name}: {value!r}") from e
    if not result.is_finite():
        raise InvalidReadingError(f"Invalid {name}: {value!r}")
    return result


@dataclass(frozen=True)
class BillingConfig:
    """Immutable engine configuration.

    Tariff plan keys are stored lower-cased so lookups are case-insensitive.
    """

    tariff_rates: Mapping[str, Decimal] = field(default_factory=lambda: DEFAULT_TARIFF_RATES)
    cycle_epoch: date = date(2024, 1, 1)
    cycle_length_days: int = 60
    reading_window_days: int = 15
    payment_window_days: int = 15
    fixed_fine: Decimal = Decimal("100")
    cgst_rate: Decimal = Decimal("0.09")
    sgst_rate: Decimal = Decimal("0.09")

    def __post_init__(self) -> None:
        rates = {str(plan).lower(): Decimal(str(rate)) for plan, rate in self.tariff_rates.items()}
        object.__setattr__(self, "tariff_rates", MappingProxyType(rates))
        if self.reading_window_days + self.payment_window_days > self.cycle_length_days:
            raise ValueError("Reading and payment windows do not fit in the cycle")

    def rate_for(self, plan: str | None) -> Decimal:
        """Return the per-unit rate for a tariff plan.

        Raises:
            InvalidTariffPlanError: If the plan has no configured rate
        """
        if not plan:
            raise InvalidTariffPlanError(plan)
        rate = self.tariff_rates.get(str(plan).lower())
        if rate is None:
            raise InvalidTariffPlanError(plan)
        return rate


DEFAULT_CONFIG = BillingConfig()


@dataclass(frozen=True)
class CycleWindows:
    """Sub-windows of one billing cycle. All bounds are inclusive dates."""

    cycle_index: int
    cycle_start: date
    reading_start: date
    reading_end: date
    payment_start: date
    payment_end: date
    idle_end: date

    def in_reading_window(self, value: date | datetime) -> bool:
        return self.reading_start <= _as_date(value) <= self.reading_end

    def in_payment_window(self, value: date | datetime) -> bool:
        return self.payment_start <= _as_date(value) <= self.payment_end

    def in_cycle(self, value: date | datetime) -> bool:
        return self.cycle_start <= _as_date(value) <= self.idle_end

    @property
    def payment_deadline(self) -> datetime:
        """Instant after which an unpaid bill of this cycle is overdue."""
        return datetime.combine(self.payment_end, time.min)

    @property
    def reading_deadline(self) -> datetime:
        """End of the last reading day."""
        return datetime.combine(self.reading_end + DAY, time.min)


def resolve_cycle(value: date | datetime, config: BillingConfig = DEFAULT_CONFIG) -> CycleWindows:
    """Compute the billing cycle enclosing a date.

    Time of day is ignored. Dates before the epoch map to negative cycle
    indices through floor division.

    Args:
        value: Any date or datetime
        config: Engine configuration (epoch and window lengths)

    Returns:
        CycleWindows for the enclosing cycle

    Raises:
        DateOutOfRangeError: The enclosing cycle crosses date.min or date.max
    """
    try:
        days_since_epoch = (_as_date(value) - config.cycle_epoch).days
        cycle_index = days_since_epoch // config.cycle_length_days
        cycle_start = config.cycle_epoch + timedelta(days=cycle_index * config.cycle_length_days)
        payment_start = cycle_start + timedelta(days=config.reading_window_days)
        return CycleWindows(
            cycle_index=cycle_index,
            cycle_start=cycle_start,
            reading_start=cycle_start,
            reading_end=payment_start - DAY,
            payment_start=payment_start,
            payment_end=payment_start + timedelta(days=config.payment_window_days - 1),
            idle_end=cycle_start + timedelta(days=config.cycle_length_days - 1),
        )
    except OverflowError as e:
        raise DateOutOfRangeError(value) from e


@dataclass(frozen=True)
class ReadingEntry:
    """One accepted reading in a consumer's history."""

    reading_date: datetime
    units: Decimal
    manual_reading: Decimal


@dataclass(frozen=True)
class FineBreakdown:
    fine_amount: Decimal = ZERO
    cgst_on_fine: Decimal = ZERO
    sgst_on_fine: Decimal = ZERO
    total_fine_with_tax: Decimal = ZERO


@dataclass(frozen=True)
class BillingState:
    """Billing fields of one consumer, as seen by the engine."""

    tariff_plan: str
    current_reading: Decimal = Decimal("0")
    amount: Decimal = ZERO
    last_paid_amount: Decimal = ZERO
    last_bill_date: datetime | None = None
    last_payment_date: datetime | None = None
    next_payment_deadline: datetime | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    is_fine_applied: bool = False
    fine_amount: Decimal = ZERO
    cgst_on_fine: Decimal = ZERO
    sgst_on_fine: Decimal = ZERO
    total_fine_with_tax: Decimal = ZERO
    fine_applied_date: datetime | None = None
    reminder_sent_7_days: bool = False
    reminder_sent_3_days: bool = False
    overdue_reminder_sent: bool = False
    readings: tuple[ReadingEntry, ...] = ()

    @property
    def last_reading(self) -> ReadingEntry | None:
        return self.readings[-1] if self.readings else None

    @property
    def fine(self) -> FineBreakdown:
        return FineBreakdown(
            fine_amount=self.fine_amount,
            cgst_on_fine=self.cgst_on_fine,
            sgst_on_fine=self.sgst_on_fine,
            total_fine_with_tax=self.total_fine_with_tax,
        )


def _clear_fine(state: BillingState) -> BillingState:
    return replace(
        state,
        is_fine_applied=False,
        fine_amount=ZERO,
        cgst_on_fine=ZERO,
        sgst_on_fine=ZERO,
        total_fine_with_tax=ZERO,
        fine_applied_date=None,
    )


def has_reading_in_window(state: BillingState, windows: CycleWindows) -> bool:
    """Whether the last accepted reading falls in the cycle's reading window."""
    if state.last_bill_date is None:
        return False
    return windows.in_reading_window(state.last_bill_date)


def try_accept_reading(
    state: BillingState,
    reading_date: date | datetime,
    *,
    current_reading: Any = None,
    units_consumed: Any = None,
    is_override: bool = False,
    config: BillingConfig = DEFAULT_CONFIG,
) -> BillingState:
    """Validate a meter reading and return the billed state.

    The new cumulative reading is ``current_reading`` when given, otherwise the
    previous reading plus ``units_consumed``. An override skips the window,
    duplicate and monotonicity checks; with an explicit non-negative
    ``units_consumed`` it also bills those units as-is.

    Args:
        state: Current billing state
        reading_date: Date the reading was taken
        current_reading: New cumulative meter value (optional)
        units_consumed: Units since the previous reading (optional)
        is_override: Privileged admin submission
        config: Engine configuration

    Returns:
        New BillingState with amount, deadline and history updated

    Raises:
        OutsideReadingWindowError: Date is outside days 1-15 of its cycle
        DuplicateReadingThisCycleError: A reading is already recorded this cycle
        NonIncreasingReadingError: New reading is not above the previous one
        InvalidReadingError: No usable reading value supplied
        InvalidTariffPlanError: Consumer's plan has no rate
    """
    windows = resolve_cycle(reading_date, config)

    if not is_override:
        if not windows.in_reading_window(reading_date):
            raise OutsideReadingWindowError()
        if has_reading_in_window(state, windows):
            raise DuplicateReadingThisCycleError()

    previous = state.current_reading or Decimal("0")
    units = _to_decimal(units_consumed, "units consumed") if units_consumed is not None else None

    if current_reading is not None:
        new_reading = _to_decimal(current_reading, "meter reading")
    elif units is not None:
        new_reading = previous + units
    else:
        raise InvalidReadingError("Either current reading or units consumed is required")

    if new_reading < 0:
        raise InvalidReadingError("Meter reading cannot be negative")

    if not is_override and new_reading <= previous:
        raise NonIncreasingReadingError(previous)

    if is_override and units is not None and units >= 0:
        billed_units = units
    else:
        billed_units = max(new_reading - previous, Decimal("0"))

    rate = config.rate_for(state.tariff_plan)
    taken_at = _as_datetime(reading_date)

    logger.debug(
        "Reading accepted: previous=%s new=%s units=%s rate=%s override=%s",
        previous,
        new_reading,
        billed_units,
        rate,
        is_override,
    )

    return replace(
        _clear_fine(state),
        current_reading=new_reading,
        amount=to_money(billed_units * rate),
        last_bill_date=taken_at,
        next_payment_deadline=windows.payment_deadline,
        payment_status=PaymentStatus.PENDING,
        readings=state.readings
        + (ReadingEntry(reading_date=taken_at, units=billed_units, manual_reading=new_reading),),
    )


def calculate_fine(config: BillingConfig = DEFAULT_CONFIG) -> FineBreakdown:
    """Flat fine plus CGST and SGST, each tax rounded to 2 dp on its own."""
    fine_amount = to_money(config.fixed_fine)
    cgst = to_money(fine_amount * config.cgst_rate)
    sgst = to_money(fine_amount * config.sgst_rate)
    return FineBreakdown(
        fine_amount=fine_amount,
        cgst_on_fine=cgst,
        sgst_on_fine=sgst,
        total_fine_with_tax=to_money(fine_amount + cgst + sgst),
    )


def _owes_nothing(state: BillingState) -> bool:
    return state.payment_status == PaymentStatus.PENDING and state.amount == 0


def normalize_settled(state: BillingState) -> BillingState:
    """Treat a zero-amount Pending bill as Paid and drop its deadline."""
    if not _owes_nothing(state):
        return state
    return replace(state, payment_status=PaymentStatus.PAID, next_payment_deadline=None)


def is_overdue(state: BillingState, now: datetime) -> bool:
    """Whether an outstanding bill is past its deadline at ``now``."""
    if state.next_payment_deadline is None or state.payment_status == PaymentStatus.PAID:
        return False
    if _owes_nothing(state):
        return False
    return _as_datetime(now) > _as_datetime(state.next_payment_deadline)


def evaluate_overdue_and_fine(
    state: BillingState,
    now: datetime,
    config: BillingConfig = DEFAULT_CONFIG,
) -> BillingState:
    """Apply the one-time fine to an overdue bill.

    Once ``is_fine_applied`` is set the state is returned unchanged, so
    repeated evaluation never re-stamps ``fine_applied_date``.
    """
    state = normalize_settled(state)
    if state.is_fine_applied or not is_overdue(state, now):
        return state

    fine = calculate_fine(config)
    return replace(
        state,
        is_fine_applied=True,
        fine_amount=fine.fine_amount,
        cgst_on_fine=fine.cgst_on_fine,
        sgst_on_fine=fine.sgst_on_fine,
        total_fine_with_tax=fine.total_fine_with_tax,
        fine_applied_date=_as_datetime(now),
        payment_status=PaymentStatus.OVERDUE,
    )


def total_amount_due(state: BillingState, now: datetime) -> Decimal:
    if state.is_fine_applied and is_overdue(state, now):
        return to_money(state.amount + state.total_fine_with_tax)
    return to_money(state.amount)


def days_until(deadline: datetime | None, now: datetime) -> int:
    """Whole days left until ``deadline``, rounded up. 0 without a deadline."""
    if deadline is None:
        return 0
    return math.ceil((_as_datetime(deadline) - _as_datetime(now)) / DAY)


@dataclass(frozen=True)
class Reminder:
    type: ReminderType
    message: str
    days_until_deadline: int


def _format_day(value: date | datetime) -> str:
    return f"{_as_date(value):%a %b %d %Y}"


def reminder_type_for(days: int, overdue: bool) -> ReminderType:
    """Payment reminder kind from the days left and the overdue flag."""
    if overdue:
        return ReminderType.OVERDUE
    if 0 < days <= 3:
        return ReminderType.URGENT
    if 3 < days <= 7:
        return ReminderType.WARNING
    if days > 7:
        return ReminderType.NOTICE
    return ReminderType.NONE


def _payment_reminder(kind: ReminderType, days: int, deadline: datetime | None) -> Reminder:
    if kind == ReminderType.OVERDUE:
        message = (
            f"OVERDUE: Your bill payment was due on {_format_day(deadline)}. "
            "Please pay immediately to avoid further penalties."
        )
    elif kind == ReminderType.URGENT:
        message = f"URGENT: Only {days} day(s) left to pay your bill! Deadline: {_format_day(deadline)}"
    elif kind == ReminderType.WARNING:
        message = f"REMINDER: Your bill is due in {days} days. Deadline: {_format_day(deadline)}"
    elif kind == ReminderType.NOTICE:
        message = (
            f"Upcoming Bill: Your next payment is due on {_format_day(deadline)} "
            f"({days} days remaining)"
        )
    else:
        message = ""
    return Reminder(kind, message, days)


def classify_reminder(
    state: BillingState,
    now: datetime,
    config: BillingConfig = DEFAULT_CONFIG,
) -> Reminder:
    """Pick the reminder for the consumer's current phase.

    Precedence: pending reading, overdue, then urgent/warning/notice while the
    payment window is open, otherwise none.
    """
    now = _as_datetime(now)
    state = normalize_settled(state)
    windows = resolve_cycle(now, config)
    deadline = state.next_payment_deadline
    days = days_until(deadline, now)

    if windows.in_reading_window(now) and not has_reading_in_window(state, windows):
        days_left = max(0, days_until(windows.reading_deadline, now))
        return Reminder(
            ReminderType.READING,
            f"Reading required: submit meter reading by {_format_day(windows.reading_end)} "
            f"({days_left} day(s) left).",
            days,
        )

    if is_overdue(state, now):
        return _payment_reminder(ReminderType.OVERDUE, days, deadline)

    if deadline is not None and windows.in_payment_window(now):
        return _payment_reminder(reminder_type_for(days, overdue=False), days, deadline)

    return Reminder(ReminderType.NONE, "", days)


def settle_payment(state: BillingState, now: datetime) -> BillingState:
    """Record full payment of the bill and any applied fine.

    No new deadline is set until the next accepted reading.
    """
    paid = state.amount + (state.total_fine_with_tax if state.is_fine_applied else ZERO)
    return replace(
        _clear_fine(state),
        last_paid_amount=to_money(paid),
        amount=ZERO,
        payment_status=PaymentStatus.PAID,
        last_payment_date=_as_datetime(now),
        next_payment_deadline=None,
        reminder_sent_7_days=False,
        reminder_sent_3_days=False,
        overdue_reminder_sent=False,
    )


def missed_reading(
    state: BillingState,
    now: datetime,
    config: BillingConfig = DEFAULT_CONFIG,
) -> bool:
    """Reading window of the current cycle is over and no reading landed in the cycle."""
    windows = resolve_cycle(now, config)
    if _as_date(now) <= windows.reading_end:
        return False
    if state.last_bill_date is None:
        return True
    return not windows.in_cycle(state.last_bill_date)


@dataclass(frozen=True)
class BillSummary:
    """Evaluated billing snapshot for display."""

    state: BillingState
    tariff_rate: Decimal
    last_units_consumed: Decimal | None
    days_until_deadline: int
    is_overdue: bool
    fine: FineBreakdown
    total_amount_due: Decimal
    reminder: Reminder
    reading_pending: bool
    reading_window_start: date
    reading_window_end: date


def build_bill_summary(
    state: BillingState,
    now: datetime,
    config: BillingConfig = DEFAULT_CONFIG,
) -> BillSummary:
    """Evaluate fines at ``now`` and collect everything a bill view shows.

    The returned ``state`` carries any newly applied fine and must be
    persisted by the caller.
    """
    now = _as_datetime(now)
    state = evaluate_overdue_and_fine(state, now, config)
    windows = resolve_cycle(now, config)
    last = state.last_reading

    return BillSummary(
        state=state,
        tariff_rate=config.tariff_rates.get((state.tariff_plan or "").lower(), Decimal("0")),
        last_units_consumed=last.units if last else None,
        days_until_deadline=days_until(state.next_payment_deadline, now),
        is_overdue=is_overdue(state, now),
        fine=state.fine if state.is_fine_applied else FineBreakdown(),
        total_amount_due=total_amount_due(state, now),
        reminder=classify_reminder(state, now, config),
        reading_pending=windows.in_reading_window(now) and not has_reading_in_window(state, windows),
        reading_window_start=windows.reading_start,
        reading_window_end=windows.reading_end,
    )


@dataclass(frozen=True)
class BillCalculation:
    """Fine and reminder figures for a standalone bill amount and deadline."""

    bill_amount: Decimal
    deadline: datetime
    days_until_deadline: int
    is_overdue: bool
    reminder: Reminder
    fine: FineBreakdown | None
    total_amount_due: Decimal


def calculate_bill(
    bill_amount: Any,
    deadline: date | datetime | None,
    now: datetime,
    config: BillingConfig = DEFAULT_CONFIG,
) -> BillCalculation:
    """Evaluate a bill that is not tied to a consumer record.

    The fine is included only once ``now`` is strictly past ``deadline``.

    Raises:
        InvalidBillError: Amount or deadline missing, or amount not positive
    """
    if bill_amount is None or deadline is None:
        raise InvalidBillError("Bill amount and deadline date are required")
    try:
        amount = Decimal(str(bill_amount))
    except (InvalidOperation, ValueError) as e:
        raise InvalidBillError() from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidBillError()

    now = _as_datetime(now)
    deadline = _as_datetime(deadline)
    days = days_until(deadline, now)
    overdue = now > deadline
    fine = calculate_fine(config) if overdue else None
    total = amount + fine.total_fine_with_tax if fine else amount

    return BillCalculation(
        bill_amount=to_money(amount),
        deadline=deadline,
        days_until_deadline=days,
        is_overdue=overdue,
        reminder=_payment_reminder(reminder_type_for(days, overdue), days, deadline),
        fine=fine,
        total_amount_due=to_money(total),
    )


__all__ = [
    "BillCalculation",
    "BillSummary",
    "BillingConfig",
    "BillingState",
    "CycleWindows",
    "DEFAULT_CONFIG",
    "DEFAULT_TARIFF_RATES",
    "FineBreakdown",
    "PaymentStatus",
    "ReadingEntry",
    "Reminder",
    "ReminderType",
    "TariffPlan",
    "build_bill_summary",
    "calculate_bill",
    "calculate_fine",
    "classify_reminder",
    "days_until",
    "evaluate_overdue_and_fine",
    "has_reading_in_window",
    "is_overdue",
    "missed_reading",
    "normalize_settled",
    "reminder_type_for",
    "resolve_cycle",
    "settle_payment",
    "to_money",
    "total_amount_due",
    "try_accept_reading",
]

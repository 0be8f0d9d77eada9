"""Unit tests for the billing cycle engine."""

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.services.billing_cycle import (
    BillingConfig,
    BillingState,
    PaymentStatus,
    ReminderType,
    build_bill_summary,
    calculate_bill,
    calculate_fine,
    classify_reminder,
    days_until,
    evaluate_overdue_and_fine,
    is_overdue,
    missed_reading,
    resolve_cycle,
    settle_payment,
    total_amount_due,
    try_accept_reading,
)
from src.services.errors import (
    DateOutOfRangeError,
    DuplicateReadingThisCycleError,
    InvalidBillError,
    InvalidReadingError,
    InvalidTariffPlanError,
    NonIncreasingReadingError,
    OutsideReadingWindowError,
)

IST = timezone(timedelta(hours=5, minutes=30))

# Cycle 0 with the default epoch: reading Jan 1-15, payment Jan 16-30, idle to Feb 29 (2024)
DEADLINE = datetime(2024, 1, 30)


@pytest.fixture
def fresh_state() -> BillingState:
    return BillingState(tariff_plan="Domestic", current_reading=Decimal("100"))


@pytest.fixture
def billed_state() -> BillingState:
    """Consumer billed 500 on Jan 5 with the Jan 30 deadline."""
    return BillingState(
        tariff_plan="Domestic",
        current_reading=Decimal("200"),
        amount=Decimal("500.00"),
        last_bill_date=datetime(2024, 1, 5),
        next_payment_deadline=DEADLINE,
        payment_status=PaymentStatus.PENDING,
    )


class TestResolveCycle:
    """Tests for cycle window resolution."""

    def test_first_cycle_windows(self):
        windows = resolve_cycle(date(2024, 1, 20))

        assert windows.cycle_index == 0
        assert windows.cycle_start == date(2024, 1, 1)
        assert windows.reading_start == date(2024, 1, 1)
        assert windows.reading_end == date(2024, 1, 15)
        assert windows.payment_start == date(2024, 1, 16)
        assert windows.payment_end == date(2024, 1, 30)
        assert windows.idle_end == date(2024, 2, 29)

    def test_time_of_day_ignored(self):
        assert resolve_cycle(datetime(2024, 3, 5, 23, 59)) == resolve_cycle(date(2024, 3, 5))

    def test_same_cycle_index_shares_cycle_start(self):
        start = date(2024, 3, 1)
        starts = {resolve_cycle(start + timedelta(days=offset)).cycle_start for offset in range(60)}

        assert starts == {start}
        assert resolve_cycle(start + timedelta(days=60)).cycle_start == date(2024, 4, 30)

    def test_windows_partition_sixty_days(self):
        windows = resolve_cycle(date(2025, 7, 4))

        reading_days = (windows.reading_end - windows.reading_start).days + 1
        payment_days = (windows.payment_end - windows.payment_start).days + 1
        idle_days = (windows.idle_end - windows.payment_end).days

        assert (reading_days, payment_days, idle_days) == (15, 15, 30)
        assert windows.payment_start == windows.reading_end + timedelta(days=1)
        assert (windows.idle_end - windows.cycle_start).days + 1 == 60

    def test_dates_before_epoch_use_negative_index(self):
        windows = resolve_cycle(date(2023, 12, 31))

        assert windows.cycle_index == -1
        assert windows.cycle_start == date(2023, 11, 2)
        assert windows.idle_end == date(2023, 12, 31)

    @pytest.mark.parametrize("value", [date.min, date(1, 1, 1) + timedelta(days=30), date.max])
    def test_dates_near_calendar_limits_raise_domain_error(self, value):
        with pytest.raises(DateOutOfRangeError):
            resolve_cycle(value)

    def test_aware_datetime_uses_utc_date(self):
        # 2024-01-01 03:00 IST is 2023-12-31 21:30 UTC, the last idle day of cycle -1
        windows = resolve_cycle(datetime(2024, 1, 1, 3, 0, tzinfo=IST))

        assert windows.cycle_index == -1

    def test_window_membership_is_inclusive(self):
        windows = resolve_cycle(date(2024, 1, 1))

        assert windows.in_reading_window(date(2024, 1, 15))
        assert not windows.in_reading_window(date(2024, 1, 16))
        assert windows.in_payment_window(datetime(2024, 1, 30, 18, 0))
        assert not windows.in_payment_window(date(2024, 1, 31))
        assert windows.payment_deadline == DEADLINE


class TestTryAcceptReading:
    """Tests for the reading acceptance policy."""

    def test_accepts_reading_in_window(self, fresh_state):
        state = try_accept_reading(fresh_state, date(2024, 1, 10), current_reading=150)

        assert state.current_reading == Decimal("150")
        assert state.amount == Decimal("250.00")
        assert state.last_bill_date == datetime(2024, 1, 10)
        assert state.next_payment_deadline == DEADLINE
        assert state.payment_status == PaymentStatus.PENDING
        assert len(state.readings) == 1
        assert state.readings[0].units == Decimal("50")
        assert state.readings[0].manual_reading == Decimal("150")

    def test_input_state_is_not_modified(self, fresh_state):
        try_accept_reading(fresh_state, date(2024, 1, 10), current_reading=150)

        assert fresh_state.amount == Decimal("0")
        assert fresh_state.readings == ()

    def test_units_only_derives_new_reading(self, fresh_state):
        state = try_accept_reading(fresh_state, date(2024, 1, 2), units_consumed="20")

        assert state.current_reading == Decimal("120")
        assert state.amount == Decimal("100.00")

    def test_tariff_lookup_is_case_insensitive(self, fresh_state):
        industrial = replace(fresh_state, tariff_plan="INDUSTRIAL")

        state = try_accept_reading(industrial, date(2024, 1, 10), current_reading=110)

        assert state.amount == Decimal("150.00")

    def test_rejects_day_twenty(self, fresh_state):
        with pytest.raises(OutsideReadingWindowError):
            try_accept_reading(fresh_state, date(2024, 1, 20), current_reading=150)

    def test_rejects_second_reading_in_cycle(self, fresh_state):
        first = try_accept_reading(fresh_state, date(2024, 1, 5), current_reading=150)

        with pytest.raises(DuplicateReadingThisCycleError):
            try_accept_reading(first, date(2024, 1, 10), current_reading=180)

    def test_rejects_second_aware_reading_in_cycle(self, fresh_state):
        first = try_accept_reading(
            fresh_state, datetime(2024, 1, 2, 3, 0, tzinfo=IST), current_reading=150
        )

        assert first.last_bill_date == datetime(2024, 1, 1, 21, 30)
        assert first.next_payment_deadline == DEADLINE
        with pytest.raises(DuplicateReadingThisCycleError):
            try_accept_reading(
                first, datetime(2024, 1, 5, 10, 0, tzinfo=IST), current_reading=180
            )

    def test_aware_reading_before_utc_cycle_start_is_outside_window(self, fresh_state):
        with pytest.raises(OutsideReadingWindowError):
            try_accept_reading(
                fresh_state, datetime(2024, 1, 1, 3, 0, tzinfo=IST), current_reading=150
            )

    @pytest.mark.parametrize("value", [100, 90])
    def test_rejects_non_increasing_reading(self, fresh_state, value):
        with pytest.raises(NonIncreasingReadingError) as exc_info:
            try_accept_reading(fresh_state, date(2024, 1, 10), current_reading=value)

        assert exc_info.value.previous == Decimal("100")

    def test_override_bypasses_window_and_trusts_units(self, fresh_state):
        state = try_accept_reading(
            fresh_state,
            date(2024, 1, 20),
            current_reading=90,
            units_consumed=30,
            is_override=True,
        )

        assert state.current_reading == Decimal("90")
        assert state.readings[-1].units == Decimal("30")
        assert state.amount == Decimal("150.00")
        assert state.next_payment_deadline == DEADLINE

    def test_override_without_units_clamps_to_zero(self, fresh_state):
        state = try_accept_reading(
            fresh_state, date(2024, 1, 20), current_reading=80, is_override=True
        )

        assert state.readings[-1].units == Decimal("0")
        assert state.amount == Decimal("0.00")

    def test_override_allows_second_reading(self, fresh_state):
        first = try_accept_reading(fresh_state, date(2024, 1, 5), current_reading=150)

        second = try_accept_reading(first, date(2024, 1, 6), current_reading=160, is_override=True)

        assert len(second.readings) == 2
        assert second.amount == Decimal("50.00")

    def test_unknown_tariff_plan(self, fresh_state):
        with pytest.raises(InvalidTariffPlanError):
            try_accept_reading(
                replace(fresh_state, tariff_plan="Residential"),
                date(2024, 1, 10),
                current_reading=150,
            )

    @pytest.mark.parametrize(
        "kwargs",
        [{}, {"current_reading": "abc"}, {"current_reading": -5, "is_override": True}],
    )
    def test_invalid_reading_values(self, fresh_state, kwargs):
        with pytest.raises(InvalidReadingError):
            try_accept_reading(fresh_state, date(2024, 1, 10), **kwargs)

    def test_new_reading_resets_fine(self, billed_state):
        fined = evaluate_overdue_and_fine(billed_state, datetime(2024, 2, 3))

        state = try_accept_reading(fined, date(2024, 3, 5), current_reading=260)

        assert not state.is_fine_applied
        assert state.total_fine_with_tax == Decimal("0")
        assert state.fine_applied_date is None
        assert state.payment_status == PaymentStatus.PENDING
        assert state.amount == Decimal("300.00")
        assert state.next_payment_deadline == datetime(2024, 3, 30)


class TestFineAndOverdue:
    """Tests for fine calculation and overdue evaluation."""

    def test_default_fine(self):
        fine = calculate_fine()

        assert fine.fine_amount == Decimal("100.00")
        assert fine.cgst_on_fine == Decimal("9.00")
        assert fine.sgst_on_fine == Decimal("9.00")
        assert fine.total_fine_with_tax == Decimal("118.00")

    def test_taxes_rounded_independently(self):
        fine = calculate_fine(BillingConfig(fixed_fine=Decimal("55.55")))

        assert fine.cgst_on_fine == Decimal("5.00")
        assert fine.total_fine_with_tax == Decimal("65.55")

    def test_overdue_is_strictly_after_deadline(self, billed_state):
        assert not is_overdue(billed_state, DEADLINE)
        assert is_overdue(billed_state, DEADLINE + timedelta(seconds=1))

    def test_paid_bill_is_never_overdue(self, billed_state):
        paid = replace(billed_state, payment_status=PaymentStatus.PAID)

        assert not is_overdue(paid, datetime(2024, 3, 1))

    def test_applies_fine_once(self, billed_state):
        now = datetime(2024, 2, 2, 10, 0)

        fined = evaluate_overdue_and_fine(billed_state, now)

        assert fined.is_fine_applied
        assert fined.payment_status == PaymentStatus.OVERDUE
        assert fined.fine_applied_date == now
        assert fined.total_fine_with_tax == Decimal("118.00")

    def test_evaluation_is_idempotent(self, billed_state):
        now = datetime(2024, 2, 2, 10, 0)
        fined = evaluate_overdue_and_fine(billed_state, now)

        assert evaluate_overdue_and_fine(fined, now) == fined
        later = evaluate_overdue_and_fine(fined, now + timedelta(days=5))
        assert later.fine_applied_date == now

    def test_not_overdue_unchanged(self, billed_state):
        assert evaluate_overdue_and_fine(billed_state, datetime(2024, 1, 20)) == billed_state

    def test_zero_amount_pending_is_settled(self, billed_state):
        empty = replace(billed_state, amount=Decimal("0"))

        state = evaluate_overdue_and_fine(empty, datetime(2024, 2, 5))

        assert state.payment_status == PaymentStatus.PAID
        assert state.next_payment_deadline is None
        assert not state.is_fine_applied
        assert not is_overdue(empty, datetime(2024, 2, 5))

    def test_total_amount_due(self, billed_state):
        now = datetime(2024, 2, 2)
        fined = evaluate_overdue_and_fine(billed_state, now)

        assert total_amount_due(billed_state, datetime(2024, 1, 20)) == Decimal("500.00")
        assert total_amount_due(fined, now) == Decimal("618.00")


class TestClassifyReminder:
    """Tests for reminder precedence."""

    def test_reading_pending(self, fresh_state):
        reminder = classify_reminder(fresh_state, datetime(2024, 1, 3, 12, 0))

        assert reminder.type == ReminderType.READING
        assert "Mon Jan 15 2024" in reminder.message
        assert "13 day(s) left" in reminder.message

    def test_reading_already_submitted_outside_payment_window(self, billed_state):
        reminder = classify_reminder(billed_state, datetime(2024, 1, 10))

        assert reminder.type == ReminderType.NONE
        assert reminder.message == ""
        assert reminder.days_until_deadline == 20

    @pytest.mark.parametrize(
        "now, expected_type, expected_days",
        [
            (DEADLINE - timedelta(days=2), ReminderType.URGENT, 2),
            (datetime(2024, 1, 27), ReminderType.URGENT, 3),
            (datetime(2024, 1, 25), ReminderType.WARNING, 5),
            (datetime(2024, 1, 23), ReminderType.WARNING, 7),
            (datetime(2024, 1, 17), ReminderType.NOTICE, 13),
        ],
    )
    def test_payment_window_reminders(self, billed_state, now, expected_type, expected_days):
        reminder = classify_reminder(billed_state, now)

        assert reminder.type == expected_type
        assert reminder.days_until_deadline == expected_days

    def test_overdue(self, billed_state):
        reminder = classify_reminder(billed_state, datetime(2024, 2, 3))

        assert reminder.type == ReminderType.OVERDUE
        assert "Tue Jan 30 2024" in reminder.message
        assert reminder.days_until_deadline < 0

    def test_reading_takes_precedence_over_overdue(self, billed_state):
        reminder = classify_reminder(billed_state, datetime(2024, 3, 3))

        assert is_overdue(billed_state, datetime(2024, 3, 3))
        assert reminder.type == ReminderType.READING

    def test_idle_window(self, billed_state):
        paid = settle_payment(billed_state, datetime(2024, 1, 20))

        assert classify_reminder(paid, datetime(2024, 2, 10)).type == ReminderType.NONE

    def test_zero_amount_never_overdue(self, billed_state):
        empty = replace(billed_state, amount=Decimal("0"))

        assert classify_reminder(empty, datetime(2024, 2, 3)).type == ReminderType.NONE


class TestSettlePayment:
    """Tests for payment settlement."""

    def test_settles_bill_and_fine(self, billed_state):
        fined = evaluate_overdue_and_fine(billed_state, datetime(2024, 2, 2))
        fined = replace(fined, reminder_sent_3_days=True, overdue_reminder_sent=True)
        now = datetime(2024, 2, 4, 15, 30)

        paid = settle_payment(fined, now)

        assert paid.last_paid_amount == Decimal("618.00")
        assert paid.amount == Decimal("0")
        assert paid.payment_status == PaymentStatus.PAID
        assert paid.next_payment_deadline is None
        assert paid.last_payment_date == now
        assert not paid.is_fine_applied
        assert paid.fine_amount == paid.total_fine_with_tax == Decimal("0")
        assert not (paid.reminder_sent_3_days or paid.overdue_reminder_sent)

    def test_settles_bill_without_fine(self, billed_state):
        paid = settle_payment(billed_state, datetime(2024, 1, 20))

        assert paid.last_paid_amount == Decimal("500.00")


class TestMissedReading:
    """Tests for missed-reading detection."""

    def test_window_still_open(self, fresh_state):
        assert not missed_reading(fresh_state, datetime(2024, 1, 15, 23, 0))

    def test_no_reading_after_window(self, fresh_state):
        assert missed_reading(fresh_state, datetime(2024, 1, 16))

    def test_reading_this_cycle(self, billed_state):
        assert not missed_reading(billed_state, datetime(2024, 1, 20))

    def test_reading_in_previous_cycle(self, billed_state):
        assert missed_reading(billed_state, datetime(2024, 3, 20))

    def test_override_reading_in_idle_window_counts(self, fresh_state):
        state = replace(fresh_state, last_bill_date=datetime(2024, 2, 10))

        assert not missed_reading(state, datetime(2024, 2, 15))


class TestBillSummary:
    """Tests for the bill summary snapshot."""

    def test_overdue_summary(self, billed_state):
        summary = build_bill_summary(billed_state, datetime(2024, 2, 2))

        assert summary.state.is_fine_applied
        assert summary.is_overdue
        assert summary.fine.total_fine_with_tax == Decimal("118.00")
        assert summary.total_amount_due == Decimal("618.00")
        assert summary.reminder.type == ReminderType.OVERDUE
        assert summary.tariff_rate == Decimal("5")
        assert not summary.reading_pending

    def test_reading_pending_summary(self, fresh_state):
        summary = build_bill_summary(fresh_state, datetime(2024, 3, 2))

        assert summary.reading_pending
        assert summary.reading_window_start == date(2024, 3, 1)
        assert summary.reading_window_end == date(2024, 3, 15)
        assert summary.last_units_consumed is None
        assert summary.fine.total_fine_with_tax == Decimal("0")

    def test_days_until_without_deadline(self):
        assert days_until(None, datetime(2024, 1, 1)) == 0


class TestCalculateBill:
    """Tests for the standalone bill calculator."""

    def test_urgent_before_deadline(self):
        result = calculate_bill("250", DEADLINE, datetime(2024, 1, 28))

        assert result.bill_amount == Decimal("250.00")
        assert result.days_until_deadline == 2
        assert not result.is_overdue
        assert result.reminder.type == ReminderType.URGENT
        assert result.reminder.message == (
            "URGENT: Only 2 day(s) left to pay your bill! Deadline: Tue Jan 30 2024"
        )
        assert result.fine is None
        assert result.total_amount_due == Decimal("250.00")

    def test_overdue_adds_fine(self):
        result = calculate_bill(Decimal("250"), date(2024, 1, 30), datetime(2024, 2, 2, 12, 0))

        assert result.is_overdue
        assert result.days_until_deadline == -3
        assert result.reminder.type == ReminderType.OVERDUE
        assert result.reminder.message.startswith("OVERDUE: Your bill payment was due on Tue Jan 30 2024")
        assert result.fine.total_fine_with_tax == Decimal("118.00")
        assert result.total_amount_due == Decimal("368.00")

    def test_deadline_instant_is_not_overdue(self):
        result = calculate_bill("99.999", DEADLINE, DEADLINE)

        assert not result.is_overdue
        assert result.days_until_deadline == 0
        assert result.reminder.type == ReminderType.NONE
        assert result.reminder.message == ""
        assert result.total_amount_due == Decimal("100.00")

    @pytest.mark.parametrize(
        "now, expected_type",
        [
            (datetime(2024, 1, 25), ReminderType.WARNING),
            (datetime(2024, 1, 10), ReminderType.NOTICE),
        ],
    )
    def test_reminder_bands(self, now, expected_type):
        assert calculate_bill("10", DEADLINE, now).reminder.type == expected_type

    @pytest.mark.parametrize(
        "amount, deadline",
        [
            (None, DEADLINE),
            ("250", None),
            (0, DEADLINE),
            ("-5", DEADLINE),
            ("abc", DEADLINE),
            ("NaN", DEADLINE),
        ],
    )
    def test_rejects_missing_or_non_positive_amount(self, amount, deadline):
        with pytest.raises(InvalidBillError):
            calculate_bill(amount, deadline, datetime(2024, 1, 10))

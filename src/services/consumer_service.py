"""Consumer billing service: persists billing engine results per consumer."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.consumer import Consumer, ConsumerReading
from src.services.audit_service import AuditService
from src.services.billing_cycle import (
    DEFAULT_CONFIG,
    BillingConfig,
    BillingState,
    BillSummary,
    PaymentStatus,
    ReadingEntry,
    build_bill_summary,
    evaluate_overdue_and_fine,
    missed_reading,
    normalize_settled,
    resolve_cycle,
    settle_payment,
    try_accept_reading,
)
from src.services.errors import (
    BillingError,
    ConsumerAlreadyExistsError,
    ConsumerNotFoundError,
    PersistenceError,
)

logger = logging.getLogger(__name__)

# Consumer columns mirrored one-to-one by BillingState
_BILLING_FIELDS = tuple(
    f.name for f in fields(BillingState) if f.name not in ("tariff_plan", "readings")
)

PROFILE_FIELDS = frozenset(
    {"meter_serial_number", "name", "address", "phone_number", "tariff_plan"}
)


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class ConsumerDetails:
    """Reading-form view of a consumer."""

    consumer_number: str
    name: str
    meter_serial_number: str
    tariff_plan: str
    amount: Decimal
    previous_reading: Decimal
    last_units_consumed: Decimal
    last_reading_date: datetime | None


def _snapshot(state: BillingState) -> dict[str, Any]:
    deadline = state.next_payment_deadline
    return {
        "amount": str(state.amount),
        "current_reading": str(state.current_reading),
        "payment_status": state.payment_status.value,
        "next_payment_deadline": deadline.isoformat() if deadline else None,
        "total_fine_with_tax": str(state.total_fine_with_tax),
    }


class ConsumerService:
    """Service for consumer billing database operations.

    Each mutating operation is one read-modify-write on a single consumer row:
    the row is loaded with SELECT ... FOR UPDATE, the billing engine computes
    the new state, and the result is committed once.
    """

    def __init__(self, db_session: Session, config: BillingConfig = DEFAULT_CONFIG):
        """Initialize with database session and billing configuration."""
        self.db = db_session
        self.config = config

    @contextmanager
    def _transaction(self, action: str) -> Iterator[None]:
        """Commit on success, roll back on any error.

        SQLAlchemy failures are re-raised as PersistenceError so callers can
        tell them apart from billing validation errors.
        """
        try:
            yield
            self.db.commit()
        except BillingError as e:
            self.db.rollback()
            logger.warning("%s rejected: %s", action, e.message)
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Database error during %s: %s", action, e)
            raise PersistenceError(f"Failed to {action}") from e
        except Exception:
            self.db.rollback()
            raise

    def _load(self, consumer_number: str, for_update: bool = True) -> Consumer:
        stmt = select(Consumer).where(Consumer.consumer_number == consumer_number)
        if for_update:
            stmt = stmt.with_for_update()
        consumer = self.db.execute(stmt).scalar_one_or_none()
        if consumer is None:
            raise ConsumerNotFoundError(consumer_number)
        return consumer

    @staticmethod
    def to_state(consumer: Consumer) -> BillingState:
        """Build the engine's view of a persisted consumer."""
        values = {name: getattr(consumer, name) for name in _BILLING_FIELDS}
        values["payment_status"] = PaymentStatus(consumer.payment_status or PaymentStatus.PENDING)
        return BillingState(
            tariff_plan=consumer.tariff_plan,
            readings=tuple(
                ReadingEntry(
                    reading_date=reading.reading_date,
                    units=reading.units,
                    manual_reading=reading.manual_reading,
                )
                for reading in consumer.readings
            ),
            **values,
        )

    @staticmethod
    def apply_state(consumer: Consumer, state: BillingState) -> None:
        """Copy engine results onto the ORM row; new history entries are appended."""
        for name in _BILLING_FIELDS:
            setattr(consumer, name, getattr(state, name))
        for entry in state.readings[len(consumer.readings):]:
            consumer.readings.append(
                ConsumerReading(
                    reading_date=entry.reading_date,
                    units=entry.units,
                    manual_reading=entry.manual_reading,
                )
            )

    # Consumer records

    def create_consumer(
        self,
        consumer_number: str,
        meter_serial_number: str,
        name: str,
        address: str,
        phone_number: str,
        tariff_plan: str,
        current_reading: Decimal = Decimal("0"),
    ) -> Consumer:
        """Register a consumer with default billing fields.

        Raises:
            InvalidTariffPlanError: If the tariff plan has no rate
            ConsumerAlreadyExistsError: If the consumer number is taken
        """
        self.config.rate_for(tariff_plan)

        with self._transaction("create consumer"):
            existing = self.db.execute(
                select(Consumer.id).where(Consumer.consumer_number == consumer_number)
            ).first()
            if existing:
                raise ConsumerAlreadyExistsError(consumer_number)

            consumer = Consumer(
                consumer_number=consumer_number,
                meter_serial_number=meter_serial_number,
                name=name,
                address=address,
                phone_number=phone_number,
                tariff_plan=tariff_plan,
                current_reading=current_reading,
                payment_status=PaymentStatus.PENDING,
            )
            self.db.add(consumer)
            try:
                self.db.flush()
            except IntegrityError as e:
                raise ConsumerAlreadyExistsError(consumer_number) from e
            AuditService.log(self.db, consumer_number, "consumer.create", actor="admin")

        logger.info("Created consumer %s (%s)", consumer_number, tariff_plan)
        return consumer

    def list_consumers(self) -> list[Consumer]:
        """Get all consumers ordered by consumer number."""
        try:
            stmt = select(Consumer).order_by(Consumer.consumer_number)
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing consumers: %s", e)
            raise PersistenceError("Failed to list consumers") from e

    def get_consumer(self, consumer_number: str) -> Consumer:
        """Get a consumer, settling a zero-amount Pending bill as Paid.

        Raises:
            ConsumerNotFoundError: If no consumer has this number
        """
        with self._transaction("get consumer"):
            consumer = self._load(consumer_number)
            state = self.to_state(consumer)
            settled = normalize_settled(state)
            if settled != state:
                self.apply_state(consumer, settled)
                logger.info("Consumer %s owes nothing, marked Paid", consumer_number)
        return consumer

    def get_consumer_details(self, consumer_number: str) -> ConsumerDetails:
        """Get the fields a reading form needs: previous meter value and last usage."""
        try:
            consumer = self._load(consumer_number, for_update=False)
            last = consumer.readings[-1] if consumer.readings else None
        except SQLAlchemyError as e:
            logger.error("Database error loading consumer %s: %s", consumer_number, e)
            raise PersistenceError("Failed to load consumer") from e
        previous = consumer.current_reading or Decimal("0")
        if last is not None and last.manual_reading is not None:
            previous = last.manual_reading

        return ConsumerDetails(
            consumer_number=consumer.consumer_number,
            name=consumer.name,
            meter_serial_number=consumer.meter_serial_number,
            tariff_plan=consumer.tariff_plan,
            amount=consumer.amount,
            previous_reading=previous,
            last_units_consumed=last.units if last else Decimal("0"),
            last_reading_date=last.reading_date if last else None,
        )

    def update_profile(self, consumer_number: str, **changes: Any) -> Consumer:
        """Update profile fields. Billing fields only change through billing operations.

        Raises:
            ValueError: If a non-profile field is given
            InvalidTariffPlanError: If a new tariff plan has no rate
            ConsumerNotFoundError: If no consumer has this number
        """
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "tariff_plan" in changes:
            self.config.rate_for(changes["tariff_plan"])

        with self._transaction("update consumer"):
            consumer = self._load(consumer_number)
            for name, value in changes.items():
                setattr(consumer, name, value)
        return consumer

    def delete_consumer(self, consumer_number: str) -> None:
        """Delete a consumer with its reading history."""
        with self._transaction("delete consumer"):
            consumer = self._load(consumer_number)
            self.db.delete(consumer)
            AuditService.log(self.db, consumer_number, "consumer.delete", actor="admin")
        logger.info("Deleted consumer %s", consumer_number)

    # Billing operations

    def submit_reading(
        self,
        consumer_number: str,
        reading_date: date | datetime | None = None,
        *,
        current_reading: Any = None,
        units_consumed: Any = None,
        is_override: bool = False,
        ai_extracted_reading: Decimal | None = None,
    ) -> Consumer:
        """Accept a meter reading and bill it.

        Args:
            consumer_number: Consumer number
            reading_date: Date of the reading (default: now)
            current_reading: New cumulative meter value (optional)
            units_consumed: Units since last reading (optional)
            is_override: Admin override of window and monotonicity checks
            ai_extracted_reading: Value proposed by the meter image service, kept for reference

        Returns:
            Updated Consumer

        Raises:
            ConsumerNotFoundError, OutsideReadingWindowError,
            DuplicateReadingThisCycleError, NonIncreasingReadingError,
            InvalidReadingError, InvalidTariffPlanError
        """
        reading_date = reading_date or utcnow()
        actor = "admin" if is_override else "citizen"

        with self._transaction("submit reading"):
            consumer = self._load(consumer_number)
            state = try_accept_reading(
                self.to_state(consumer),
                reading_date,
                current_reading=current_reading,
                units_consumed=units_consumed,
                is_override=is_override,
                config=self.config,
            )
            self.apply_state(consumer, state)
            if ai_extracted_reading is not None:
                consumer.readings[-1].ai_extracted_reading = ai_extracted_reading
            AuditService.log(
                self.db, consumer_number, "reading.accept", actor=actor, changes=_snapshot(state)
            )

        logger.info(
            "Reading accepted for %s: reading=%s amount=%s deadline=%s override=%s",
            consumer_number,
            state.current_reading,
            state.amount,
            state.next_payment_deadline,
            is_override,
        )
        return consumer

    def get_bill_summary(
        self, consumer_number: str, now: datetime | None = None
    ) -> tuple[Consumer, BillSummary]:
        """Evaluate overdue status and fine, persist it, and summarize the bill."""
        now = now or utcnow()

        with self._transaction("build bill summary"):
            consumer = self._load(consumer_number)
            state = self.to_state(consumer)
            summary = build_bill_summary(state, now, self.config)
            if summary.state != state:
                self.apply_state(consumer, summary.state)
                if summary.state.is_fine_applied and not state.is_fine_applied:
                    AuditService.log(
                        self.db, consumer_number, "fine.apply", changes=_snapshot(summary.state)
                    )
                    logger.info("Fine applied to %s", consumer_number)

        return consumer, summary

    def mark_paid(self, consumer_number: str, now: datetime | None = None) -> Consumer:
        """Settle the outstanding bill plus any fine."""
        now = now or utcnow()

        with self._transaction("mark payment"):
            consumer = self._load(consumer_number)
            state = settle_payment(self.to_state(consumer), now)
            self.apply_state(consumer, state)
            AuditService.log(
                self.db,
                consumer_number,
                "payment.settle",
                changes={"last_paid_amount": str(state.last_paid_amount)},
            )

        logger.info("Payment of %s recorded for %s", state.last_paid_amount, consumer_number)
        return consumer

    # Sweeps

    def sweep_fines(self, now: datetime | None = None) -> list[Consumer]:
        """Apply due fines to every unpaid consumer and return the fined ones.

        Each consumer is evaluated and committed in its own transaction. A
        failure leaves earlier consumers updated; re-running is safe because
        a fine is never applied twice to the same bill.
        """
        now = now or utcnow()
        try:
            numbers = (
                self.db.execute(
                    select(Consumer.consumer_number)
                    .where(Consumer.payment_status != PaymentStatus.PAID)
                    .order_by(Consumer.consumer_number)
                )
                .scalars()
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("Database error loading unpaid consumers: %s", e)
            raise PersistenceError("Failed to load unpaid consumers") from e

        fined = []
        for consumer_number in numbers:
            with self._transaction("apply fine"):
                consumer = self._load(consumer_number)
                state = self.to_state(consumer)
                evaluated = evaluate_overdue_and_fine(state, now, self.config)
                if evaluated != state:
                    self.apply_state(consumer, evaluated)
                    if evaluated.is_fine_applied and not state.is_fine_applied:
                        AuditService.log(
                            self.db, consumer_number, "fine.apply", changes=_snapshot(evaluated)
                        )
            if evaluated.is_fine_applied:
                fined.append(consumer)

        logger.info("Fine sweep: %d of %d unpaid consumers fined", len(fined), len(numbers))
        return fined

    def find_missed_readings(self, now: datetime | None = None) -> list[Consumer]:
        """Consumers with no reading in the current cycle once its reading window closed."""
        now = now or utcnow()
        missed = [
            consumer
            for consumer in self.list_consumers()
            if missed_reading(self.to_state(consumer), now, self.config)
        ]
        windows = resolve_cycle(now, self.config)
        logger.info(
            "Missed readings for window %s..%s: %d",
            windows.reading_start,
            windows.reading_end,
            len(missed),
        )
        return missed


__all__ = ["ConsumerDetails", "ConsumerService", "PROFILE_FIELDS", "utcnow"]

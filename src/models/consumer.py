"""Consumer ORM models: billing record and meter reading history."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel
from src.services.billing_cycle import PaymentStatus


class Consumer(Base, BaseModel):
    """Electricity consumer with the billing fields of the current cycle.

    Billing instants (last_bill_date, next_payment_deadline, ...) are stored
    as naive UTC datetimes, the same representation the billing engine uses.
    """

    __tablename__ = "consumers"

    # Identification
    consumer_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
    )
    meter_serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    tariff_plan: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Domestic, Commercial or Industrial",
    )

    # Meter and bill
    current_reading: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    last_paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )

    # Cycle & deadline
    last_bill_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    next_payment_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Payment status
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    last_payment_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Fine (flat fine + 9% CGST + 9% SGST)
    is_fine_applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    fine_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    cgst_on_fine: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    sgst_on_fine: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    total_fine_with_tax: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    fine_applied_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Reminder tracking
    reminder_sent_7_days: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_sent_3_days: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    overdue_reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    readings: Mapped[list["ConsumerReading"]] = relationship(
        "ConsumerReading",
        back_populates="consumer",
        cascade="all, delete-orphan",
        order_by="ConsumerReading.id",
    )

    def __repr__(self) -> str:
        return (
            f"<Consumer(id={self.id}, consumer_number={self.consumer_number}, "
            f"tariff_plan={self.tariff_plan}, amount={self.amount}, "
            f"payment_status={self.payment_status})>"
        )


class ConsumerReading(Base, BaseModel):
    """One accepted meter reading (append-only history)."""

    __tablename__ = "consumer_readings"

    consumer_id: Mapped[int] = mapped_column(
        ForeignKey("consumers.id", ondelete="CASCADE"),
        nullable=False,
    )
    reading_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    units: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    manual_reading: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    ai_extracted_reading: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Reading proposed by the meter image service, if any",
    )

    consumer: Mapped["Consumer"] = relationship("Consumer", back_populates="readings")

    __table_args__ = (Index("idx_consumer_reading_consumer_date", "consumer_id", "reading_date"),)

    def __repr__(self) -> str:
        return (
            f"<ConsumerReading(id={self.id}, consumer_id={self.consumer_id}, "
            f"reading_date={self.reading_date}, units={self.units})>"
        )


__all__ = ["Consumer", "ConsumerReading"]

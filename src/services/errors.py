"""Billing error types and response helpers."""

from typing import Any, Dict

from fastapi import status


class BillingError(Exception):
    """Base class for recoverable billing errors."""

    def __init__(self, message: str, code: str, http_status: int = status.HTTP_400_BAD_REQUEST):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)


class OutsideReadingWindowError(BillingError):
    """Reading submitted outside days 1-15 of its cycle."""

    def __init__(
        self,
        message: str = "Reading can only be logged during the 1-15 window of the active cycle.",
    ):
        super().__init__(message, "outside_reading_window")


class DuplicateReadingThisCycleError(BillingError):
    """A reading was already recorded in this cycle's reading window."""

    def __init__(
        self,
        message: str = "Reading already submitted for this cycle (days 1-15). "
        "Only one reading allowed per cycle.",
    ):
        super().__init__(message, "duplicate_reading_this_cycle")


class NonIncreasingReadingError(BillingError):
    """New cumulative reading is not above the previous one."""

    def __init__(self, previous: Any):
        super().__init__(
            f"Current reading must be greater than previous reading ({previous}).",
            "non_increasing_reading",
        )
        self.previous = previous


class InvalidReadingError(BillingError):
    """Reading payload is missing or negative."""

    def __init__(self, message: str = "Invalid meter reading"):
        super().__init__(message, "invalid_reading")


class InvalidTariffPlanError(BillingError):
    """Tariff plan has no configured rate."""

    def __init__(self, plan: str | None):
        super().__init__(f"Invalid tariff plan: {plan!r}", "invalid_tariff_plan")
        self.plan = plan


class InvalidBillError(BillingError):
    """Bill calculation input is missing or not a positive amount."""

    def __init__(self, message: str = "Invalid bill amount"):
        super().__init__(message, "invalid_bill")


class DateOutOfRangeError(BillingError):
    """Date too close to the calendar limits to place in a billing cycle."""

    def __init__(self, value: Any):
        super().__init__(f"Date out of supported range: {value}", "date_out_of_range")
        self.value = value


class ConsumerNotFoundError(BillingError):
    """No consumer with the given number."""

    def __init__(self, consumer_number: str):
        super().__init__(
            f"Consumer {consumer_number} not found",
            "consumer_not_found",
            status.HTTP_404_NOT_FOUND,
        )
        self.consumer_number = consumer_number


class ConsumerAlreadyExistsError(BillingError):
    """A consumer with this number is already registered."""

    def __init__(self, consumer_number: str):
        super().__init__(
            f"Consumer {consumer_number} already exists",
            "consumer_already_exists",
        )
        self.consumer_number = consumer_number


class PersistenceError(Exception):
    """Record store failure, kept apart from billing validation errors."""

    code = "persistence_error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(error: BillingError) -> Dict[str, Any]:
    """Create a standardized error response."""
    return {
        "error": {
            "code": error.code,
            "message": error.message,
        }
    }


__all__ = [
    "BillingError",
    "OutsideReadingWindowError",
    "DuplicateReadingThisCycleError",
    "NonIncreasingReadingError",
    "InvalidReadingError",
    "InvalidTariffPlanError",
    "InvalidBillError",
    "DateOutOfRangeError",
    "ConsumerNotFoundError",
    "ConsumerAlreadyExistsError",
    "PersistenceError",
    "error_response",
]

"""FastAPI dependencies shared by billing routes."""

from datetime import datetime

from fastapi import Depends
from sqlalchemy.orm import Session

from src.config.settings import get_settings
from src.services.billing_cycle import BillingConfig
from src.services.consumer_service import ConsumerService, utcnow
from src.services.db import get_db


def get_now() -> datetime:
    """Evaluation instant for the request (overridden in tests)."""
    return utcnow()


def get_billing_config() -> BillingConfig:
    return get_settings().billing_config()


def get_consumer_service(
    db: Session = Depends(get_db),
    config: BillingConfig = Depends(get_billing_config),
) -> ConsumerService:
    """Consumer service bound to the request's session and the configured billing rules."""
    return ConsumerService(db, config)

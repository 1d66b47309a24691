from __future__ import annotations

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from backend.app.core.config import (
    FULFILLMENT_API_URL,
    FULFILLMENT_API_TOKEN,
    FULFILLMENT_TIMEOUT_SECONDS,
)
from backend.app.db.session import SessionLocal
from backend.services.fulfillment_source import (
    FulfillmentSource,
    HttpFulfillmentSource,
    LocalShipmentSource,
)

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_fulfillment_source(db: Session = Depends(get_db)) -> FulfillmentSource:
    local = LocalShipmentSource(db)
    if not FULFILLMENT_API_URL:
        return local
    return HttpFulfillmentSource(
        FULFILLMENT_API_URL,
        token=FULFILLMENT_API_TOKEN,
        timeout=FULFILLMENT_TIMEOUT_SECONDS,
        fallback=local,
    )

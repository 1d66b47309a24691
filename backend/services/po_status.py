"""
Cycle de vie d'un PO.

draft -> pending -> sent -> confirmed -> shipped -> partial -> received
(tout statut non terminal) -> cancelled

Le statut après une réception est *dérivé* des quantités cumulées des
lignes ; received / cancelled sont terminaux.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from backend.app.db.models.core_types import (
    POStatus,
    EDITABLE_PO_STATUSES,
    TERMINAL_PO_STATUSES,
)
from backend.app.db.models.models_v1 import PurchaseOrder, Supplier
from backend.services.exceptions import InvalidState
from backend.services.quantity_ledger import OrderTotals

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


def derive_status(current: POStatus, totals: OrderTotals, backorders_created: bool) -> POStatus:
    if current in TERMINAL_PO_STATUSES:
        return current

    all_received = totals.accounted >= totals.ordered
    if all_received:
        return POStatus.received

    if totals.received > 0:
        # Reliquat suivi via Backorder : le PO est considéré reçu
        return POStatus.received if backorders_created else POStatus.partial

    return current


def ensure_editable(po: PurchaseOrder) -> None:
    if po.status not in EDITABLE_PO_STATUSES:
        raise InvalidState(
            f"Purchase order {po.po_number} is {po.status.value}; "
            "items can only be changed while draft or pending"
        )


def ensure_receivable(po: PurchaseOrder) -> None:
    if po.status in (POStatus.draft, POStatus.cancelled):
        raise InvalidState(f"Purchase order {po.po_number} is {po.status.value}; cannot receive items")


def recalculate_totals(po: PurchaseOrder) -> None:
    subtotal = sum((Decimal(it.line_total or 0) for it in po.items), Decimal("0"))
    po.subtotal = subtotal
    po.total = (
        subtotal
        + Decimal(po.shipping_cost or 0)
        + Decimal(po.tax or 0)
        + Decimal(po.other_costs or 0)
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite rend des datetimes naïfs
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def lead_time_days(created_at: datetime, now: datetime) -> int:
    delta = _as_utc(now) - _as_utc(created_at)
    return int(round(delta.total_seconds() / SECONDS_PER_DAY))


def record_lead_time(supplier: Supplier, po: PurchaseOrder, now: datetime) -> int | None:
    """
    Alimente la moyenne glissante du fournisseur à l'entrée en `received`.
    Ignoré si le PO n'a pas de date d'arrivée prévue.
    """
    if po.expected_arrival_date is None:
        return None

    observed = lead_time_days(po.created_at, now)
    samples = (supplier.lead_time_samples or 0) + 1
    previous = Decimal(supplier.avg_actual_lead_time) if supplier.avg_actual_lead_time is not None else None

    if previous is None:
        avg = Decimal(observed)
    else:
        avg = previous + (Decimal(observed) - previous) / Decimal(samples)

    supplier.avg_actual_lead_time = avg.quantize(Decimal("0.01"))
    supplier.lead_time_samples = samples

    logger.info(
        "Supplier %s lead time observed=%sd avg=%s (n=%s)",
        supplier.id, observed, supplier.avg_actual_lead_time, samples,
    )
    return observed

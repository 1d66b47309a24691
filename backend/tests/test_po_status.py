import inspect
import warnings
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from backend.app.db.models.core_types import POStatus
from backend.app.db.models.models_v1 import PurchaseOrder, PurchaseOrderItem, Supplier
from backend.services import po_status
from backend.services.exceptions import InvalidState
from backend.services.po_status import (
    derive_status,
    ensure_editable,
    ensure_receivable,
    lead_time_days,
    recalculate_totals,
    record_lead_time,
)
from backend.services.quantity_ledger import OrderTotals


def totals(ordered, received, damaged=0):
    return OrderTotals(ordered=ordered, received=received, damaged=damaged)


@pytest.mark.parametrize(
    "current,order_totals,backorders,expected",
    [
        (POStatus.sent, totals(100, 95, 5), False, POStatus.received),
        (POStatus.sent, totals(100, 60, 5), False, POStatus.partial),
        (POStatus.sent, totals(100, 60, 5), True, POStatus.received),
        (POStatus.shipped, totals(100, 0, 10), False, POStatus.shipped),
        (POStatus.partial, totals(100, 0, 100), False, POStatus.received),
        (POStatus.received, totals(100, 10), False, POStatus.received),
        (POStatus.cancelled, totals(100, 100), False, POStatus.cancelled),
    ],
)
def test_derive_status(current, order_totals, backorders, expected):
    assert derive_status(current, order_totals, backorders_created=backorders) == expected


def test_editable_only_in_draft_or_pending():
    ensure_editable(PurchaseOrder(po_number="PO-1", status=POStatus.draft))
    ensure_editable(PurchaseOrder(po_number="PO-1", status=POStatus.pending))

    for status in (POStatus.sent, POStatus.partial, POStatus.received, POStatus.cancelled):
        with pytest.raises(InvalidState):
            ensure_editable(PurchaseOrder(po_number="PO-1", status=status))


def test_receivable_rejects_draft_and_cancelled():
    ensure_receivable(PurchaseOrder(po_number="PO-1", status=POStatus.shipped))
    ensure_receivable(PurchaseOrder(po_number="PO-1", status=POStatus.received))

    for status in (POStatus.draft, POStatus.cancelled):
        with pytest.raises(InvalidState):
            ensure_receivable(PurchaseOrder(po_number="PO-1", status=status))


def test_recalculate_totals():
    po = PurchaseOrder(
        po_number="PO-1",
        shipping_cost=Decimal("10.00"),
        tax=Decimal("4.50"),
        other_costs=Decimal("0.50"),
    )
    po.items = [
        PurchaseOrderItem(sku="A", quantity_ordered=10, line_total=Decimal("25.00")),
        PurchaseOrderItem(sku="B", quantity_ordered=4, line_total=Decimal("12.00")),
    ]

    recalculate_totals(po)

    assert po.subtotal == Decimal("37.00")
    assert po.total == Decimal("52.00")


def test_lead_time_days_handles_naive_datetimes():
    created = datetime(2026, 3, 1, 12, 0)
    now = datetime(2026, 3, 15, 11, 0, tzinfo=timezone.utc)
    assert lead_time_days(created, now) == 14


def test_record_lead_time_running_mean():
    now = datetime(2026, 3, 15, tzinfo=timezone.utc)
    supplier = Supplier(name="S", lead_time_days=14, lead_time_samples=0)

    first = PurchaseOrder(po_number="PO-1", created_at=now - timedelta(days=10), expected_arrival_date=date(2026, 3, 10))
    second = PurchaseOrder(po_number="PO-2", created_at=now - timedelta(days=21), expected_arrival_date=date(2026, 3, 10))

    assert record_lead_time(supplier, first, now) == 10
    assert supplier.avg_actual_lead_time == Decimal("10.00")

    assert record_lead_time(supplier, second, now) == 21
    assert supplier.avg_actual_lead_time == Decimal("15.50")
    assert supplier.lead_time_samples == 2


def test_record_lead_time_skipped_without_expected_date():
    supplier = Supplier(name="S", lead_time_days=14, lead_time_samples=0)
    po = PurchaseOrder(po_number="PO-1", created_at=datetime(2026, 3, 1, tzinfo=timezone.utc))

    assert record_lead_time(supplier, po, datetime(2026, 3, 15, tzinfo=timezone.utc)) is None
    assert supplier.lead_time_samples == 0
    assert supplier.avg_actual_lead_time is None


def test_module_compiles_without_escape_warnings():
    source = inspect.getsource(po_status)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, po_status.__file__, "exec")

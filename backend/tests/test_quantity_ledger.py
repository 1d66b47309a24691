import pytest

from backend.app.db.models.models_v1 import PurchaseOrderItem
from backend.services.exceptions import QuantityExceeded, ValidationError
from backend.services.quantity_ledger import order_totals, outstanding, validate_receipt


def _item(ordered=100, received=0, damaged=0, sku="SKU-A"):
    return PurchaseOrderItem(
        sku=sku,
        quantity_ordered=ordered,
        quantity_received=received,
        quantity_damaged=damaged,
    )


def test_validate_receipt_returns_new_totals():
    totals = validate_receipt(_item(received=10, damaged=2), 20, 3, 5)

    assert totals.received == 30
    assert totals.damaged == 5
    assert totals.backorder == 5


def test_validate_receipt_accepts_exact_fill():
    totals = validate_receipt(_item(ordered=100, received=60, damaged=5), 35, 0, 0)
    assert totals.received + totals.damaged == 100


def test_validate_receipt_counts_backorder_against_ordered():
    with pytest.raises(QuantityExceeded) as exc:
        validate_receipt(_item(ordered=10), 6, 0, 5)

    assert exc.value.sku == "SKU-A"
    assert exc.value.ordered == 10
    assert exc.value.attempted == 11


def test_validate_receipt_does_not_mutate_item():
    item = _item(received=60, damaged=5)
    with pytest.raises(QuantityExceeded):
        validate_receipt(item, 40, 0, 0)

    validate_receipt(item, 10, 0, 0)
    assert item.quantity_received == 60
    assert item.quantity_damaged == 5


@pytest.mark.parametrize("deltas", [(-1, 0, 0), (0, -1, 0), (0, 0, -1)])
def test_validate_receipt_rejects_negative_delta(deltas):
    with pytest.raises(ValidationError):
        validate_receipt(_item(received=10), *deltas)


def test_outstanding_and_order_totals():
    items = [_item(ordered=10, received=4, damaged=1), _item(ordered=5, received=5)]

    assert [outstanding(it) for it in items] == [5, 0]

    totals = order_totals(items)
    assert (totals.ordered, totals.received, totals.damaged) == (15, 9, 1)
    assert totals.accounted == 10

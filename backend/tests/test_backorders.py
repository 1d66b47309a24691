import pytest

from backend.app.db.models.core_types import BackorderStatus
from backend.app.db.models.models_v1 import Backorder
from backend.services.backorders import (
    create_backorder,
    create_manual_backorder,
    list_pending_backorders,
    outstanding_quantity,
)
from backend.services.exceptions import PONotFound, ProductNotFound, ValidationError


def test_outstanding_counts_pending_only(db_session, make_product, make_po):
    make_product("SKU-A")
    po = make_po([("SKU-A", 50)])

    create_backorder(db_session, po, "SKU-A", 10, po.items[0].unit_cost)
    create_backorder(db_session, po, "SKU-A", 5, po.items[0].unit_cost)
    db_session.flush()
    closed = create_backorder(db_session, po, "SKU-A", 7, 0)
    closed.status = BackorderStatus.received
    db_session.commit()

    assert outstanding_quantity(db_session, po.id) == 15
    assert [bo.quantity for bo in list_pending_backorders(db_session)] == [5, 10]


def test_backorder_quantity_must_be_positive(db_session, make_product, make_po):
    make_product("SKU-A")
    po = make_po([("SKU-A", 50)])

    with pytest.raises(ValidationError):
        create_backorder(db_session, po, "SKU-A", 0, 1)


def test_manual_backorder(db_session, make_product, make_po):
    make_product("SKU-A")
    po = make_po([("SKU-A", 50)])

    bo = create_manual_backorder(db_session, po_id=po.id, sku="SKU-A", quantity=3)
    db_session.commit()

    stored = db_session.get(Backorder, bo.id)
    assert stored.supplier_id == po.supplier_id
    assert stored.status == BackorderStatus.pending

    with pytest.raises(PONotFound):
        create_manual_backorder(db_session, po_id=999, sku="SKU-A", quantity=1)
    with pytest.raises(ProductNotFound):
        create_manual_backorder(db_session, po_id=po.id, sku="GHOST", quantity=1)

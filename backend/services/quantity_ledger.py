"""
Quantity ledger : règles arithmétiques des lignes de PO.

Invariant :
    quantity_received + quantity_damaged <= quantity_ordered

Fonctions pures : aucune écriture, l'appelant persiste le résultat.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from backend.app.db.models.models_v1 import PurchaseOrderItem
from backend.services.exceptions import QuantityExceeded, ValidationError


@dataclass(frozen=True)
class ReceiptTotals:
    received: int
    damaged: int
    backorder: int


@dataclass(frozen=True)
class OrderTotals:
    ordered: int
    received: int
    damaged: int

    @property
    def accounted(self) -> int:
        return self.received + self.damaged


def validate_receipt(
    item: PurchaseOrderItem,
    received_delta: int,
    damaged_delta: int,
    backorder_delta: int,
) -> ReceiptTotals:
    for name, value in (
        ("received", received_delta),
        ("damaged", damaged_delta),
        ("backorder", backorder_delta),
    ):
        if value < 0:
            raise ValidationError(f"{name} quantity must be >= 0 for {item.sku} (got {value})")

    new_received = item.quantity_received + received_delta
    new_damaged = item.quantity_damaged + damaged_delta
    attempted = new_received + new_damaged + backorder_delta

    if attempted > item.quantity_ordered:
        raise QuantityExceeded(item.sku, ordered=item.quantity_ordered, attempted=attempted)

    return ReceiptTotals(received=new_received, damaged=new_damaged, backorder=backorder_delta)


def outstanding(item: PurchaseOrderItem) -> int:
    return max(0, item.quantity_ordered - item.quantity_received - item.quantity_damaged)


def order_totals(items: Iterable[PurchaseOrderItem]) -> OrderTotals:
    ordered = received = damaged = 0
    for it in items:
        ordered += it.quantity_ordered
        received += it.quantity_received
        damaged += it.quantity_damaged
    return OrderTotals(ordered=ordered, received=received, damaged=damaged)

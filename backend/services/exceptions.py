"""
Erreurs métier du noyau de réconciliation.

Les services lèvent ces exceptions ; la couche HTTP les traduit
(voir backend.app.main). Aucune écriture n'a lieu avant qu'une erreur
de validation ou de règle métier soit détectée.
"""

from __future__ import annotations


class InventoryError(Exception):
    code = "inventory_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------- Entrées ----------
class ValidationError(InventoryError):
    code = "validation_error"


class QuantityExceeded(InventoryError):
    """received + damaged + backorder dépasse la quantité commandée."""

    code = "quantity_exceeded"

    def __init__(self, sku: str, ordered: int, attempted: int):
        super().__init__(
            f"Total quantities exceed ordered amount for {sku} "
            f"(ordered={ordered}, attempted={attempted})"
        )
        self.sku = sku
        self.ordered = ordered
        self.attempted = attempted


class InvalidState(InventoryError):
    code = "invalid_state"


# ---------- Introuvables ----------
class NotFound(InventoryError):
    code = "not_found"


class PONotFound(NotFound):
    def __init__(self, po_id: int):
        super().__init__(f"Purchase order {po_id} not found")
        self.po_id = po_id


class ItemNotInOrder(NotFound):
    def __init__(self, po_id: int, item_id: int):
        super().__init__(f"Item {item_id} does not belong to purchase order {po_id}")
        self.po_id = po_id
        self.item_id = item_id


class ProductNotFound(NotFound):
    def __init__(self, sku: str):
        super().__init__(f"Product with SKU {sku} not found")
        self.sku = sku


class SupplierNotFound(NotFound):
    def __init__(self, supplier_id: int):
        super().__init__(f"Supplier {supplier_id} not found")
        self.supplier_id = supplier_id


class ShipmentNotFound(NotFound):
    def __init__(self, shipment_ref: str):
        super().__init__(f"No items found for shipment {shipment_ref}")
        self.shipment_ref = shipment_ref


class WarehouseNotFound(NotFound):
    def __init__(self, warehouse_id: int):
        super().__init__(f"Warehouse {warehouse_id} not found")
        self.warehouse_id = warehouse_id


# ---------- Rejouables ----------
class UpstreamUnavailable(InventoryError):
    """Source fulfillment injoignable (timeout, 5xx). Le client peut réessayer."""

    code = "upstream_unavailable"
    retryable = True


class PersistenceConflict(InventoryError):
    """Écriture concurrente détectée ; relire puis recalculer."""

    code = "persistence_conflict"
    retryable = True

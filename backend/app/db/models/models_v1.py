from __future__ import annotations

from datetime import datetime, date, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    ForeignKey,
    Numeric,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.db.base import Base, BigIntPK
from backend.app.db.models.core_types import (
    POStatus,
    BackorderStatus,
    SalesChannel,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- CATALOGUE ----------
class InventoryGroup(Base):
    """Produits physiquement identiques vendus sous plusieurs SKU (stock partagé)."""

    __tablename__ = "inventory_groups"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    products: Mapped[list["Product"]] = relationship(back_populates="group")


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    physical_product_group_id: Mapped[str | None] = mapped_column(
        ForeignKey("inventory_groups.id", ondelete="SET NULL"),
        index=True,
    )

    group: Mapped[InventoryGroup | None] = relationship(back_populates="products")

    __table_args__ = (CheckConstraint("cost >= 0", name="ck_product_cost_nonneg"),)


class ChannelMapping(Base):
    """SKU vendeur (canal) -> SKU maître interne."""

    __tablename__ = "channel_mappings"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    channel: Mapped[SalesChannel] = mapped_column(
        Enum(SalesChannel, name="sales_channel"),
        default=SalesChannel.amazon,
        nullable=False,
    )
    seller_sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    fnsku: Mapped[str | None] = mapped_column(String(32), index=True)
    master_sku: Mapped[str] = mapped_column(
        ForeignKey("products.sku", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    lead_time_days: Mapped[int] = mapped_column(Integer, default=14, nullable=False)

    # Moyenne glissante des délais réels observés (réceptions complètes)
    avg_actual_lead_time: Mapped[Decimal | None] = mapped_column(Numeric(8, 2))
    lead_time_samples: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint("lead_time_days >= 0", name="ck_supplier_lead_time_nonneg"),
        CheckConstraint("lead_time_samples >= 0", name="ck_supplier_lead_time_samples_nonneg"),
    )


class Warehouse(Base):
    __tablename__ = "warehouses"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)


# ---------- PROCUREMENT / INBOUND ----------
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    po_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False)
    # entrepôt de réception (stock crédité par receive_items)
    warehouse_id: Mapped[int | None] = mapped_column(ForeignKey("warehouses.id", ondelete="SET NULL"))
    status: Mapped[POStatus] = mapped_column(Enum(POStatus, name="po_status"), default=POStatus.draft, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    other_costs: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)

    expected_arrival_date: Mapped[date | None] = mapped_column(Date)
    actual_arrival_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    supplier: Mapped[Supplier] = relationship()
    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        back_populates="po",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )

    __mapper_args__ = {"version_id_col": version}


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    po_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sku: Mapped[str] = mapped_column(ForeignKey("products.sku", ondelete="RESTRICT"), nullable=False)
    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_damaged: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    po: Mapped[PurchaseOrder] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity_ordered >= 0", name="ck_po_item_qty_ordered_nonneg"),
        CheckConstraint("quantity_received >= 0", name="ck_po_item_qty_received_nonneg"),
        CheckConstraint("quantity_damaged >= 0", name="ck_po_item_qty_damaged_nonneg"),
        CheckConstraint(
            "quantity_received + quantity_damaged <= quantity_ordered",
            name="ck_po_item_received_damaged_le_ordered",
        ),
        CheckConstraint("unit_cost >= 0", name="ck_po_item_unit_cost_nonneg"),
    )


class Backorder(Base):
    __tablename__ = "backorders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    po_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    po_number: Mapped[str] = mapped_column(String(64), nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False)
    sku: Mapped[str] = mapped_column(ForeignKey("products.sku", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    status: Mapped[BackorderStatus] = mapped_column(
        Enum(BackorderStatus, name="backorder_status"),
        default=BackorderStatus.pending,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    supplier: Mapped[Supplier] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_backorder_qty_pos"),
        Index("ix_backorders_status_created", "status", "created_at"),
    )


# ---------- INVENTORY ----------
class InventoryLevel(Base):
    __tablename__ = "inventory_levels"
    sku: Mapped[str] = mapped_column(ForeignKey("products.sku", ondelete="CASCADE"), primary_key=True)

    warehouse_available: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fba_available: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    warehouse_last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("warehouse_available >= 0", name="ck_inventory_warehouse_nonneg"),
        CheckConstraint("fba_available >= 0", name="ck_inventory_fba_nonneg"),
    )


class WarehouseStock(Base):
    """Stock par entrepôt. Peut passer en négatif (survente visible)."""

    __tablename__ = "warehouse_stock"
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), primary_key=True)
    sku: Mapped[str] = mapped_column(ForeignKey("products.sku", ondelete="CASCADE"), primary_key=True)
    available: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


# ---------- OUTBOUND (FULFILLMENT) ----------
class OutboundShipment(Base):
    __tablename__ = "outbound_shipments"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    shipment_ref: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    inbound_plan_id: Mapped[str | None] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    lines: Mapped[list["OutboundShipmentLine"]] = relationship(
        back_populates="shipment",
        cascade="all, delete-orphan",
        order_by="OutboundShipmentLine.id",
    )


class OutboundShipmentLine(Base):
    __tablename__ = "outbound_shipment_lines"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    shipment_id: Mapped[int] = mapped_column(
        ForeignKey("outbound_shipments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seller_sku: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    shipment: Mapped[OutboundShipment] = relationship(back_populates="lines")

    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_outbound_line_qty_nonneg"),)


class DeductionRecord(Base):
    """Journal append-only : une déduction par (shipment_ref, sku), jamais deux."""

    __tablename__ = "deduction_records"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    shipment_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    sku: Mapped[str] = mapped_column(ForeignKey("products.sku", ondelete="RESTRICT"), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    inbound_plan_id: Mapped[str | None] = mapped_column(String(64))

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("shipment_ref", "sku", name="uq_deduction_shipment_sku"),
        Index("ix_deduction_records_shipment", "shipment_ref"),
    )

"""initial inventory schema

Revision ID: 3a7f0c2d91b4
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3a7f0c2d91b4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PO_STATUSES = ("draft", "pending", "sent", "confirmed", "shipped", "partial", "received", "cancelled")
BACKORDER_STATUSES = ("pending", "received", "cancelled")
SALES_CHANNELS = ("amazon", "shopify", "manual")


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(14, 2), nullable=False, server_default="0")


def upgrade() -> None:
    op.create_table(
        "inventory_groups",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("title", sa.String(255), nullable=False),
        _money("cost"),
        sa.Column(
            "physical_product_group_id",
            sa.String(64),
            sa.ForeignKey("inventory_groups.id", ondelete="SET NULL"),
        ),
        sa.CheckConstraint("cost >= 0", name="ck_product_cost_nonneg"),
    )
    op.create_index("ix_products_physical_product_group_id", "products", ["physical_product_group_id"])

    op.create_table(
        "channel_mappings",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("channel", sa.Enum(*SALES_CHANNELS, name="sales_channel"), nullable=False),
        sa.Column("seller_sku", sa.String(64), nullable=False, unique=True),
        sa.Column("fnsku", sa.String(32)),
        sa.Column(
            "master_sku",
            sa.String(64),
            sa.ForeignKey("products.sku", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("ix_channel_mappings_fnsku", "channel_mappings", ["fnsku"])
    op.create_index("ix_channel_mappings_master_sku", "channel_mappings", ["master_sku"])

    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("lead_time_days", sa.Integer, nullable=False, server_default="14"),
        sa.Column("avg_actual_lead_time", sa.Numeric(8, 2)),
        sa.Column("lead_time_samples", sa.Integer, nullable=False, server_default="0"),
        sa.CheckConstraint("lead_time_days >= 0", name="ck_supplier_lead_time_nonneg"),
        sa.CheckConstraint("lead_time_samples >= 0", name="ck_supplier_lead_time_samples_nonneg"),
    )

    op.create_table(
        "warehouses",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
    )

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("po_number", sa.String(64), nullable=False, unique=True),
        sa.Column("supplier_id", sa.BigInteger, sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", sa.BigInteger, sa.ForeignKey("warehouses.id", ondelete="SET NULL")),
        sa.Column("status", sa.Enum(*PO_STATUSES, name="po_status"), nullable=False),
        _money("subtotal"),
        _money("shipping_cost"),
        _money("tax"),
        _money("other_costs"),
        _money("total"),
        sa.Column("expected_arrival_date", sa.Date),
        sa.Column("actual_arrival_date", sa.Date),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
    )

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column(
            "po_id",
            sa.BigInteger,
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sku", sa.String(64), sa.ForeignKey("products.sku", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_ordered", sa.Integer, nullable=False),
        sa.Column("quantity_received", sa.Integer, nullable=False, server_default="0"),
        sa.Column("quantity_damaged", sa.Integer, nullable=False, server_default="0"),
        _money("unit_cost"),
        _money("line_total"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.CheckConstraint("quantity_ordered >= 0", name="ck_po_item_qty_ordered_nonneg"),
        sa.CheckConstraint("quantity_received >= 0", name="ck_po_item_qty_received_nonneg"),
        sa.CheckConstraint("quantity_damaged >= 0", name="ck_po_item_qty_damaged_nonneg"),
        sa.CheckConstraint(
            "quantity_received + quantity_damaged <= quantity_ordered",
            name="ck_po_item_received_damaged_le_ordered",
        ),
        sa.CheckConstraint("unit_cost >= 0", name="ck_po_item_unit_cost_nonneg"),
    )
    op.create_index("ix_purchase_order_items_po_id", "purchase_order_items", ["po_id"])

    op.create_table(
        "backorders",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column(
            "po_id",
            sa.BigInteger,
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("po_number", sa.String(64), nullable=False),
        sa.Column("supplier_id", sa.BigInteger, sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("sku", sa.String(64), sa.ForeignKey("products.sku", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        _money("unit_cost"),
        sa.Column("status", sa.Enum(*BACKORDER_STATUSES, name="backorder_status"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_backorder_qty_pos"),
    )
    op.create_index("ix_backorders_po_id", "backorders", ["po_id"])
    op.create_index("ix_backorders_status_created", "backorders", ["status", "created_at"])

    op.create_table(
        "inventory_levels",
        sa.Column("sku", sa.String(64), sa.ForeignKey("products.sku", ondelete="CASCADE"), primary_key=True),
        sa.Column("warehouse_available", sa.Integer, nullable=False, server_default="0"),
        sa.Column("fba_available", sa.Integer, nullable=False, server_default="0"),
        sa.Column("warehouse_last_sync", sa.DateTime(timezone=True)),
        sa.CheckConstraint("warehouse_available >= 0", name="ck_inventory_warehouse_nonneg"),
        sa.CheckConstraint("fba_available >= 0", name="ck_inventory_fba_nonneg"),
    )

    # available peut être négatif (survente)
    op.create_table(
        "warehouse_stock",
        sa.Column(
            "warehouse_id",
            sa.BigInteger,
            sa.ForeignKey("warehouses.id", ondelete="RESTRICT"),
            primary_key=True,
        ),
        sa.Column("sku", sa.String(64), sa.ForeignKey("products.sku", ondelete="CASCADE"), primary_key=True),
        sa.Column("available", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "outbound_shipments",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("shipment_ref", sa.String(64), nullable=False, unique=True),
        sa.Column("inbound_plan_id", sa.String(64)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_outbound_shipments_inbound_plan_id", "outbound_shipments", ["inbound_plan_id"])

    op.create_table(
        "outbound_shipment_lines",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column(
            "shipment_id",
            sa.BigInteger,
            sa.ForeignKey("outbound_shipments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("seller_sku", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_outbound_line_qty_nonneg"),
    )
    op.create_index("ix_outbound_shipment_lines_shipment_id", "outbound_shipment_lines", ["shipment_id"])

    op.create_table(
        "deduction_records",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("shipment_ref", sa.String(64), nullable=False),
        sa.Column("sku", sa.String(64), sa.ForeignKey("products.sku", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "warehouse_id",
            sa.BigInteger,
            sa.ForeignKey("warehouses.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("inbound_plan_id", sa.String(64)),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("quantity_before", sa.Integer, nullable=False),
        sa.Column("quantity_after", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("shipment_ref", "sku", name="uq_deduction_shipment_sku"),
    )
    op.create_index("ix_deduction_records_shipment", "deduction_records", ["shipment_ref"])


def downgrade() -> None:
    op.drop_table("deduction_records")
    op.drop_table("outbound_shipment_lines")
    op.drop_table("outbound_shipments")
    op.drop_table("warehouse_stock")
    op.drop_table("inventory_levels")
    op.drop_table("backorders")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("warehouses")
    op.drop_table("suppliers")
    op.drop_table("channel_mappings")
    op.drop_table("products")
    op.drop_table("inventory_groups")

    bind = op.get_bind()
    for enum_name in ("po_status", "backorder_status", "sales_channel"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)

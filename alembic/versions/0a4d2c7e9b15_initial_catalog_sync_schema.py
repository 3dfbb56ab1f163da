"""initial catalog sync schema

Revision ID: 0a4d2c7e9b15
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0a4d2c7e9b15"
down_revision = None
branch_labels = None
depends_on = None


ENUMS: dict[str, tuple[str, ...]] = {
    "import_entity_type": ("PRODUCTS", "DEALERS", "SUPERSEDED_MAPPING", "BACKORDER", "ORDER_STATUS"),
    "import_source_type": ("MANUAL", "REMOTE"),
    "import_run_status": ("PENDING", "PROCESSING", "COMPLETED", "FAILED"),
    "remote_scan_trigger": ("CRON", "MANUAL"),
    "remote_scan_status": ("SUCCESS", "PARTIAL", "FAILED"),
    "product_type": ("GENUINE", "AFTERMARKET", "BRANDED"),
    "dealer_tier": ("Net1", "Net2", "Net3", "Net4", "Net5", "Net6", "Net7"),
    "dealer_account_status": ("Active", "Inactive", "Suspended"),
    "order_status": (
        "CREATED",
        "BACKORDER",
        "READY_FOR_SHIPMENT",
        "FULLFILLED",
        "CANCELLED",
        "PROCESSING",
        "PICKING",
        "PACKING",
        "OUT_FOR_DELIVERY",
    ),
    "search_sync_type": ("FULL", "INCREMENTAL"),
    "search_sync_status": ("COMPLETED", "FAILED"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    for name, values in ENUMS.items():
        labels = ", ".join(f"'{v}'" for v in values)
        op.execute(
            "DO $$ BEGIN "
            f"CREATE TYPE {name} AS ENUM ({labels}); "
            "EXCEPTION WHEN duplicate_object THEN null; "
            "END $$;"
        )

    op.create_table(
        "products",
        sa.Column("code", sa.String(length=80), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("type", _enum("product_type"), server_default="AFTERMARKET", nullable=False),
        sa.Column("supplier_code", sa.String(length=120), nullable=True),
        sa.Column("height", sa.Float(), nullable=True),
        sa.Column("length", sa.Float(), nullable=True),
        sa.Column("width", sa.Float(), nullable=True),
        sa.Column("weight", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_product_code"),
    )

    op.create_table(
        "product_prices",
        sa.Column("product_id", sa.UUID(), nullable=False),
        sa.Column("currency", sa.String(length=3), server_default="GBP", nullable=False),
        *[sa.Column(f"net{i}", sa.Numeric(12, 2), nullable=True) for i in range(1, 8)],
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_product_prices_product_active", "product_prices", ["product_id", "is_active"], unique=False)

    op.create_table(
        "product_stocks",
        sa.Column("product_id", sa.UUID(), nullable=False),
        sa.Column("stock", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_product_stocks_product_active", "product_stocks", ["product_id", "is_active"], unique=False)

    op.create_table(
        "product_superseded_mappings",
        sa.Column("product_code", sa.String(length=80), nullable=False),
        sa.Column("superseded_by", sa.String(length=80), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_code", "superseded_by", name="uq_superseded_mapping_pair"),
    )
    op.create_index("ix_superseded_mappings_active", "product_superseded_mappings", ["is_active"], unique=False)

    op.create_table(
        "product_images",
        sa.Column("product_code", sa.String(length=80), nullable=False),
        sa.Column("image", sa.String(length=1000), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_product_images_code", "product_images", ["product_code"], unique=False)

    op.create_table(
        "users",
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=False),
        sa.Column("last_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_user_email"),
    )

    op.create_table(
        "shipping_methods",
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "dealers",
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("account_number", sa.BigInteger(), nullable=False),
        sa.Column("company_name", sa.String(length=300), nullable=False),
        sa.Column("genuine_parts_tier", _enum("dealer_tier"), nullable=False),
        sa.Column("aftermarket_es_tier", _enum("dealer_tier"), nullable=False),
        sa.Column("aftermarket_b_tier", _enum("dealer_tier"), nullable=False),
        sa.Column("account_status", _enum("dealer_account_status"), server_default="Active", nullable=False),
        sa.Column("default_shipping_method_id", sa.UUID(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["default_shipping_method_id"], ["shipping_methods.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uq_dealer_user"),
        sa.UniqueConstraint("account_number", name="uq_dealer_account_number"),
    )

    op.create_table(
        "orders",
        sa.Column("order_number", sa.String(length=80), nullable=False),
        sa.Column("k8_order_no", sa.String(length=80), nullable=True),
        sa.Column("order_status", _enum("order_status"), server_default="CREATED", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number", name="uq_order_number"),
    )

    op.create_table(
        "order_items",
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("product_code", sa.String(length=80), nullable=False),
        sa.Column("quantity", sa.Integer(), server_default="0", nullable=False),
        sa.Column("qty_ordered", sa.Integer(), nullable=True),
        sa.Column("qty_outstanding", sa.Integer(), nullable=True),
        sa.Column("in_warehouse", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_order_items_order_code", "order_items", ["order_id", "product_code"], unique=False)

    op.create_table(
        "backorder_logs",
        sa.Column("order_item_id", sa.UUID(), nullable=False),
        sa.Column("qty_ordered", sa.Integer(), nullable=False),
        sa.Column("qty_outstanding", sa.Integer(), nullable=False),
        sa.Column("in_warehouse", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_item_id"], ["order_items.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_backorder_logs_item_active", "backorder_logs", ["order_item_id", "is_active"], unique=False)

    op.create_table(
        "order_status_logs",
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("order_status", _enum("order_status"), nullable=False),
        sa.Column("k8_order_no", sa.String(length=80), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_order_status_logs_order_active", "order_status_logs", ["order_id", "is_active"], unique=False)

    op.create_table(
        "order_status_history",
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("old_status", _enum("order_status"), nullable=True),
        sa.Column("new_status", _enum("order_status"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "import_runs",
        sa.Column("entity_type", _enum("import_entity_type"), nullable=False),
        sa.Column("source_type", _enum("import_source_type"), server_default="MANUAL", nullable=False),
        sa.Column("status", _enum("import_run_status"), server_default="PENDING", nullable=False),
        sa.Column("file_name", sa.String(length=500), nullable=False),
        sa.Column("file_size", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("imported_by", sa.String(length=200), nullable=True),
        sa.Column("total_rows", sa.Integer(), nullable=True),
        sa.Column("success_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("error_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("source_file_id", sa.String(length=200), nullable=True),
        sa.Column("source_file_modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_runs_entity_created", "import_runs", ["entity_type", "created_at"], unique=False)
    op.create_index("ix_import_runs_source_file", "import_runs", ["source_file_id"], unique=False)

    op.create_table(
        "import_row_errors",
        sa.Column("import_run_id", sa.UUID(), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("row_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("errors", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["import_run_id"], ["import_runs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_row_errors_run_row", "import_row_errors", ["import_run_id", "row_number"], unique=False)

    op.create_table(
        "remote_scan_runs",
        sa.Column("triggered_by", _enum("remote_scan_trigger"), nullable=False),
        sa.Column("status", _enum("remote_scan_status"), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("total_files_found", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_files_processed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_files_skipped", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_files_failed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("results", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("errors", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "search_sync_logs",
        sa.Column("sync_type", _enum("search_sync_type"), nullable=False),
        sa.Column("status", _enum("search_sync_status"), nullable=False),
        sa.Column("collection_name", sa.String(length=200), nullable=True),
        sa.Column("total_records", sa.Integer(), server_default="0", nullable=False),
        sa.Column("failed_records", sa.Integer(), server_default="0", nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "job_locks",
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("locked_by", sa.String(length=200), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )


def downgrade() -> None:
    op.drop_table("job_locks")
    op.drop_table("search_sync_logs")
    op.drop_table("remote_scan_runs")

    op.drop_index("ix_import_row_errors_run_row", table_name="import_row_errors")
    op.drop_table("import_row_errors")
    op.drop_index("ix_import_runs_source_file", table_name="import_runs")
    op.drop_index("ix_import_runs_entity_created", table_name="import_runs")
    op.drop_table("import_runs")

    op.drop_table("order_status_history")
    op.drop_index("ix_order_status_logs_order_active", table_name="order_status_logs")
    op.drop_table("order_status_logs")
    op.drop_index("ix_backorder_logs_item_active", table_name="backorder_logs")
    op.drop_table("backorder_logs")
    op.drop_index("ix_order_items_order_code", table_name="order_items")
    op.drop_table("order_items")
    op.drop_table("orders")

    op.drop_table("dealers")
    op.drop_table("shipping_methods")
    op.drop_table("users")

    op.drop_index("ix_product_images_code", table_name="product_images")
    op.drop_table("product_images")
    op.drop_index("ix_superseded_mappings_active", table_name="product_superseded_mappings")
    op.drop_table("product_superseded_mappings")
    op.drop_index("ix_product_stocks_product_active", table_name="product_stocks")
    op.drop_table("product_stocks")
    op.drop_index("ix_product_prices_product_active", table_name="product_prices")
    op.drop_table("product_prices")
    op.drop_table("products")

    for name in reversed(ENUMS):
        op.execute(f"DROP TYPE IF EXISTS {name}")

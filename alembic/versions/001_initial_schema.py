"""initial schema - inventory cache, sync bookkeeping, import ledger, API log

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TS = sa.DateTime()


def upgrade() -> None:
    op.create_table(
        "inventory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("keystone_vcpn", sa.String(100), unique=True),
        sa.Column("sku", sa.String(100)),
        sa.Column("name", sa.String(500), nullable=False, server_default=""),
        sa.Column("description", sa.Text()),
        sa.Column("brand", sa.String(255)),
        sa.Column("supplier", sa.String(255)),
        sa.Column("vendor_code", sa.String(50)),
        sa.Column("manufacturer_part_no", sa.String(100)),
        sa.Column("cost", sa.Float(), server_default="0"),
        sa.Column("list_price", sa.Float(), server_default="0"),
        sa.Column("core_charge", sa.Float(), server_default="0"),
        sa.Column("quantity_available", sa.Integer(), server_default="0"),
        sa.Column("regional_qty", sa.JSON()),
        sa.Column("case_qty", sa.Integer(), server_default="1"),
        sa.Column("availability", sa.String(50)),
        sa.Column("category", sa.String(255)),
        sa.Column("subcategory", sa.String(255)),
        sa.Column("weight", sa.Float()),
        sa.Column("height", sa.Float()),
        sa.Column("length", sa.Float()),
        sa.Column("width", sa.Float()),
        sa.Column("dimensions", sa.String(100)),
        sa.Column("upsable", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_non_returnable", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_oversized", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_hazmat", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_chemical", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_kit", sa.Boolean(), server_default=sa.false()),
        sa.Column("kit_components", sa.Text()),
        sa.Column("prop65_toxicity", sa.String(255)),
        sa.Column("upc_code", sa.String(50)),
        sa.Column("aaia_code", sa.String(50)),
        sa.Column("ups_ground_assessorial", sa.Float(), server_default="0"),
        sa.Column("us_ltl", sa.Float(), server_default="0"),
        sa.Column("image_url", sa.String(1000)),
        sa.Column("specifications", sa.JSON()),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("import_batch_id", sa.Integer()),
        sa.Column("import_source", sa.String(50)),
        sa.Column("last_import_date", TS),
        sa.Column("last_synced_at", TS),
        sa.Column("created_at", TS),
        sa.Column("updated_at", TS),
    )
    op.create_index("ix_inventory_sku", "inventory", ["sku"])
    op.create_index("ix_inventory_import_batch_id", "inventory", ["import_batch_id"])
    op.create_index("ix_inventory_brand_category", "inventory", ["brand", "category"])

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("source", sa.String(50), nullable=False, server_default="keystone"),
        sa.Column("sync_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("started_at", TS, nullable=False),
        sa.Column("finished_at", TS),
        sa.Column("duration_seconds", sa.Float()),
        sa.Column("records_processed", sa.Integer(), server_default="0"),
        sa.Column("records_created", sa.Integer(), server_default="0"),
        sa.Column("records_updated", sa.Integer(), server_default="0"),
        sa.Column("records_skipped", sa.Integer(), server_default="0"),
        sa.Column("records_failed", sa.Integer(), server_default="0"),
        sa.Column("errors", sa.JSON()),
        sa.Column("message", sa.Text()),
        sa.Column("created_at", TS),
    )
    op.create_index("ix_sync_source_time", "sync_logs", ["source", "started_at"])

    op.create_table(
        "pending_updates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("keystone_vcpn", sa.String(100), nullable=False, unique=True),
        sa.Column("operation", sa.String(20), nullable=False, server_default="update"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("requested_by", sa.String(100)),
        sa.Column("last_error", sa.Text()),
        sa.Column("created_at", TS),
        sa.Column("updated_at", TS),
    )
    op.create_index("ix_pending_priority", "pending_updates", ["priority", "created_at"])

    op.create_table(
        "sync_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("auto_sync_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("full_sync_interval_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("incremental_sync_interval_hours", sa.Integer(), nullable=False, server_default="6"),
        sa.Column("batch_size", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("full_sync_max_items", sa.Integer(), nullable=False, server_default="10000"),
        sa.Column("incremental_sync_max_items", sa.Integer(), nullable=False, server_default="500"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("updated_at", TS),
    )

    op.create_table(
        "inventory_import_batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("batch_name", sa.String(255), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.BigInteger(), server_default="0"),
        sa.Column("total_records", sa.Integer(), server_default="0"),
        sa.Column("processed_records", sa.Integer(), server_default="0"),
        sa.Column("inserted_records", sa.Integer(), server_default="0"),
        sa.Column("updated_records", sa.Integer(), server_default="0"),
        sa.Column("error_records", sa.Integer(), server_default="0"),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("started_at", TS),
        sa.Column("completed_at", TS),
        sa.Column("created_by", sa.String(100)),
        sa.Column("error_log", sa.Text()),
        sa.Column("processing_notes", sa.Text()),
    )
    op.create_index("ix_import_batches_status", "inventory_import_batches", ["status", "started_at"])

    op.create_table(
        "keystone_api_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("endpoint", sa.String(100), nullable=False),
        sa.Column("method", sa.String(10), nullable=False, server_default="POST"),
        sa.Column("reference", sa.String(100)),
        sa.Column("request_data", sa.JSON()),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("response_data", sa.JSON()),
        sa.Column("error_message", sa.Text()),
        sa.Column("environment", sa.String(20)),
        sa.Column("created_at", TS),
    )
    op.create_index("ix_keystone_api_logs_reference", "keystone_api_logs", ["reference"])
    op.create_index(
        "ix_keystone_api_logs_endpoint_time", "keystone_api_logs", ["endpoint", "created_at"]
    )


def downgrade() -> None:
    """Drop all tables. DESTRUCTIVE — dev/test only."""
    for table in (
        "keystone_api_logs",
        "inventory_import_batches",
        "sync_config",
        "pending_updates",
        "sync_logs",
        "inventory",
    ):
        op.drop_table(table)

"""Purchasing, stock ledger and accounting journal tables

Revision ID: 20261019_purchasing
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_purchasing"
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def _updated_at():
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def upgrade():
    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("supplier_name", sa.String(255), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_name", sa.String(255), nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("status_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="unpaid"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        _created_at(),
        _updated_at(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchases", schema=None) as batch_op:
        batch_op.create_index("ix_purchases_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_purchases_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_purchases_status", ["status"], unique=False)
        batch_op.create_index("ix_purchases_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_purchases_status_date", ["status", "purchase_date"], unique=False)

    op.create_table(
        "purchase_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("variation_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("received_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("returned_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
        sa.CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= quantity",
            name="ck_purchase_items_received_range",
        ),
        sa.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= received_quantity",
            name="ck_purchase_items_returned_range",
        ),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchase_items", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_items_purchase_id", ["purchase_id"], unique=False)
        batch_op.create_index("ix_purchase_items_item_id", ["item_id"], unique=False)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("account_type", sa.String(16), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_accounts_code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "journal_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("reference_type", sa.String(32), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=True),
        sa.Column("reverses_entry_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.ForeignKeyConstraint(["reverses_entry_id"], ["journal_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("journal_entries", schema=None) as batch_op:
        batch_op.create_index("ix_journal_entries_purchase_id", ["purchase_id"], unique=False)
        batch_op.create_index("ix_journal_entries_reference", ["reference_type", "reference_id"], unique=False)

    op.create_table(
        "journal_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entry_id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("debit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("credit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("memo", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(["entry_id"], ["journal_entries.id"]),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_journal_lines_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("journal_lines", schema=None) as batch_op:
        batch_op.create_index("ix_journal_lines_entry_id", ["entry_id"], unique=False)
        batch_op.create_index("ix_journal_lines_account_id", ["account_id"], unique=False)

    op.create_table(
        "purchase_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("journal_entry_id", sa.Integer(), nullable=True),
        sa.Column("reversal_journal_entry_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        _created_at(),
        sa.Column("voided_by", sa.String(64), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.ForeignKeyConstraint(["journal_entry_id"], ["journal_entries.id"]),
        sa.ForeignKeyConstraint(["reversal_journal_entry_id"], ["journal_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_cents > 0", name="ck_purchase_payments_amount_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchase_payments", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_payments_purchase_id", ["purchase_id"], unique=False)
        batch_op.create_index("ix_purchase_payments_status", ["status"], unique=False)

    op.create_table(
        "purchase_returns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=False),
        sa.Column("return_number", sa.String(32), nullable=False),
        sa.Column("return_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("refund_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("refund_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("refund_processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_processed_by", sa.String(64), nullable=True),
        sa.Column("refund_failure_reason", sa.Text(), nullable=True),
        sa.Column("auto_refund_eligible", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by", sa.String(64), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("return_number", name="uq_purchase_returns_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchase_returns", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_returns_purchase_id", ["purchase_id"], unique=False)
        batch_op.create_index("ix_purchase_returns_refund_status", ["refund_status"], unique=False)

    op.create_table(
        "purchase_return_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("return_id", sa.Integer(), nullable=False),
        sa.Column("purchase_item_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("variation_id", sa.Integer(), nullable=True),
        sa.Column("quantity_returned", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["return_id"], ["purchase_returns.id"]),
        sa.ForeignKeyConstraint(["purchase_item_id"], ["purchase_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchase_return_items", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_return_items_return_id", ["return_id"], unique=False)
        batch_op.create_index("ix_purchase_return_items_purchase_item_id", ["purchase_item_id"], unique=False)

    op.create_table(
        "refund_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("return_id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("refund_amount_cents", sa.Integer(), nullable=False),
        sa.Column("refund_method", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("bank_reference", sa.String(100), nullable=True),
        sa.Column("check_number", sa.String(50), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("journal_entry_id", sa.Integer(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["return_id"], ["purchase_returns.id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["purchase_payments.id"]),
        sa.ForeignKeyConstraint(["journal_entry_id"], ["journal_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("refund_amount_cents > 0", name="ck_refund_transactions_amount_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("refund_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_refund_transactions_return_id", ["return_id"], unique=False)
        batch_op.create_index("ix_refund_transactions_payment_id", ["payment_id"], unique=False)
        batch_op.create_index("ix_refund_transactions_status", ["status"], unique=False)

    op.create_table(
        "purchase_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("event_title", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("previous_status", sa.String(32), nullable=True),
        sa.Column("new_status", sa.String(32), nullable=True),
        sa.Column("affected_items_count", sa.Integer(), nullable=True),
        sa.Column("total_items_count", sa.Integer(), nullable=True),
        sa.Column("return_reason", sa.String(255), nullable=True),
        sa.Column("return_amount_cents", sa.Integer(), nullable=True),
        sa.Column("payment_amount_cents", sa.Integer(), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("return_id", sa.Integer(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["purchase_payments.id"]),
        sa.ForeignKeyConstraint(["return_id"], ["purchase_returns.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchase_events", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_events_purchase_id", ["purchase_id"], unique=False)
        batch_op.create_index("ix_purchase_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_purchase_events_event_date", ["event_date"], unique=False)
        batch_op.create_index("ix_purchase_events_payment_id", ["payment_id"], unique=False)
        batch_op.create_index("ix_purchase_events_purchase_date", ["purchase_id", "event_date"], unique=False)

    op.create_index(
        "uq_purchase_events_order_placed",
        "purchase_events",
        ["purchase_id"],
        unique=True,
        sqlite_where=sa.text("event_type = 'order_placed'"),
        postgresql_where=sa.text("event_type = 'order_placed'"),
    )

    op.create_table(
        "warehouse_stock",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("variation_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _updated_at(),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("warehouse_id", "item_type", "item_id", "variation_id", name="uq_warehouse_stock_item"),
        sa.CheckConstraint("quantity >= 0", name="ck_warehouse_stock_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("warehouse_stock", schema=None) as batch_op:
        batch_op.create_index("ix_warehouse_stock_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_warehouse_stock_item_id", ["item_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("variation_id", sa.Integer(), nullable=True),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_stock_movements_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_stock_movements_reference", ["movement_type", "reference_id"], unique=False)


def downgrade():
    op.drop_table("stock_movements")
    op.drop_table("warehouse_stock")
    op.drop_index("uq_purchase_events_order_placed", table_name="purchase_events")
    op.drop_table("purchase_events")
    op.drop_table("refund_transactions")
    op.drop_table("purchase_return_items")
    op.drop_table("purchase_returns")
    op.drop_table("purchase_payments")
    op.drop_table("journal_lines")
    op.drop_table("journal_entries")
    op.drop_table("accounts")
    op.drop_table("purchase_items")
    op.drop_table("purchases")
    op.drop_table("warehouses")
    op.drop_table("suppliers")

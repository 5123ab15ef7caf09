"""stock ledger schema

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261001_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MOVEMENT_TYPES = (
    "PURCHASE",
    "SALE",
    "CANCEL_SALE",
    "CANCEL_PURCHASE",
    "RETURN",
    "ADJUST",
    "EDIT_SALE_RESTORE",
    "EDIT_SALE_APPLY",
)


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now())


def _soft_delete_columns() -> list[sa.Column]:
    return [
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("edited_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "tenants"):
        op.create_table(
            "tenants",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("invoice_prefix", sa.String(length=12), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            _created_at(),
        )
        op.create_index("ix_tenants_name", "tenants", ["name"], unique=True)

    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("username", sa.String(length=50), nullable=False),
            sa.Column("hashed_password", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="staff"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
        )
        op.create_index("ix_users_tenant_id", "users", ["tenant_id"], unique=False)
        op.create_index(
            "ux_users_tenant_username_lower",
            "users",
            ["tenant_id", sa.text("lower(username)")],
            unique=True,
        )

    if not _table_exists(inspector, "suppliers"):
        op.create_table(
            "suppliers",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("address", sa.String(length=255), nullable=True),
            _created_at(),
            sa.UniqueConstraint("tenant_id", "name", name="uq_suppliers_tenant_name"),
        )
        op.create_index("ix_suppliers_tenant_id", "suppliers", ["tenant_id"], unique=False)

    if not _table_exists(inspector, "inventory_items"):
        op.create_table(
            "inventory_items",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("cost", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("initial_stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sold", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("ledger_sequence", sa.Integer(), nullable=False, server_default="0"),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
            sa.UniqueConstraint("tenant_id", "code", name="uq_inventory_items_tenant_code"),
            sa.UniqueConstraint("tenant_id", "name", name="uq_inventory_items_tenant_name"),
        )
        op.create_index("ix_inventory_items_tenant_id", "inventory_items", ["tenant_id"], unique=False)

    if not _table_exists(inspector, "stock_ledger"):
        op.create_table(
            "stock_ledger",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("inventory_id", sa.String(length=36), sa.ForeignKey("inventory_items.id"), nullable=True),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column(
                "type",
                sa.Enum(*MOVEMENT_TYPES, name="movementtype", native_enum=False, length=30),
                nullable=False,
            ),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("stock_before", sa.Integer(), nullable=False),
            sa.Column("stock_after", sa.Integer(), nullable=False),
            sa.Column("cost_before", sa.Integer(), nullable=False),
            sa.Column("cost_after", sa.Integer(), nullable=False),
            sa.Column("ref_id", sa.String(length=36), nullable=False),
            sa.Column("note", sa.String(length=255), nullable=True),
            _created_at(),
            sa.UniqueConstraint("inventory_id", "sequence", name="uq_stock_ledger_inventory_sequence"),
        )
        op.create_index("ix_stock_ledger_tenant_id", "stock_ledger", ["tenant_id"], unique=False)
        op.create_index("ix_stock_ledger_inventory_id", "stock_ledger", ["inventory_id"], unique=False)
        op.create_index("ix_stock_ledger_ref_id", "stock_ledger", ["ref_id"], unique=False)
        op.create_index("ix_stock_ledger_tenant_created_at", "stock_ledger", ["tenant_id", "created_at"], unique=False)
        op.create_index(
            "ix_stock_ledger_ref_type_inventory",
            "stock_ledger",
            ["ref_id", "type", "inventory_id"],
            unique=False,
        )

    if not _table_exists(inspector, "purchases"):
        op.create_table(
            "purchases",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("supplier_id", sa.String(length=36), sa.ForeignKey("suppliers.id"), nullable=True),
            sa.Column("invoice", sa.String(length=60), nullable=False),
            sa.Column("total_amount", sa.Integer(), nullable=False),
            sa.Column("paid_amount", sa.Integer(), nullable=False, server_default="0"),
            sa.Column(
                "status",
                sa.Enum("UNPAID", "PARTIALLY_PAID", "PAID", name="purchasestatus", native_enum=False, length=20),
                nullable=False,
                server_default="UNPAID",
            ),
            sa.Column("recorded_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
            *_soft_delete_columns(),
            _created_at(),
            sa.UniqueConstraint("tenant_id", "invoice", name="uq_purchases_tenant_invoice"),
        )
        op.create_index("ix_purchases_tenant_id", "purchases", ["tenant_id"], unique=False)
        op.create_index("ix_purchases_supplier_id", "purchases", ["supplier_id"], unique=False)
        op.create_index(
            "ix_purchases_tenant_deleted_created_at",
            "purchases",
            ["tenant_id", "is_deleted", "created_at"],
            unique=False,
        )

    if not _table_exists(inspector, "purchase_items"):
        op.create_table(
            "purchase_items",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("purchase_id", sa.String(length=36), sa.ForeignKey("purchases.id"), nullable=True),
            sa.Column("inventory_id", sa.String(length=36), sa.ForeignKey("inventory_items.id"), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_cost", sa.Integer(), nullable=False),
            sa.Column("sub_total", sa.Integer(), nullable=False),
        )
        op.create_index("ix_purchase_items_purchase_id", "purchase_items", ["purchase_id"], unique=False)
        op.create_index("ix_purchase_items_inventory_id", "purchase_items", ["inventory_id"], unique=False)

    if not _table_exists(inspector, "purchase_payments"):
        op.create_table(
            "purchase_payments",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("purchase_id", sa.String(length=36), sa.ForeignKey("purchases.id"), nullable=True),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column(
                "method",
                sa.Enum("CASH", "CREDITCARD", "TRANSFER", "QRIS", name="paymentmethod", native_enum=False, length=20),
                nullable=False,
            ),
            sa.Column("note", sa.String(length=255), nullable=True),
            sa.Column("recorded_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
            _created_at(),
        )
        op.create_index("ix_purchase_payments_tenant_id", "purchase_payments", ["tenant_id"], unique=False)
        op.create_index("ix_purchase_payments_purchase_id", "purchase_payments", ["purchase_id"], unique=False)

    if not _table_exists(inspector, "sales"):
        op.create_table(
            "sales",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("invoice", sa.String(length=60), nullable=False),
            sa.Column(
                "method",
                sa.Enum("CASH", "CREDITCARD", "TRANSFER", "QRIS", name="paymentmethod", native_enum=False, length=20),
                nullable=False,
            ),
            sa.Column("total_amount", sa.Integer(), nullable=False),
            sa.Column("issued_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
            *_soft_delete_columns(),
            _created_at(),
            sa.UniqueConstraint("tenant_id", "invoice", name="uq_sales_tenant_invoice"),
        )
        op.create_index("ix_sales_tenant_id", "sales", ["tenant_id"], unique=False)
        op.create_index(
            "ix_sales_tenant_deleted_created_at",
            "sales",
            ["tenant_id", "is_deleted", "created_at"],
            unique=False,
        )

    if not _table_exists(inspector, "sale_items"):
        op.create_table(
            "sale_items",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("sale_id", sa.String(length=36), sa.ForeignKey("sales.id"), nullable=True),
            sa.Column("inventory_id", sa.String(length=36), sa.ForeignKey("inventory_items.id"), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_price", sa.Integer(), nullable=False),
            sa.Column("sub_total", sa.Integer(), nullable=False),
        )
        op.create_index("ix_sale_items_sale_id", "sale_items", ["sale_id"], unique=False)
        op.create_index("ix_sale_items_inventory_id", "sale_items", ["inventory_id"], unique=False)

    if not _table_exists(inspector, "purchase_returns"):
        op.create_table(
            "purchase_returns",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("purchase_id", sa.String(length=36), sa.ForeignKey("purchases.id"), nullable=True),
            sa.Column("reason", sa.String(length=500), nullable=False),
            sa.Column("requested_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
            sa.Column(
                "status",
                sa.Enum("REQUESTED", "APPROVED", "REJECTED", "DONE", name="returnstatus", native_enum=False, length=20),
                nullable=False,
                server_default="REQUESTED",
            ),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        )
        op.create_index("ix_purchase_returns_tenant_id", "purchase_returns", ["tenant_id"], unique=False)
        op.create_index("ix_purchase_returns_purchase_id", "purchase_returns", ["purchase_id"], unique=False)
        op.create_index(
            "ix_purchase_returns_tenant_status_updated_at",
            "purchase_returns",
            ["tenant_id", "status", "updated_at"],
            unique=False,
        )

    if not _table_exists(inspector, "purchase_return_items"):
        op.create_table(
            "purchase_return_items",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("return_id", sa.String(length=36), sa.ForeignKey("purchase_returns.id"), nullable=True),
            sa.Column("purchase_item_id", sa.String(length=36), sa.ForeignKey("purchase_items.id"), nullable=True),
            sa.Column("inventory_id", sa.String(length=36), sa.ForeignKey("inventory_items.id"), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_cost", sa.Integer(), nullable=False),
            sa.Column("sub_total", sa.Integer(), nullable=False),
        )
        op.create_index("ix_purchase_return_items_return_id", "purchase_return_items", ["return_id"], unique=False)
        op.create_index(
            "ix_purchase_return_items_purchase_item_id",
            "purchase_return_items",
            ["purchase_item_id"],
            unique=False,
        )
        op.create_index(
            "ix_purchase_return_items_inventory_id",
            "purchase_return_items",
            ["inventory_id"],
            unique=False,
        )

    if not _table_exists(inspector, "invoice_counters"):
        op.create_table(
            "invoice_counters",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=False),
            sa.Column("year", sa.Integer(), nullable=False),
            sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
            sa.UniqueConstraint("tenant_id", "year", name="uq_invoice_counters_tenant_year"),
        )

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=True),
            sa.Column("actor_user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=100), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            _created_at(),
        )
        op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"], unique=False)
        op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"], unique=False)
        op.create_index("ix_audit_logs_target_id", "audit_logs", ["target_id"], unique=False)
        op.create_index("ix_audit_logs_tenant_created_at", "audit_logs", ["tenant_id", "created_at"], unique=False)
        op.create_index(
            "ix_audit_logs_tenant_action_created_at",
            "audit_logs",
            ["tenant_id", "action", "created_at"],
            unique=False,
        )


def downgrade() -> None:
    for table_name in (
        "audit_logs",
        "invoice_counters",
        "purchase_return_items",
        "purchase_returns",
        "sale_items",
        "sales",
        "purchase_payments",
        "purchase_items",
        "purchases",
        "stock_ledger",
        "inventory_items",
        "suppliers",
        "users",
        "tenants",
    ):
        op.drop_table(table_name)

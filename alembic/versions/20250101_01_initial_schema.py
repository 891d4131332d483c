"""Initial schema for the household expense tracker"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20250101_01"
down_revision = None
branch_labels = None
depends_on = None


category_type = sa.Enum("expense", "income", "both", name="category_type")
category_group = sa.Enum("home", "office", name="category_group")
transaction_type = sa.Enum("expense", "income", name="transaction_type")
payment_mode = sa.Enum(
    "cash", "upi", "bank_transfer", "credit_card", "debit_card", name="payment_mode"
)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("type", category_type, nullable=False),
        sa.Column("category_group", category_group, nullable=False, server_default=sa.text("'home'")),
        sa.Column("icon", sa.String(length=16), nullable=False, server_default=sa.text("'💰'")),
        sa.Column("color", sa.String(length=16), nullable=False, server_default=sa.text("'#6366f1'")),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_categories_user_id", "categories", ["user_id"])
    op.create_index("ix_categories_name_default", "categories", ["name", "is_default"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("merchant", sa.String(length=100), nullable=True),
        sa.Column("payment_mode", payment_mode, nullable=False, server_default=sa.text("'cash'")),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("tx_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"])
    op.create_index("ix_transactions_merchant", "transactions", ["merchant"])
    op.create_index("ix_transactions_payment_mode", "transactions", ["payment_mode"])
    op.create_index("ix_transactions_tx_date", "transactions", ["tx_date"])


def downgrade() -> None:
    op.drop_index("ix_transactions_tx_date", table_name="transactions")
    op.drop_index("ix_transactions_payment_mode", table_name="transactions")
    op.drop_index("ix_transactions_merchant", table_name="transactions")
    op.drop_index("ix_transactions_category_id", table_name="transactions")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_table("transactions")
    payment_mode.drop(op.get_bind(), checkfirst=True)
    transaction_type.drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_categories_name_default", table_name="categories")
    op.drop_index("ix_categories_user_id", table_name="categories")
    op.drop_table("categories")
    category_group.drop(op.get_bind(), checkfirst=True)
    category_type.drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")

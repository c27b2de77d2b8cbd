"""create checkoutsubmission ledger table

Revision ID: 3c1f9a7d2b64
Revises:
Create Date: 2026-10-17 11:02:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a7d2b64'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "checkoutsubmission",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("public_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("order_reference", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default="INR"),
        sa.Column("status", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_multi_address", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_session_id", sa.String(256), nullable=True),
        sa.Column("gateway_environment", sa.String(16), nullable=True),
        sa.Column("server_order_id", sa.String(64), nullable=True),
        sa.Column("order_data", sa.JSON(), nullable=True),
        sa.Column("last_error", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_checkoutsubmission_public_id", "checkoutsubmission", ["public_id"], unique=True)
    op.create_index("ix_checkoutsubmission_order_reference", "checkoutsubmission", ["order_reference"], unique=True)
    op.create_index("ix_checkoutsubmission_user_id", "checkoutsubmission", ["user_id"])
    op.create_index("ix_checkoutsubmission_status", "checkoutsubmission", ["status"])
    op.create_index("ix_checkoutsubmission_server_order_id", "checkoutsubmission", ["server_order_id"])


def downgrade():
    op.drop_index("ix_checkoutsubmission_server_order_id", table_name="checkoutsubmission")
    op.drop_index("ix_checkoutsubmission_status", table_name="checkoutsubmission")
    op.drop_index("ix_checkoutsubmission_user_id", table_name="checkoutsubmission")
    op.drop_index("ix_checkoutsubmission_order_reference", table_name="checkoutsubmission")
    op.drop_index("ix_checkoutsubmission_public_id", table_name="checkoutsubmission")
    op.drop_table("checkoutsubmission")

"""one active order per driver: partial unique index on orders.driver_id
Revision ID: 2026_10_18_0001
Revises: 2026_10_01_0001
Create Date: 2026-10-18 10:00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "2026_10_18_0001"
down_revision = "2026_10_01_0001"
branch_labels = None
depends_on = None

ACTIVE = "status IN ('assigned', 'picked_up', 'delivering')"


def upgrade():
    op.create_index(
        "uq_orders__driver_active",
        "orders",
        ["driver_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE),
        sqlite_where=sa.text(ACTIVE),
    )


def downgrade():
    op.drop_index("uq_orders__driver_active", table_name="orders")

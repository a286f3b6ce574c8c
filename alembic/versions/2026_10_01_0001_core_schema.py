"""core schema: branches, drivers, orders, status history, card pointers
Revision ID: 2026_10_01_0001
Revises:
Create Date: 2026-10-01 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "2026_10_01_0001"
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUS = (
    "new",
    "preparing",
    "ready",
    "rejected",
    "assigned",
    "picked_up",
    "delivering",
    "completed",
)
DELIVERY_TYPE = ("unset", "pickup", "delivery")
ACTOR_TYPE = ("system", "customer", "branch_admin", "driver")
CARD_AUDIENCE = ("customer", "branch_admin", "driver")


def upgrade():
    bind = op.get_bind()
    order_status = postgresql.ENUM(*ORDER_STATUS, name="order_status", create_type=False)
    delivery_type = postgresql.ENUM(*DELIVERY_TYPE, name="delivery_type", create_type=False)
    actor_type = postgresql.ENUM(*ACTOR_TYPE, name="actor_type", create_type=False)
    card_audience = postgresql.ENUM(*CARD_AUDIENCE, name="card_audience", create_type=False)
    for enum_type in (order_status, delivery_type, actor_type, card_audience):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "branches",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("lat", sa.Float, nullable=False),
        sa.Column("lon", sa.Float, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.PrimaryKeyConstraint("id", name="pk_branches"),
    )

    op.create_table(
        "branch_admins",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "branch_id",
            sa.Integer,
            sa.ForeignKey("branches.id", ondelete="CASCADE", name="fk_branch_admins__branch_id__branches"),
            nullable=False,
        ),
        sa.Column("admin_user_id", sa.BigInteger, nullable=False),
        sa.Column("chat_id", sa.BigInteger, nullable=False),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="uz"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.PrimaryKeyConstraint("id", name="pk_branch_admins"),
        sa.UniqueConstraint("admin_user_id", name="uq_branch_admins__admin_user_id"),
    )
    op.create_index("ix_branch_admins__branch_id", "branch_admins", ["branch_id"])

    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("tg_user_id", sa.BigInteger, nullable=False),
        sa.Column("chat_id", sa.BigInteger, nullable=False),
        sa.Column("full_name", sa.String(length=160)),
        sa.Column("phone", sa.String(length=32)),
        sa.Column("car_plate", sa.String(length=32)),
        sa.Column("car_model", sa.String(length=64)),
        sa.Column("car_color", sa.String(length=32)),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="uz"),
        sa.Column("is_online", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.PrimaryKeyConstraint("id", name="pk_drivers"),
        sa.UniqueConstraint("tg_user_id", name="uq_drivers__tg_user_id"),
    )
    op.create_index("ix_drivers__is_online", "drivers", ["is_online"])

    op.create_table(
        "driver_locations",
        sa.Column(
            "driver_id",
            sa.Integer,
            sa.ForeignKey("drivers.id", ondelete="CASCADE", name="fk_driver_locations__driver_id__drivers"),
            nullable=False,
        ),
        sa.Column("lat", sa.Float, nullable=False),
        sa.Column("lon", sa.Float, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.PrimaryKeyConstraint("driver_id", name="pk_driver_locations"),
    )
    op.create_index("ix_driver_locations__updated_at", "driver_locations", ["updated_at"])

    op.create_table(
        "orders",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("customer_user_id", sa.BigInteger, nullable=False),
        sa.Column("customer_chat_id", sa.BigInteger, nullable=False),
        sa.Column("customer_language", sa.String(length=8), nullable=False, server_default="uz"),
        sa.Column("phone", sa.String(length=32)),
        sa.Column(
            "branch_id",
            sa.Integer,
            sa.ForeignKey("branches.id", ondelete="RESTRICT", name="fk_orders__branch_id__branches"),
            nullable=False,
        ),
        sa.Column(
            "driver_id",
            sa.Integer,
            sa.ForeignKey("drivers.id", ondelete="RESTRICT", name="fk_orders__driver_id__drivers"),
            nullable=True,
        ),
        sa.Column("status", order_status, nullable=False, server_default="new"),
        sa.Column("delivery_type", delivery_type, nullable=False, server_default="unset"),
        sa.Column("lat", sa.Float),
        sa.Column("lon", sa.Float),
        sa.Column("distance_km", sa.Float, nullable=False, server_default="0"),
        sa.Column("rate_per_km", sa.Integer, nullable=False, server_default="0"),
        sa.Column("items_total", sa.BigInteger, nullable=False),
        sa.Column("delivery_fee", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("grand_total", sa.BigInteger, nullable=False),
        sa.Column("fee_overridden", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("fee_override_by", sa.BigInteger),
        sa.Column("fee_override_note", sa.Text),
        sa.Column("fee_overridden_at", sa.DateTime(timezone=True)),
        sa.Column("pushed_at", sa.DateTime(timezone=True)),
        sa.Column("assigned_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.PrimaryKeyConstraint("id", name="pk_orders"),
        sa.CheckConstraint(
            "grand_total = items_total + delivery_fee", name="ck_orders__grand_total_sum"
        ),
        sa.CheckConstraint("items_total >= 0", name="ck_orders__items_total_non_negative"),
        sa.CheckConstraint("delivery_fee >= 0", name="ck_orders__delivery_fee_non_negative"),
    )
    op.create_index("ix_orders__customer_user_id", "orders", ["customer_user_id"])
    op.create_index("ix_orders__branch_id", "orders", ["branch_id"])
    op.create_index("ix_orders__driver_id", "orders", ["driver_id"])
    op.create_index("ix_orders__status", "orders", ["status"])
    op.create_index("ix_orders__created_at", "orders", ["created_at"])
    op.create_index("ix_orders__customer_created_at", "orders", ["customer_user_id", "created_at"])
    op.create_index("ix_orders__driver_status", "orders", ["driver_id", "status"])

    op.create_table(
        "order_status_history",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "order_id",
            sa.BigInteger,
            sa.ForeignKey("orders.id", ondelete="CASCADE", name="fk_order_status_history__order_id__orders"),
            nullable=False,
        ),
        sa.Column("from_status", order_status, nullable=True),
        sa.Column("to_status", order_status, nullable=False),
        sa.Column("actor_type", actor_type, nullable=False),
        sa.Column("actor_id", sa.BigInteger),
        sa.Column("reason", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.PrimaryKeyConstraint("id", name="pk_order_status_history"),
    )
    op.create_index("ix_order_status_history__order_id", "order_status_history", ["order_id"])
    op.create_index("ix_order_status_history__created_at", "order_status_history", ["created_at"])
    op.create_index(
        "ix_order_status_history__order_created_at",
        "order_status_history",
        ["order_id", "created_at"],
    )

    op.create_table(
        "order_message_pointers",
        sa.Column(
            "order_id",
            sa.BigInteger,
            sa.ForeignKey("orders.id", ondelete="CASCADE", name="fk_order_message_pointers__order_id__orders"),
            nullable=False,
        ),
        sa.Column("audience", card_audience, nullable=False),
        sa.Column("chat_id", sa.BigInteger, nullable=False),
        sa.Column("message_id", sa.BigInteger, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.PrimaryKeyConstraint("order_id", "audience", name="pk_order_message_pointers"),
    )


def downgrade():
    op.drop_table("order_message_pointers")
    op.drop_index("ix_order_status_history__order_created_at", table_name="order_status_history")
    op.drop_index("ix_order_status_history__created_at", table_name="order_status_history")
    op.drop_index("ix_order_status_history__order_id", table_name="order_status_history")
    op.drop_table("order_status_history")
    for name in (
        "ix_orders__driver_status",
        "ix_orders__customer_created_at",
        "ix_orders__created_at",
        "ix_orders__status",
        "ix_orders__driver_id",
        "ix_orders__branch_id",
        "ix_orders__customer_user_id",
    ):
        op.drop_index(name, table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_driver_locations__updated_at", table_name="driver_locations")
    op.drop_table("driver_locations")
    op.drop_index("ix_drivers__is_online", table_name="drivers")
    op.drop_table("drivers")
    op.drop_index("ix_branch_admins__branch_id", table_name="branch_admins")
    op.drop_table("branch_admins")
    op.drop_table("branches")

    bind = op.get_bind()
    for name in ("card_audience", "actor_type", "delivery_type", "order_status"):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)

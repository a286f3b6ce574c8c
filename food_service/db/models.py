from __future__ import annotations
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    false,
    text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, metadata, value_enum


# ===== Enums =====


class OrderStatus(str, enum.Enum):
    NEW = "new"
    PREPARING = "preparing"
    READY = "ready"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    DELIVERING = "delivering"
    COMPLETED = "completed"


DRIVER_ACTIVE_STATUSES = (
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.DELIVERING,
)
DRIVER_ACTIVE_PREDICATE = "status IN ('assigned', 'picked_up', 'delivering')"


class DeliveryType(str, enum.Enum):
    UNSET = "unset"
    PICKUP = "pickup"
    DELIVERY = "delivery"


class Audience(str, enum.Enum):
    CUSTOMER = "customer"
    BRANCH_ADMIN = "branch_admin"
    DRIVER = "driver"


class ActorType(str, enum.Enum):
    """Who changed the order status."""
    SYSTEM = "system"
    CUSTOMER = "customer"
    BRANCH_ADMIN = "branch_admin"
    DRIVER = "driver"


def _status_enum() -> Enum:
    return value_enum(OrderStatus, "order_status")


# ===== Branches =====


class branches(Base):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    lat: Mapped[float] = mapped_column(Float(asdecimal=False), nullable=False)
    lon: Mapped[float] = mapped_column(Float(asdecimal=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class branch_admins(Base):
    """Admin identity bound to a branch. Written by the onboarding tooling."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    admin_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False, server_default="uz")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# ===== Drivers =====


class drivers(Base):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tg_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(160))
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    car_plate: Mapped[Optional[str]] = mapped_column(String(32))
    car_model: Mapped[Optional[str]] = mapped_column(String(64))
    car_color: Mapped[Optional[str]] = mapped_column(String(32))
    language: Mapped[str] = mapped_column(String(8), nullable=False, server_default="uz")
    is_online: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(), index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class driver_locations(Base):
    driver_id: Mapped[int] = mapped_column(
        ForeignKey("drivers.id", ondelete="CASCADE"), primary_key=True
    )
    lat: Mapped[float] = mapped_column(Float(asdecimal=False), nullable=False)
    lon: Mapped[float] = mapped_column(Float(asdecimal=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )


# ===== Orders =====


class orders(Base):
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    customer_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    customer_chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    customer_language: Mapped[str] = mapped_column(
        String(8), nullable=False, server_default="uz"
    )
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    driver_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("drivers.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    status: Mapped[OrderStatus] = mapped_column(
        _status_enum(),
        nullable=False,
        default=OrderStatus.NEW,
        server_default=OrderStatus.NEW.value,
        index=True,
    )
    delivery_type: Mapped[DeliveryType] = mapped_column(
        value_enum(DeliveryType, "delivery_type"),
        nullable=False,
        default=DeliveryType.UNSET,
        server_default=DeliveryType.UNSET.value,
    )

    lat: Mapped[Optional[float]] = mapped_column(Float(asdecimal=False))
    lon: Mapped[Optional[float]] = mapped_column(Float(asdecimal=False))
    distance_km: Mapped[float] = mapped_column(
        Float(asdecimal=False), nullable=False, default=0.0, server_default="0"
    )
    rate_per_km: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    items_total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    delivery_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    grand_total: Mapped[int] = mapped_column(BigInteger, nullable=False)

    fee_overridden: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    fee_override_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    fee_override_note: Mapped[Optional[str]] = mapped_column(Text)
    fee_overridden_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    pushed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("grand_total = items_total + delivery_fee", name="grand_total_sum"),
        CheckConstraint("items_total >= 0", name="items_total_non_negative"),
        CheckConstraint("delivery_fee >= 0", name="delivery_fee_non_negative"),
        Index("ix_orders__customer_created_at", "customer_user_id", "created_at"),
        Index("ix_orders__driver_status", "driver_id", "status"),
        # У водителя не больше одного заказа в работе.
        Index(
            "uq_orders__driver_active",
            "driver_id",
            unique=True,
            postgresql_where=text(DRIVER_ACTIVE_PREDICATE),
            sqlite_where=text(DRIVER_ACTIVE_PREDICATE),
        ),
    )


class order_status_history(Base):
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[Optional[OrderStatus]] = mapped_column(_status_enum(), nullable=True)
    to_status: Mapped[OrderStatus] = mapped_column(_status_enum(), nullable=False)
    actor_type: Mapped[ActorType] = mapped_column(
        value_enum(ActorType, "actor_type"),
        nullable=False,
        default=ActorType.SYSTEM,
    )
    actor_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )

    __table_args__ = (
        Index("ix_order_status_history__order_created_at", "order_id", "created_at"),
    )


class order_message_pointers(Base):
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True
    )
    audience: Mapped[Audience] = mapped_column(
        value_enum(Audience, "card_audience"), primary_key=True
    )
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    message_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


__all__ = [
    "metadata",
    "OrderStatus",
    "DeliveryType",
    "Audience",
    "ActorType",
    "DRIVER_ACTIVE_STATUSES",
    "branches",
    "branch_admins",
    "drivers",
    "driver_locations",
    "orders",
    "order_status_history",
    "order_message_pointers",
]

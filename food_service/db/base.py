"""Declarative base, naming convention and column helpers shared by the models."""
from __future__ import annotations

import enum

from sqlalchemy import BigInteger, Enum, Integer, MetaData
from sqlalchemy.orm import DeclarativeBase, declared_attr

# The migrations spell constraint names out; keep them in sync with these patterns.
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s__%(column_0_name)s",
    "uq": "uq_%(table_name)s__%(column_0_name)s",
    "ck": "ck_%(table_name)s__%(constraint_name)s",
    "fk": "fk_%(table_name)s__%(column_0_name)s__%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=NAMING_CONVENTION)

# SQLite only autoincrements INTEGER primary keys
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def value_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Enum column stored by member value (``ready``), not member name (``READY``)."""
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class Base(DeclarativeBase):
    metadata = metadata

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        # Models are named after their tables: m.orders, m.driver_locations.
        return cls.__name__

"""
Declarative bases for every ORM model in the plan ledger.

``Base`` fixes the column conventions: UUID primary keys stored as
``String(36)``, ``int`` annotations as ``BigInteger`` (all money is integer
cents), ``Decimal`` as ``Numeric(38, 9)`` (rate-line quantities only) and
timezone-aware timestamps.  ``TrackedBase`` adds who/when columns.

Nothing outside ``sqlalchemy`` is imported here; every model module
depends on this one.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID <-> ``String(36)``, portable across PostgreSQL and SQLite."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        int: BigInteger,
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds ``created_at``/``updated_at`` and the acting user ids.

    ``created_by_id`` is NOT NULL: every row records who created it.  The
    timestamps default to the database clock; services that own a ``Clock``
    set them explicitly (see ``touch``).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString())
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString())

    def touch(self, actor_id: UUID, when: datetime | None = None) -> None:
        """Record ``actor_id`` as the latest modifier, at ``when`` if given."""
        self.updated_by_id = actor_id
        if when is not None:
            self.updated_at = when

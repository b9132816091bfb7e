"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic migrations are written against these models.

Key concepts:
- UUID primary keys via the portable `Uuid` type (native UUID on
  PostgreSQL, CHAR(32) elsewhere — the test suite runs on SQLite)
- Contract status is a plain string column: pending → accepted | rejected
- Only accepted contracts unlock chat
- Message timestamps are set in Python as well as by the server default,
  so the value we broadcast is the value we stored
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


CONTRACT_PENDING = "pending"
CONTRACT_ACCEPTED = "accepted"
CONTRACT_REJECTED = "rejected"


class User(Base):
    """A marketplace user, mirrored from Supabase auth.

    Learn: The id is the `sub` claim of the user's access token, so a
    verified token maps straight onto a row without a lookup table.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class Gig(Base):
    """A service offered by a freelancer (the gig owner)."""

    __tablename__ = "gigs"
    __table_args__ = (Index("idx_gigs_user", "user_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    category: Mapped[str] = mapped_column(
        String(50), nullable=False, default="other"
    )  # web_development, design, data_science, ...
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    owner: Mapped["User"] = relationship()


class Contract(Base):
    """A client's request to hire a gig.

    Learn: The two chat parties of a contract are the client who sent it
    (`user_id`) and the freelancer who owns the gig (`gig.user_id`).
    """

    __tablename__ = "contracts"
    __table_args__ = (
        UniqueConstraint("gig_id", "user_id", name="uq_contracts_gig_user"),
        Index("idx_contracts_user", "user_id"),
        Index("idx_contracts_gig", "gig_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    gig_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("gigs.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CONTRACT_PENDING
    )  # pending, accepted, rejected
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    gig: Mapped["Gig"] = relationship()


class Message(Base):
    """A chat message inside a contract.

    Learn: The composite index (contract_id, created_at, id) backs the
    keyset pagination of the history endpoint: newest first, ties broken
    by id so a page boundary never splits or repeats a row.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_contract_created", "contract_id", "created_at", "id"),
        Index("idx_messages_unread", "contract_id", "sender_id", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    contract_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contracts.id"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clinic_inventory.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionType(str, PyEnum):
    STOCK_IN = "stock_in"
    USAGE = "usage"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    ADJUSTMENT = "adjustment"


class TransactionRecord(Base):
    """Append-only audit entry for one change to one department's stock."""

    __tablename__ = "transaction_records"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    item_id: Mapped[str] = mapped_column(String, ForeignKey("inventory_items.id"), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String, default="")
    department: Mapped[str] = mapped_column(String, nullable=False, index=True)
    transaction_type: Mapped[str] = mapped_column(
        Enum(TransactionType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )

    change: Mapped[int] = mapped_column(Integer, nullable=False)  # positive=in, negative=out
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    status_before: Mapped[str] = mapped_column(String, default="")
    status_after: Mapped[str] = mapped_column(String, default="")

    actor_id: Mapped[str] = mapped_column(String, nullable=False)
    actor_name: Mapped[str] = mapped_column(String, default="")

    source_department: Mapped[str] = mapped_column(String, default="")
    destination_department: Mapped[str] = mapped_column(String, default="")
    transfer_id: Mapped[str] = mapped_column(String, default="", index=True)  # shared by both legs
    reference_id: Mapped[str] = mapped_column(String, default="")  # transfer request, patient, ...
    reason: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class ProcessedMovement(Base):
    """Idempotency keys of recorded movements."""

    __tablename__ = "processed_movements"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_inventory.database import Base


class TransferRequest(Base):
    """Pending ask from one department for stock held by another."""

    __tablename__ = "transfer_requests"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    request_number: Mapped[str] = mapped_column(String, unique=True, index=True)
    requesting_department: Mapped[str] = mapped_column(String, ForeignKey("departments.name"), nullable=False)
    supplying_department: Mapped[str] = mapped_column(String, ForeignKey("departments.name"), nullable=False)
    reason: Mapped[str] = mapped_column(Text, default="")
    requested_by_id: Mapped[str] = mapped_column(String, default="")
    requested_by_name: Mapped[str] = mapped_column(String, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    items: Mapped[list["TransferRequestItem"]] = relationship(
        "TransferRequestItem", back_populates="transfer_request", cascade="all, delete-orphan"
    )


class TransferRequestItem(Base):
    __tablename__ = "transfer_request_items"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    transfer_request_id: Mapped[str] = mapped_column(String, ForeignKey("transfer_requests.id"), nullable=False)
    item_id: Mapped[str] = mapped_column(String, ForeignKey("inventory_items.id"), nullable=False)
    item_name: Mapped[str] = mapped_column(String, default="")
    quantity: Mapped[int] = mapped_column(Integer, default=0)

    transfer_request: Mapped["TransferRequest"] = relationship("TransferRequest", back_populates="items")

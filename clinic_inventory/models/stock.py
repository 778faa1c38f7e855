import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_inventory.database import Base
from clinic_inventory.models.item import InventoryItem


class LocationStock(Base):
    """On-hand quantity of one catalog item in one department."""

    __tablename__ = "location_stocks"
    __table_args__ = (UniqueConstraint("item_id", "department", name="uq_location_stock_item_department"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    item_id: Mapped[str] = mapped_column(String, ForeignKey("inventory_items.id"), nullable=False, index=True)
    department: Mapped[str] = mapped_column(String, ForeignKey("departments.name"), nullable=False, index=True)

    quantity: Mapped[int] = mapped_column(Integer, default=0)
    # Set when the row is created, never recalculated
    max_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Persisted copy of classify(quantity, max_quantity)
    status: Mapped[str] = mapped_column(String, default="Unknown")

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    item: Mapped["InventoryItem"] = relationship("InventoryItem")

    __mapper_args__ = {"version_id_col": version}

import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, Enum, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from clinic_inventory.database import Base


class ItemGroup(str, PyEnum):
    MEDICINE = "Medicine"
    SUPPLY = "Supply"


class InventoryItem(Base):
    """Master catalog entry. The id is the catalog key and never changes."""

    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    category: Mapped[str] = mapped_column(String, default="")
    group: Mapped[str] = mapped_column(
        Enum(ItemGroup, values_callable=lambda x: [e.value for e in x]),
        default=ItemGroup.SUPPLY,
    )

    # Unit of measure: conversion_factor small units make one big unit
    small_unit: Mapped[str] = mapped_column(String, default="piece")
    big_unit: Mapped[str] = mapped_column(String, default="box")
    conversion_factor: Mapped[int] = mapped_column(Integer, default=1)

    cost_price: Mapped[float] = mapped_column(Float, default=0.0)
    retail_price: Mapped[float] = mapped_column(Float, default=0.0)

    # Baseline used as the denominator for stock status
    max_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())


class Department(Base):
    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    clinic: Mapped[str] = mapped_column(String, default="", index=True)
    # Central departments (CSR, Pharmacy) hold main stock; the rest receive transfers
    is_central: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

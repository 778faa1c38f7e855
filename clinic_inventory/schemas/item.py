from datetime import datetime

from pydantic import BaseModel, Field

from clinic_inventory.models.item import ItemGroup


# --- Catalog schemas ---

class ItemCreate(BaseModel):
    name: str
    category: str = ""
    group: ItemGroup = ItemGroup.SUPPLY
    small_unit: str = "piece"
    big_unit: str = "box"
    conversion_factor: int = Field(1, ge=1)
    cost_price: float = Field(0.0, ge=0)
    retail_price: float = Field(0.0, ge=0)
    max_quantity: int = Field(..., gt=0)  # baseline is required up front


class ItemUpdate(BaseModel):
    name: str | None = None
    category: str | None = None
    group: ItemGroup | None = None
    small_unit: str | None = None
    big_unit: str | None = None
    conversion_factor: int | None = Field(None, ge=1)
    cost_price: float | None = Field(None, ge=0)
    retail_price: float | None = Field(None, ge=0)
    max_quantity: int | None = Field(None, gt=0)


class ItemOut(BaseModel):
    id: str
    name: str
    category: str
    group: ItemGroup
    small_unit: str
    big_unit: str
    conversion_factor: int
    cost_price: float
    retail_price: float
    max_quantity: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# --- Department schemas ---

class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    clinic: str = ""
    is_central: bool = False


class DepartmentOut(BaseModel):
    name: str
    clinic: str
    is_central: bool

    model_config = {"from_attributes": True}

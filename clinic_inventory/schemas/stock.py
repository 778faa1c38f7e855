from datetime import datetime

from pydantic import BaseModel

from clinic_inventory.services.status import StockStatus


class LocationStockOut(BaseModel):
    id: str
    item_id: str
    department: str
    quantity: int
    max_quantity: int
    status: str
    version: int
    updated_at: datetime

    model_config = {"from_attributes": True}


class DepartmentQuantity(BaseModel):
    department: str
    quantity: int
    central: bool


class AggregateLine(BaseModel):
    item_id: str
    item_name: str = ""
    central_quantity: int = 0
    transferred_quantity: int = 0
    grand_total: int = 0
    max_quantity: int | None = None
    status: StockStatus = StockStatus.UNKNOWN
    departments: list[DepartmentQuantity] = []

    model_config = {"frozen": True}


class AggregateView(BaseModel):
    items: list[AggregateLine] = []
    item_count: int = 0
    central_total: int = 0
    transferred_total: int = 0
    grand_total: int = 0

    model_config = {"frozen": True}

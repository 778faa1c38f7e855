from datetime import datetime

from pydantic import BaseModel, Field


class TransferRequestItemCreate(BaseModel):
    item_id: str
    quantity: int = Field(..., gt=0)


class TransferRequestCreate(BaseModel):
    requesting_department: str
    supplying_department: str | None = None
    reason: str = Field(..., min_length=1)
    items: list[TransferRequestItemCreate] = Field(..., min_length=1)


class TransferRequestConfirm(BaseModel):
    # Optional per-line override: item_id -> quantity actually sent
    quantities: dict[str, int] = {}
    idempotency_key: str | None = None


class TransferRequestItemOut(BaseModel):
    id: str
    item_id: str
    item_name: str
    quantity: int

    model_config = {"from_attributes": True}


class TransferRequestOut(BaseModel):
    id: str
    request_number: str
    requesting_department: str
    supplying_department: str
    reason: str
    requested_by_id: str
    requested_by_name: str
    items: list[TransferRequestItemOut]
    created_at: datetime

    model_config = {"from_attributes": True}

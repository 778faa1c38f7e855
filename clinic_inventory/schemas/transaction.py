from datetime import datetime

from pydantic import BaseModel

from clinic_inventory.models.transaction import TransactionType


class TransactionRecordOut(BaseModel):
    id: str
    item_id: str
    item_name: str
    department: str
    transaction_type: TransactionType
    change: int
    balance_before: int
    balance_after: int
    status_before: str
    status_after: str
    actor_id: str
    actor_name: str
    source_department: str
    destination_department: str
    transfer_id: str
    reference_id: str
    reason: str
    created_at: datetime

    model_config = {"from_attributes": True}

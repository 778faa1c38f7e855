from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class _MovementBase(BaseModel):
    item_id: str
    reason: str = ""
    # Client-generated; a repeated key inside the retention window is rejected
    idempotency_key: str | None = None


class StockIn(_MovementBase):
    kind: Literal["stock_in"] = "stock_in"
    department: str
    quantity: int = Field(..., gt=0)
    # Baseline for a department's first stock-in; defaults to the catalog baseline
    max_quantity: int | None = Field(None, gt=0)


class Usage(_MovementBase):
    kind: Literal["usage"] = "usage"
    department: str
    quantity: int = Field(..., gt=0)
    reference_id: str = ""


class Transfer(_MovementBase):
    kind: Literal["transfer"] = "transfer"
    source_department: str
    destination_department: str
    quantity: int = Field(..., gt=0)
    reference_id: str = ""

    @model_validator(mode="after")
    def check_departments(self):
        if self.source_department == self.destination_department:
            raise ValueError("Source and destination departments must differ")
        return self


class Adjustment(_MovementBase):
    kind: Literal["adjustment"] = "adjustment"
    department: str
    change: int

    @field_validator("change")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("Adjustment change cannot be zero")
        return v


MovementUnion = Union[StockIn, Usage, Transfer, Adjustment]
Movement = Annotated[MovementUnion, Field(discriminator="kind")]

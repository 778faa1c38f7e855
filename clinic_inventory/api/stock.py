from typing import Annotated

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from clinic_inventory.api.auth import get_current_actor, require_admin
from clinic_inventory.database import get_db
from clinic_inventory.models.item import ItemGroup
from clinic_inventory.models.user import User
from clinic_inventory.schemas.actor import Actor
from clinic_inventory.schemas.movement import MovementUnion
from clinic_inventory.schemas.stock import AggregateLine, AggregateView, LocationStockOut
from clinic_inventory.schemas.transaction import TransactionRecordOut
from clinic_inventory.services import movement_service, report_service, stock_service

router = APIRouter(tags=["Stock"])


@router.post("/movements", response_model=list[TransactionRecordOut], status_code=201)
def record_movement(
    data: Annotated[MovementUnion, Body(discriminator="kind")],
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return movement_service.record_movement(db, data, actor)


@router.get("/stock", response_model=list[LocationStockOut])
def list_stock(
    department: str | None = None,
    item_id: str | None = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return stock_service.list_stock(db, actor, department=department, item_id=item_id)


@router.get("/stock/overall", response_model=AggregateView)
def overall_inventory(
    group: ItemGroup | None = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return stock_service.overall_inventory(db, actor, group=group)


@router.get("/stock/items/{item_id}/breakdown", response_model=AggregateLine)
def item_breakdown(item_id: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return stock_service.item_breakdown(db, actor, item_id)


@router.post("/stock/refresh-status")
def refresh_status(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return {"fixed": report_service.refresh_statuses(db)}

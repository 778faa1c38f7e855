from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinic_inventory.api.auth import get_current_actor, require_admin
from clinic_inventory.database import get_db
from clinic_inventory.models.transaction import TransactionType
from clinic_inventory.models.user import User
from clinic_inventory.schemas.actor import Actor
from clinic_inventory.schemas.transaction import TransactionRecordOut
from clinic_inventory.services import report_service

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/transactions", response_model=list[TransactionRecordOut])
def transactions_report(
    item_id: str | None = None,
    department: str | None = None,
    transaction_type: TransactionType | None = None,
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    limit: int = 100,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return report_service.list_transactions(
        db, actor, item_id=item_id, department=department, transaction_type=transaction_type,
        start=start, end=end, limit=limit,
    )


@router.get("/low-stock")
def low_stock_report(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return report_service.low_stock_alerts(db, actor)


@router.get("/reconciliation")
def reconciliation_report(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    issues = report_service.reconcile(db)
    return {"consistent": not issues, "issues": issues}


@router.get("/valuation")
def valuation_report(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return report_service.inventory_valuation(db, actor)

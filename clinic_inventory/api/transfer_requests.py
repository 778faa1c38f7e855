from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clinic_inventory.api.auth import get_current_actor
from clinic_inventory.database import get_db
from clinic_inventory.schemas.actor import Actor
from clinic_inventory.schemas.transaction import TransactionRecordOut
from clinic_inventory.schemas.transfer_request import (
    TransferRequestConfirm,
    TransferRequestCreate,
    TransferRequestOut,
)
from clinic_inventory.services import transfer_request_service
from clinic_inventory.services.errors import MovementError

router = APIRouter(prefix="/transfer-requests", tags=["Transfer Requests"])


@router.post("", response_model=TransferRequestOut, status_code=201)
def create_transfer_request(
    data: TransferRequestCreate, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)
):
    try:
        return transfer_request_service.create_transfer_request(db, data, actor)
    except MovementError:
        raise
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("", response_model=list[TransferRequestOut])
def list_transfer_requests(
    department: str | None = None,
    skip: int = 0,
    limit: int = 100,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return transfer_request_service.list_transfer_requests(db, actor, department=department, skip=skip, limit=limit)


@router.get("/{request_id}", response_model=TransferRequestOut)
def get_transfer_request(request_id: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    tr = transfer_request_service.get_visible_transfer_request(db, request_id, actor)
    if not tr:
        raise HTTPException(404, "Transfer request not found")
    return tr


@router.post("/{request_id}/confirm", response_model=list[TransactionRecordOut])
def confirm_transfer_request(
    request_id: str,
    data: TransferRequestConfirm | None = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    try:
        records = transfer_request_service.confirm_transfer_request(db, request_id, actor, data)
    except MovementError:
        raise
    except ValueError as e:
        raise HTTPException(400, str(e))
    if records is None:
        raise HTTPException(404, "Transfer request not found")
    return records


@router.post("/{request_id}/reject")
def reject_transfer_request(request_id: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    if not transfer_request_service.reject_transfer_request(db, request_id, actor):
        raise HTTPException(404, "Transfer request not found")
    return {"ok": True}

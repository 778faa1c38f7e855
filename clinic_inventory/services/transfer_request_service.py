import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from clinic_inventory.config import settings
from clinic_inventory.models.transaction import TransactionRecord
from clinic_inventory.models.transfer_request import TransferRequest, TransferRequestItem
from clinic_inventory.schemas.actor import Actor
from clinic_inventory.schemas.movement import Transfer
from clinic_inventory.schemas.transfer_request import TransferRequestConfirm, TransferRequestCreate
from clinic_inventory.services.access import can_see_department, visible_departments
from clinic_inventory.services.errors import InsufficientStockError, RequestAlreadyProcessedError
from clinic_inventory.services.item_service import department_clinics
from clinic_inventory.services.movement_service import (
    get_stock,
    record_movements,
    require_access,
    require_department,
    require_item,
)

logger = logging.getLogger(__name__)


def _generate_request_number() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    short = uuid.uuid4().hex[:6].upper()
    return f"TR-{ts}-{short}"


def create_transfer_request(db: Session, data: TransferRequestCreate, actor: Actor) -> TransferRequest:
    supplying = data.supplying_department or settings.DEFAULT_SUPPLYING_DEPARTMENT
    if supplying == data.requesting_department:
        raise ValueError("A department cannot request stock from itself")
    require_department(db, data.requesting_department)
    require_department(db, supplying)
    require_access(db, actor, [data.requesting_department])

    seen: set[str] = set()
    lines = []
    for line in data.items:
        if line.item_id in seen:
            raise ValueError(f"Item {line.item_id} is listed more than once")
        seen.add(line.item_id)
        item = require_item(db, line.item_id)
        lines.append(TransferRequestItem(item_id=item.id, item_name=item.name, quantity=line.quantity))

    tr = TransferRequest(
        request_number=_generate_request_number(),
        requesting_department=data.requesting_department,
        supplying_department=supplying,
        reason=data.reason,
        requested_by_id=actor.id,
        requested_by_name=actor.name,
        items=lines,
    )
    db.add(tr)
    db.commit()
    db.refresh(tr)
    logger.info("Transfer request %s: %s asks %s for %d item(s)",
                tr.request_number, tr.requesting_department, tr.supplying_department, len(lines))
    return tr


def get_transfer_request(db: Session, request_id: str) -> TransferRequest | None:
    return db.query(TransferRequest).filter(TransferRequest.id == request_id).first()


def can_see_request(actor: Actor, tr: TransferRequest, clinics: dict[str, str]) -> bool:
    return (
        can_see_department(actor, tr.requesting_department, clinics)
        or can_see_department(actor, tr.supplying_department, clinics)
    )


def get_visible_transfer_request(db: Session, request_id: str, actor: Actor) -> TransferRequest | None:
    tr = get_transfer_request(db, request_id)
    if tr and not can_see_request(actor, tr, department_clinics(db)):
        return None
    return tr


def list_transfer_requests(
    db: Session, actor: Actor, department: str | None = None, skip: int = 0, limit: int = 100
) -> list[TransferRequest]:
    q = db.query(TransferRequest)
    if department:
        q = q.filter(
            (TransferRequest.requesting_department == department)
            | (TransferRequest.supplying_department == department)
        )
    visible = visible_departments(actor, department_clinics(db))
    if visible is not None:
        q = q.filter(
            TransferRequest.requesting_department.in_(visible)
            | TransferRequest.supplying_department.in_(visible)
        )
    return q.order_by(TransferRequest.created_at.desc()).offset(skip).limit(limit).all()


def _delete_request(db: Session, request_id: str) -> None:
    db.query(TransferRequestItem).filter(TransferRequestItem.transfer_request_id == request_id).delete()
    deleted = db.query(TransferRequest).filter(TransferRequest.id == request_id).delete()
    if deleted != 1:
        raise RequestAlreadyProcessedError(request_id)


def confirm_transfer_request(
    db: Session, request_id: str, actor: Actor, data: TransferRequestConfirm | None = None
) -> list[TransactionRecord] | None:
    """Fill a request: transfer every line and delete the request, all in one transaction.

    Only someone who can see the supplying department may confirm. If the
    request is gone by the time the transfers are written, another
    confirmation or a rejection won the race and everything is rolled back.
    """
    tr = get_transfer_request(db, request_id)
    if not tr:
        return None
    require_access(db, actor, [tr.supplying_department])
    data = data or TransferRequestConfirm()

    movements = []
    for line in tr.items:
        quantity = data.quantities.get(line.item_id, line.quantity)
        if quantity <= 0:
            raise ValueError(f"Quantity for {line.item_name} must be positive")
        movements.append(
            Transfer(
                item_id=line.item_id,
                source_department=tr.supplying_department,
                destination_department=tr.requesting_department,
                quantity=quantity,
                reason=tr.reason,
                reference_id=tr.id,
            )
        )

    # Reject the whole request before any write if one line cannot be filled
    for m in movements:
        stock = get_stock(db, m.item_id, m.source_department)
        available = stock.quantity if stock else 0
        if available < m.quantity:
            raise InsufficientStockError(m.item_id, m.source_department, available, m.quantity)

    request_number = tr.request_number
    # The request authorizes delivery into the requesting department
    records = record_movements(
        db,
        movements,
        actor,
        idempotency_key=data.idempotency_key,
        before_commit=lambda s: _delete_request(s, request_id),
        check_access=False,
    )
    logger.info("Transfer request %s confirmed by %s", request_number, actor.id)
    return records


def reject_transfer_request(db: Session, request_id: str, actor: Actor) -> bool:
    tr = get_transfer_request(db, request_id)
    if not tr:
        return False
    require_access(db, actor, [tr.supplying_department])
    request_number = tr.request_number
    try:
        _delete_request(db, request_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Transfer request %s rejected by %s", request_number, actor.id)
    return True

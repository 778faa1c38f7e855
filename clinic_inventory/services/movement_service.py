"""Stock movements: stock-in, usage, transfers and adjustments.

Every movement changes one or two ``LocationStock`` rows and appends one
``TransactionRecord`` per changed row, all in a single database transaction.
Writers to the same (item, department) row are serialized by an in-process
lock, and the row's ``version`` column turns a lost update from another
process into a ``StaleDataError`` which is retried against fresh state.
"""

import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Sequence
from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from clinic_inventory.config import settings
from clinic_inventory.models.item import Department, InventoryItem
from clinic_inventory.models.stock import LocationStock
from clinic_inventory.models.transaction import ProcessedMovement, TransactionRecord, TransactionType, utcnow
from clinic_inventory.schemas.actor import Actor
from clinic_inventory.schemas.movement import Adjustment, StockIn, Transfer, Usage
from clinic_inventory.services.access import can_see_department
from clinic_inventory.services.errors import (
    AccessDeniedError,
    ConcurrentModificationError,
    DuplicateMovementError,
    InsufficientStockError,
    PartialTransferError,
    UnknownDepartmentError,
    UnknownItemError,
)
from clinic_inventory.services.item_service import department_clinics
from clinic_inventory.services.status import classify

logger = logging.getLogger(__name__)


class RowLockRegistry:
    """One lock per (item_id, department), created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.Lock] = {}

    def _lock_for(self, key: tuple[str, str]) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    @contextmanager
    def hold(self, keys: Iterable[tuple[str, str]]):
        # Sorted acquisition so two transfers in opposite directions cannot deadlock
        locks = [self._lock_for(k) for k in sorted(set(keys))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


row_locks = RowLockRegistry()


# --- Lookups ---

def require_item(db: Session, item_id: str) -> InventoryItem:
    item = db.get(InventoryItem, item_id)
    if not item:
        raise UnknownItemError(item_id)
    return item


def require_department(db: Session, name: str) -> Department:
    dept = db.get(Department, name)
    if not dept:
        raise UnknownDepartmentError(name)
    return dept


def require_access(db: Session, actor: Actor, departments: Iterable[str]) -> None:
    clinics = department_clinics(db)
    for dept in departments:
        if not can_see_department(actor, dept, clinics):
            raise AccessDeniedError(actor.id, dept)


def get_stock(db: Session, item_id: str, department: str) -> LocationStock | None:
    return (
        db.query(LocationStock)
        .filter(LocationStock.item_id == item_id, LocationStock.department == department)
        .first()
    )


def stock_keys(movement) -> list[tuple[str, str]]:
    if isinstance(movement, Transfer):
        return [
            (movement.item_id, movement.source_department),
            (movement.item_id, movement.destination_department),
        ]
    return [(movement.item_id, movement.department)]


# --- Row changes ---

def _new_stock(db: Session, item: InventoryItem, department: str, max_quantity: int | None = None) -> LocationStock:
    baseline = max_quantity or item.max_quantity
    stock = LocationStock(
        item_id=item.id,
        department=department,
        quantity=0,
        max_quantity=baseline,
        status=classify(0, baseline).value,
    )
    db.add(stock)
    return stock


def _apply_change(
    db: Session,
    stock: LocationStock,
    item: InventoryItem,
    change: int,
    transaction_type: TransactionType,
    actor: Actor,
    **fields,
) -> TransactionRecord:
    before = stock.quantity or 0
    after = before + change
    if after < 0:
        raise InsufficientStockError(item.id, stock.department, before, -change)

    status_before = stock.status
    stock.quantity = after
    stock.status = classify(after, stock.max_quantity).value

    record = TransactionRecord(
        item_id=item.id,
        item_name=item.name,
        department=stock.department,
        transaction_type=transaction_type,
        change=change,
        balance_before=before,
        balance_after=after,
        status_before=status_before,
        status_after=stock.status,
        actor_id=actor.id,
        actor_name=actor.name,
        **fields,
    )
    db.add(record)
    return record


def _run_leg(db: Session, legs: list[str], label: str, transfer_id: str, apply: Callable[[], TransactionRecord]):
    """Apply and flush one row change, attributing storage failures to this leg."""
    try:
        record = apply()
        db.flush()
    except (StaleDataError, IntegrityError):
        raise
    except SQLAlchemyError as exc:
        if legs:
            raise PartialTransferError(transfer_id, legs, label, cause=str(getattr(exc, "orig", None) or exc)) from exc
        raise
    legs.append(label)
    return record


def _leg_label(transaction_type: TransactionType, item_id: str, department: str) -> str:
    return f"{transaction_type.value}:{item_id}@{department}"


# --- Movement kinds ---

def _apply_stock_in(db: Session, m: StockIn, actor: Actor, legs: list[str]) -> list[TransactionRecord]:
    item = require_item(db, m.item_id)
    require_department(db, m.department)
    stock = get_stock(db, item.id, m.department) or _new_stock(db, item, m.department, m.max_quantity)
    label = _leg_label(TransactionType.STOCK_IN, item.id, m.department)
    record = _run_leg(
        db, legs, label, "",
        lambda: _apply_change(
            db, stock, item, m.quantity, TransactionType.STOCK_IN, actor,
            destination_department=m.department,
            reason=m.reason or "Stock replenishment",
        ),
    )
    return [record]


def _apply_usage(db: Session, m: Usage, actor: Actor, legs: list[str]) -> list[TransactionRecord]:
    item = require_item(db, m.item_id)
    require_department(db, m.department)
    stock = get_stock(db, item.id, m.department)
    available = stock.quantity if stock else 0
    if not stock or available < m.quantity:
        raise InsufficientStockError(item.id, m.department, available, m.quantity)
    label = _leg_label(TransactionType.USAGE, item.id, m.department)
    record = _run_leg(
        db, legs, label, "",
        lambda: _apply_change(
            db, stock, item, -m.quantity, TransactionType.USAGE, actor,
            source_department=m.department,
            reference_id=m.reference_id,
            reason=m.reason,
        ),
    )
    return [record]


def _apply_adjustment(db: Session, m: Adjustment, actor: Actor, legs: list[str]) -> list[TransactionRecord]:
    item = require_item(db, m.item_id)
    require_department(db, m.department)
    stock = get_stock(db, item.id, m.department)
    if not stock:
        if m.change < 0:
            raise InsufficientStockError(item.id, m.department, 0, -m.change)
        stock = _new_stock(db, item, m.department)
    elif stock.quantity + m.change < 0:
        raise InsufficientStockError(item.id, m.department, stock.quantity, -m.change)
    label = _leg_label(TransactionType.ADJUSTMENT, item.id, m.department)
    record = _run_leg(
        db, legs, label, "",
        lambda: _apply_change(db, stock, item, m.change, TransactionType.ADJUSTMENT, actor, reason=m.reason),
    )
    return [record]


def _apply_transfer(db: Session, m: Transfer, actor: Actor, legs: list[str]) -> list[TransactionRecord]:
    item = require_item(db, m.item_id)
    require_department(db, m.source_department)
    require_department(db, m.destination_department)

    source = get_stock(db, item.id, m.source_department)
    available = source.quantity if source else 0
    if not source or available < m.quantity:
        raise InsufficientStockError(item.id, m.source_department, available, m.quantity)

    transfer_id = str(uuid.uuid4())
    shared = dict(
        source_department=m.source_department,
        destination_department=m.destination_department,
        transfer_id=transfer_id,
        reference_id=m.reference_id,
        reason=m.reason,
    )

    out_label = _leg_label(TransactionType.TRANSFER_OUT, item.id, m.source_department)
    out_record = _run_leg(
        db, legs, out_label, transfer_id,
        lambda: _apply_change(db, source, item, -m.quantity, TransactionType.TRANSFER_OUT, actor, **shared),
    )

    def _in_leg():
        dest = get_stock(db, item.id, m.destination_department) or _new_stock(db, item, m.destination_department)
        return _apply_change(db, dest, item, m.quantity, TransactionType.TRANSFER_IN, actor, **shared)

    in_label = _leg_label(TransactionType.TRANSFER_IN, item.id, m.destination_department)
    in_record = _run_leg(db, legs, in_label, transfer_id, _in_leg)
    return [out_record, in_record]


_APPLIERS = {
    "stock_in": _apply_stock_in,
    "usage": _apply_usage,
    "adjustment": _apply_adjustment,
    "transfer": _apply_transfer,
}


# --- Idempotency ---

def _retention_cutoff():
    return utcnow() - timedelta(hours=settings.IDEMPOTENCY_RETENTION_HOURS)


def _claim_idempotency_key(db: Session, key: str, kind: str) -> None:
    existing = db.get(ProcessedMovement, key)
    if existing and existing.created_at >= _retention_cutoff():
        raise DuplicateMovementError(key)
    if existing:
        # Expired key: reuse the row for this movement
        existing.kind = kind
        existing.created_at = utcnow()
    else:
        db.add(ProcessedMovement(key=key, kind=kind))


def _key_active(db: Session, key: str) -> bool:
    existing = db.get(ProcessedMovement, key)
    return existing is not None and existing.created_at >= _retention_cutoff()


# --- Entry points ---

def record_movements(
    db: Session,
    movements: Sequence,
    actor: Actor,
    idempotency_key: str | None = None,
    before_commit: Callable[[Session], None] | None = None,
    check_access: bool = True,
) -> list[TransactionRecord]:
    """Apply several movements as one all-or-nothing transaction.

    Returns the appended records in order. ``before_commit`` runs inside the
    same transaction after every movement has been applied. With
    ``check_access`` the actor must be able to see every department touched;
    callers that have already authorized the movements pass False.
    """
    keys = [k for m in movements for k in stock_keys(m)]
    if check_access:
        require_access(db, actor, [dept for _, dept in keys])
    attempts = max(1, settings.MOVEMENT_MAX_RETRIES)
    kind = movements[0].kind if len(movements) == 1 else "batch"

    with row_locks.hold(keys):
        for attempt in range(1, attempts + 1):
            legs: list[str] = []
            try:
                if idempotency_key:
                    _claim_idempotency_key(db, idempotency_key, kind)
                records = []
                for m in movements:
                    records.extend(_APPLIERS[m.kind](db, m, actor, legs))
                if before_commit:
                    before_commit(db)
                db.commit()
            except StaleDataError:
                db.rollback()
                logger.warning("Concurrent change on %s (attempt %d/%d), retrying", keys, attempt, attempts)
                continue
            except IntegrityError:
                db.rollback()
                if idempotency_key and _key_active(db, idempotency_key):
                    logger.warning("Duplicate movement %s rejected", idempotency_key)
                    raise DuplicateMovementError(idempotency_key)
                logger.warning("Conflicting insert on %s (attempt %d/%d), retrying", keys, attempt, attempts)
                continue
            except PartialTransferError as exc:
                db.rollback()
                exc.mark_rolled_back()
                logger.error("%s", exc)
                raise
            except Exception:
                db.rollback()
                raise

            for record in records:
                db.refresh(record)
            for record in records:
                logger.info(
                    "Recorded %s of %+d %s at %s by %s (balance %d)",
                    record.transaction_type.value,
                    record.change,
                    record.item_id,
                    record.department,
                    actor.id,
                    record.balance_after,
                )
            return records

    raise ConcurrentModificationError(keys, attempts)


def record_movement(db: Session, movement, actor: Actor) -> list[TransactionRecord]:
    """Record one movement; a transfer yields its two linked records."""
    return record_movements(db, [movement], actor, idempotency_key=movement.idempotency_key)

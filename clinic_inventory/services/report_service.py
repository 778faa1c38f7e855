import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinic_inventory.models.item import InventoryItem, ItemGroup
from clinic_inventory.models.stock import LocationStock
from clinic_inventory.models.transaction import TransactionRecord, TransactionType
from clinic_inventory.schemas.actor import Actor
from clinic_inventory.services.access import visible_departments
from clinic_inventory.services.item_service import department_clinics
from clinic_inventory.services.status import ALERT_STATUSES, classify
from clinic_inventory.services.stock_service import list_stock

logger = logging.getLogger(__name__)


def list_transactions(
    db: Session,
    actor: Actor,
    item_id: str | None = None,
    department: str | None = None,
    transaction_type: TransactionType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[TransactionRecord]:
    q = db.query(TransactionRecord)
    if item_id:
        q = q.filter(TransactionRecord.item_id == item_id)
    if department:
        q = q.filter(TransactionRecord.department == department)
    if transaction_type:
        q = q.filter(TransactionRecord.transaction_type == transaction_type)
    if start:
        q = q.filter(TransactionRecord.created_at >= start)
    if end:
        q = q.filter(TransactionRecord.created_at <= end)
    visible = visible_departments(actor, department_clinics(db))
    if visible is not None:
        q = q.filter(TransactionRecord.department.in_(visible))
    return q.order_by(TransactionRecord.created_at.desc()).limit(limit).all()


def low_stock_alerts(db: Session, actor: Actor) -> list[dict]:
    alerts = []
    names = dict(db.query(InventoryItem.id, InventoryItem.name).all())
    for s in list_stock(db, actor):
        status = classify(s.quantity, s.max_quantity)
        if status in ALERT_STATUSES:
            alerts.append({
                "item_id": s.item_id,
                "item_name": names.get(s.item_id, ""),
                "department": s.department,
                "quantity": s.quantity,
                "max_quantity": s.max_quantity,
                "status": status.value,
            })
    return alerts


def reconcile(db: Session) -> list[dict]:
    """Compare stored quantities and statuses with a replay of the transaction trail."""
    replayed = {
        (item_id, dept): total
        for item_id, dept, total in db.query(
            TransactionRecord.item_id,
            TransactionRecord.department,
            func.coalesce(func.sum(TransactionRecord.change), 0),
        ).group_by(TransactionRecord.item_id, TransactionRecord.department)
    }

    issues = []
    for s in db.query(LocationStock).order_by(LocationStock.item_id, LocationStock.department):
        expected_qty = replayed.pop((s.item_id, s.department), 0)
        expected_status = classify(s.quantity, s.max_quantity).value
        if s.quantity != expected_qty or s.status != expected_status:
            issues.append({
                "item_id": s.item_id,
                "department": s.department,
                "quantity": s.quantity,
                "replayed_quantity": expected_qty,
                "status": s.status,
                "expected_status": expected_status,
            })

    # Records for rows that no longer exist
    for (item_id, dept), total in sorted(replayed.items()):
        if total:
            issues.append({
                "item_id": item_id,
                "department": dept,
                "quantity": 0,
                "replayed_quantity": total,
                "status": "",
                "expected_status": "",
            })

    if issues:
        logger.warning("Reconciliation found %d discrepant stock row(s)", len(issues))
    return issues


def refresh_statuses(db: Session) -> int:
    fixed = 0
    for s in db.query(LocationStock):
        expected = classify(s.quantity, s.max_quantity).value
        if s.status != expected:
            s.status = expected
            fixed += 1
    db.commit()
    if fixed:
        logger.info("Refreshed status on %d stock row(s)", fixed)
    return fixed


def inventory_valuation(db: Session, actor: Actor) -> dict:
    items = {i.id: i for i in db.query(InventoryItem).all()}
    groups: dict[str, dict] = {}
    for s in list_stock(db, actor):
        item = items.get(s.item_id)
        if not item:
            continue
        group = ItemGroup(item.group).value
        if group not in groups:
            groups[group] = {"group": group, "stock_rows": 0, "total_units": 0, "cost_value": 0.0, "retail_value": 0.0}
        g = groups[group]
        g["stock_rows"] += 1
        g["total_units"] += s.quantity
        g["cost_value"] += s.quantity * item.cost_price
        g["retail_value"] += s.quantity * item.retail_price
    for g in groups.values():
        g["cost_value"] = round(g["cost_value"], 2)
        g["retail_value"] = round(g["retail_value"], 2)

    return {
        "total_units": sum(g["total_units"] for g in groups.values()),
        "cost_value": round(sum(g["cost_value"] for g in groups.values()), 2),
        "retail_value": round(sum(g["retail_value"] for g in groups.values()), 2),
        "by_group": sorted(groups.values(), key=lambda g: g["group"]),
    }

from sqlalchemy.orm import Session

from clinic_inventory.models.item import InventoryItem, ItemGroup
from clinic_inventory.models.stock import LocationStock
from clinic_inventory.schemas.actor import Actor
from clinic_inventory.schemas.stock import AggregateLine, AggregateView
from clinic_inventory.services.access import visible_stocks
from clinic_inventory.services.aggregation import aggregate
from clinic_inventory.services.errors import UnknownItemError
from clinic_inventory.services.item_service import central_departments, department_clinics
from clinic_inventory.services.status import classify


def list_stock(
    db: Session, actor: Actor, department: str | None = None, item_id: str | None = None
) -> list[LocationStock]:
    q = db.query(LocationStock)
    if department:
        q = q.filter(LocationStock.department == department)
    if item_id:
        q = q.filter(LocationStock.item_id == item_id)
    rows = q.order_by(LocationStock.department, LocationStock.item_id).all()
    return visible_stocks(rows, actor, department_clinics(db))


def overall_inventory(db: Session, actor: Actor, group: ItemGroup | None = None) -> AggregateView:
    """Aggregate view over the stock the actor may see, optionally one item group."""
    items_q = db.query(InventoryItem)
    if group:
        items_q = items_q.filter(InventoryItem.group == group)
    items = items_q.all()
    catalog = {i.id: i for i in items}

    rows = [r for r in list_stock(db, actor) if r.item_id in catalog]
    return aggregate(
        rows,
        central_departments=central_departments(db),
        baselines={i.id: i.max_quantity for i in items},
        names={i.id: i.name for i in items},
    )


def item_breakdown(db: Session, actor: Actor, item_id: str) -> AggregateLine:
    item = db.get(InventoryItem, item_id)
    if not item:
        raise UnknownItemError(item_id)
    view = aggregate(
        list_stock(db, actor, item_id=item_id),
        central_departments=central_departments(db),
        baselines={item.id: item.max_quantity},
        names={item.id: item.name},
    )
    if view.items:
        return view.items[0]
    return AggregateLine(
        item_id=item.id,
        item_name=item.name,
        max_quantity=item.max_quantity,
        status=classify(0, item.max_quantity),
    )

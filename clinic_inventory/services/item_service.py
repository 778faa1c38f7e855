import logging

from sqlalchemy.orm import Session

from clinic_inventory.models.item import Department, InventoryItem, ItemGroup
from clinic_inventory.models.stock import LocationStock
from clinic_inventory.schemas.item import DepartmentCreate, ItemCreate, ItemUpdate

logger = logging.getLogger(__name__)


def create_item(db: Session, data: ItemCreate) -> InventoryItem:
    item = InventoryItem(
        name=data.name,
        category=data.category,
        group=data.group,
        small_unit=data.small_unit,
        big_unit=data.big_unit,
        conversion_factor=data.conversion_factor,
        cost_price=data.cost_price,
        retail_price=data.retail_price,
        max_quantity=data.max_quantity,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info("Created inventory item %s (%s)", item.id, item.name)
    return item


def get_item(db: Session, item_id: str) -> InventoryItem | None:
    return db.query(InventoryItem).filter(InventoryItem.id == item_id).first()


def list_items(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    group: ItemGroup | None = None,
    category: str | None = None,
    search: str | None = None,
) -> list[InventoryItem]:
    q = db.query(InventoryItem)
    if group:
        q = q.filter(InventoryItem.group == group)
    if category:
        q = q.filter(InventoryItem.category == category)
    if search:
        q = q.filter(InventoryItem.name.ilike(f"%{search}%"))
    return q.order_by(InventoryItem.name).offset(skip).limit(limit).all()


def update_item(db: Session, item_id: str, data: ItemUpdate) -> InventoryItem | None:
    item = get_item(db, item_id)
    if not item:
        return None
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(item, field, value)
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, item_id: str) -> bool:
    item = get_item(db, item_id)
    if not item:
        return False
    held = db.query(LocationStock).filter(LocationStock.item_id == item_id).count()
    if held:
        raise ValueError(f"Item {item.name} still has stock in {held} department(s)")
    db.delete(item)
    db.commit()
    logger.info("Deleted inventory item %s (%s)", item_id, item.name)
    return True


# --- Departments ---

def create_department(db: Session, data: DepartmentCreate) -> Department:
    if db.get(Department, data.name):
        raise ValueError(f"Department {data.name} already exists")
    dept = Department(name=data.name, clinic=data.clinic, is_central=data.is_central)
    db.add(dept)
    db.commit()
    db.refresh(dept)
    return dept


def list_departments(db: Session) -> list[Department]:
    return db.query(Department).order_by(Department.name).all()


def central_departments(db: Session) -> set[str]:
    return {name for (name,) in db.query(Department.name).filter(Department.is_central.is_(True))}


def department_clinics(db: Session) -> dict[str, str]:
    return {name: clinic for name, clinic in db.query(Department.name, Department.clinic)}

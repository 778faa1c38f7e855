from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clinic_inventory.api.auth import get_current_user, require_admin
from clinic_inventory.database import get_db
from clinic_inventory.models.item import ItemGroup
from clinic_inventory.models.user import User
from clinic_inventory.schemas.item import DepartmentCreate, DepartmentOut, ItemCreate, ItemOut, ItemUpdate
from clinic_inventory.services import item_service

router = APIRouter(tags=["Catalog"])


@router.post("/items", response_model=ItemOut, status_code=201)
def create_item(data: ItemCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return item_service.create_item(db, data)


@router.get("/items", response_model=list[ItemOut])
def list_items(
    skip: int = 0,
    limit: int = 100,
    group: ItemGroup | None = None,
    category: str | None = None,
    search: str | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return item_service.list_items(db, skip=skip, limit=limit, group=group, category=category, search=search)


@router.get("/items/{item_id}", response_model=ItemOut)
def get_item(item_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    item = item_service.get_item(db, item_id)
    if not item:
        raise HTTPException(404, "Inventory item not found")
    return item


@router.patch("/items/{item_id}", response_model=ItemOut)
def update_item(item_id: str, data: ItemUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    item = item_service.update_item(db, item_id, data)
    if not item:
        raise HTTPException(404, "Inventory item not found")
    return item


@router.delete("/items/{item_id}", status_code=204)
def delete_item(item_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        deleted = item_service.delete_item(db, item_id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not deleted:
        raise HTTPException(404, "Inventory item not found")


@router.post("/departments", response_model=DepartmentOut, status_code=201)
def create_department(data: DepartmentCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return item_service.create_department(db, data)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/departments", response_model=list[DepartmentOut])
def list_departments(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return item_service.list_departments(db)

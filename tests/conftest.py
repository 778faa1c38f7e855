import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_inventory.database import get_db, init_db
from clinic_inventory.main import app
from clinic_inventory.models.item import Department, InventoryItem, ItemGroup
from clinic_inventory.schemas.actor import Actor
from clinic_inventory.schemas.movement import StockIn
from clinic_inventory.services import auth_service
from clinic_inventory.services.movement_service import record_movement

TEST_DATABASE_URL = "sqlite://"


def seed_catalog(db):
    """Two clinics, two central stock rooms, and two catalog items."""
    db.add_all([
        Department(name="CSR", clinic="Main", is_central=True),
        Department(name="Pharmacy", clinic="Main", is_central=True),
        Department(name="ICU", clinic="Main", is_central=False),
        Department(name="ER", clinic="North", is_central=False),
    ])
    gauze = InventoryItem(name="Gauze Pad", category="Dressing", group=ItemGroup.SUPPLY, max_quantity=100,
                          cost_price=2.0, retail_price=3.5)
    paracetamol = InventoryItem(name="Paracetamol 500mg", category="Analgesic", group=ItemGroup.MEDICINE,
                                max_quantity=200, cost_price=0.5, retail_price=1.0)
    db.add_all([gauze, paracetamol])
    db.commit()
    return {"gauze": gauze.id, "paracetamol": paracetamol.id}


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def items(db):
    return seed_catalog(db)


@pytest.fixture
def admin_actor():
    return Actor(id="user-admin", name="Admin", overall_visibility=True)


@pytest.fixture
def icu_actor():
    return Actor(id="user-icu", name="ICU Nurse", department="ICU")


@pytest.fixture
def stocked(db, items, admin_actor):
    """CSR holds 100 gauze and 150 paracetamol; Pharmacy holds 40 paracetamol."""
    record_movement(db, StockIn(item_id=items["gauze"], department="CSR", quantity=100), admin_actor)
    record_movement(db, StockIn(item_id=items["paracetamol"], department="CSR", quantity=150), admin_actor)
    record_movement(db, StockIn(item_id=items["paracetamol"], department="Pharmacy", quantity=40), admin_actor)
    return items


@pytest.fixture
def file_sessions(tmp_path):
    """Sessionmaker over a file-backed database so separate sessions use separate connections."""
    engine = create_engine(f"sqlite:///{tmp_path / 'stock.db'}", connect_args={"check_same_thread": False})
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def client(db):
    """Test client sharing the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _login(client, username, password):
    response = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin_headers(client, db):
    auth_service.create_user(db, "admin", "admin-pass", display_name="Admin", role="admin")
    return _login(client, "admin", "admin-pass")


@pytest.fixture
def icu_headers(client, db):
    auth_service.create_user(db, "icu-nurse", "nurse-pass", display_name="ICU Nurse", department="ICU", clinic="")
    return _login(client, "icu-nurse", "nurse-pass")

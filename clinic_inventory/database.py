from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from clinic_inventory.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def import_models():
    # Import all models so Base.metadata knows about them
    import clinic_inventory.models.item  # noqa: F401
    import clinic_inventory.models.stock  # noqa: F401
    import clinic_inventory.models.transaction  # noqa: F401
    import clinic_inventory.models.transfer_request  # noqa: F401
    import clinic_inventory.models.user  # noqa: F401


def init_db(bind=None):
    import_models()
    Base.metadata.create_all(bind=bind or engine)

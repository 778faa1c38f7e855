import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from clinic_inventory.api import auth, items, reports, stock, transfer_requests
from clinic_inventory.config import settings
from clinic_inventory.database import SessionLocal, init_db
from clinic_inventory.services.auth_service import ensure_default_admin
from clinic_inventory.services.errors import MovementError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    # Create default admin if no users
    db = SessionLocal()
    try:
        ensure_default_admin(db)
    finally:
        db.close()
    yield


app = FastAPI(
    title="Clinic Inventory API",
    description="Medicine and supply stock per department, transfers, usage and audit trail",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(MovementError)
async def movement_error_handler(request: Request, exc: MovementError):
    """Typed stock errors become a structured JSON detail the client can act on."""
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return JSON for unhandled exceptions so frontend can parse error."""
    logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.include_router(auth.router, prefix="/api/v1")
app.include_router(items.router, prefix="/api/v1")
app.include_router(stock.router, prefix="/api/v1")
app.include_router(transfer_requests.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")


@app.get("/api/v1/config")
def get_config():
    """Expose the status boundaries so clients label stock the same way."""
    return {
        "status_good_above_percent": settings.STATUS_GOOD_ABOVE_PERCENT,
        "status_low_above_percent": settings.STATUS_LOW_ABOVE_PERCENT,
        "default_supplying_department": settings.DEFAULT_SUPPLYING_DEPARTMENT,
    }


@app.get("/health")
def health():
    return {"status": "ok"}

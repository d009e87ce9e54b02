import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.orm import Session

from incident_desk.api.history import router as history_router
from incident_desk.api.reports import router as reports_router
from incident_desk.api.stats import router as stats_router
from incident_desk.api.tickets import router as tickets_router
from incident_desk.core.config import settings
from incident_desk.core.db import Base, engine, get_db
from incident_desk.core.errors import StoreUnavailable
from incident_desk.core.logging import configure_logging

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

settings.uploads_dir.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("Could not create tables, serving from the CSV mirror until the store recovers")
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Incident tickets in a record store with a CSV mirror, plus dashboard statistics.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def _request_id(request: Request):
    return getattr(request.state, "request_id", None)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error("Record store unavailable [%s]: %s", _request_id(request), exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service Unavailable: record store failure", "request_id": _request_id(request)},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error [%s]", _request_id(request), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error", "request_id": _request_id(request)},
    )


@app.get("/health", tags=["system"])
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception:
        db_status = "error"
    return {"status": "ok", "database": db_status}


# stats first so /tickets/stats is not taken for a ticket id
app.include_router(stats_router)
app.include_router(reports_router)
app.include_router(history_router)
app.include_router(tickets_router)

app.mount("/uploads", StaticFiles(directory=str(settings.uploads_dir)), name="uploads")

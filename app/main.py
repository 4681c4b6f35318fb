import asyncio
import logging
import os

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from app.api import router as api_router
from app.auth.security import ACCESS_COOKIE, verify_access_token
from app.client.khalti_client import get_khalti_client
from app.database import database
from app.services.payments import reconcile_pending_payments

load_dotenv()

# ==== Logging policy (quiet in production) ====
LOG_LEVEL_NAME = os.getenv("LOG_LEVEL", "WARNING").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.WARNING)
logging.basicConfig(level=LOG_LEVEL)

# Reduce noisy third-party loggers
for name in (
    "httpx",
    "apscheduler",
    "apscheduler.scheduler",
    "apscheduler.executors.default",
    "uvicorn",
    "uvicorn.error",
):
    logging.getLogger(name).setLevel(LOG_LEVEL)

# Access log (one line per request) can leak booking ids; disabled by default
if os.getenv("ACCESS_LOG_DISABLED", "true").lower() == "true":
    al = logging.getLogger("uvicorn.access")
    al.setLevel(logging.CRITICAL)
    al.propagate = False
    al.disabled = True
    al.handlers = []

logger = logging.getLogger(__name__)

app = FastAPI(title="Urja Station API")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


# ============ Error handling ============
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ============ Session gate (cookie-based) ============
AUTH_REQUIRED = os.getenv("AUTH_REQUIRED", "true").lower() == "true"

PUBLIC_PREFIXES = (
    "/api/auth/",
    "/api/walk-in/checkin",
    "/api/stations",
    # legacy Stripe callers only receive 410
    "/api/payments/webhook",
    "/api/payments/create-deposit",
)


@app.middleware("http")
async def auth_gate(request: Request, call_next):
    if not AUTH_REQUIRED:
        return await call_next(request)
    path = request.url.path
    if not path.startswith("/api/") or path.startswith(PUBLIC_PREFIXES) or request.method == "OPTIONS":
        return await call_next(request)

    uid = verify_access_token(request.cookies.get(ACCESS_COOKIE) or "")
    if not uid:
        return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
    request.state.auth_id = uid
    return await call_next(request)


@app.get("/health")
def health():
    try:
        database.ping()
        db_status = "ok"
    except PyMongoError as e:
        logger.error(f"Mongo ping failed: {e}")
        db_status = "unavailable"
    return {"status": "ok", "database": db_status}


# ============ Scheduler ============
scheduler = BackgroundScheduler()

RECONCILE_INTERVAL_MINUTES = int(os.getenv("RECONCILE_INTERVAL_MINUTES", "10"))
RECONCILE_MIN_AGE_MINUTES = int(os.getenv("RECONCILE_MIN_AGE_MINUTES", "15"))


def scheduled_reconcile():
    """Runs in the scheduler thread: settle pending bookings whose payment already resolved."""
    try:
        result = asyncio.run(reconcile_pending_payments(get_khalti_client(), RECONCILE_MIN_AGE_MINUTES))
        logger.info(f"Payment reconciliation done: {result}")
    except PyMongoError as e:
        logger.error(f"Payment reconciliation failed: {e}")


if RECONCILE_INTERVAL_MINUTES > 0:
    scheduler.add_job(scheduled_reconcile, "interval", minutes=RECONCILE_INTERVAL_MINUTES)


@app.on_event("startup")
def startup_event():
    try:
        database.ping()
        database.ensure_indexes()
    except PyMongoError as e:
        logger.error(f"MongoDB not ready at startup: {e}")
    if scheduler.get_jobs():
        scheduler.start()


@app.on_event("shutdown")
def shutdown_event():
    if scheduler.running:
        scheduler.shutdown()

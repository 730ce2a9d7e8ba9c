"""
PayLink — FastAPI Application Entry Point

Aggregates routers, configures middleware and error handlers, initializes the
database, and runs the scheduled reconciliation sweep when enabled.
"""
import asyncio
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from paylink.config import get_settings
from paylink.database import SessionLocal, init_db
from paylink.dependencies import get_gateway, get_poller, get_transitions
from paylink.errors import PaymentError, InvalidRequest
from paylink.log import configure_logging, get_logger
from paylink.routes import payments_router, admin_router

settings = get_settings()
configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
logger = get_logger("app")

BOOT_TIME = time.time()


async def _poll_forever(interval: int):
    """Scheduled reconciliation sweep; gateway errors are retried next cycle."""
    while True:
        await asyncio.sleep(interval)
        try:
            poller = get_poller(get_gateway(), get_transitions())
            await run_in_threadpool(poller.run_once, SessionLocal)
        except PaymentError as exc:
            logger.warning("scheduled_sweep_skipped", error=exc.code)
        except SQLAlchemyError:
            logger.exception("scheduled_sweep_failed")
        except Exception:
            logger.exception("scheduled_sweep_crashed")


# ─── Startup ─────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database tables, log boot info, start the sweep task."""
    init_db()
    logger.info(
        "startup",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        database=settings.DATABASE_URL,
        gateway="configured" if settings.gateway_configured else "missing",
        poll_interval=settings.POLL_INTERVAL_SECONDS,
    )

    task = None
    if settings.POLL_INTERVAL_SECONDS > 0:
        task = asyncio.create_task(_poll_forever(settings.POLL_INTERVAL_SECONDS))
    yield
    if task:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Payment link creation, signature-verified webhook ingestion and "
        "gateway reconciliation for PayOS transactions."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api"):
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration,
        )

    return response


# ─── Error Handlers ──────────────────────────────────────────────────
def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "errorCode": code, "message": message},
    )


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    return _error(exc.http_status, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else InvalidRequest.default_message
    return _error(400, InvalidRequest.code, message)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    # Retryable: the gateway redelivers webhooks on 5xx
    logger.error("database_error", path=request.url.path, error=type(exc).__name__)
    return _error(503, "STORAGE_UNAVAILABLE", "Temporary storage failure, retry later")


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(payments_router)
app.include_router(admin_router)


@app.get("/health", tags=["Health"])
def deep_health():
    """Detailed health check including dependency statuses."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        logger.warning("health_db_unreachable")
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "gateway": "configured" if settings.gateway_configured else "missing",
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }

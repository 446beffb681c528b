"""
NOVA_FUNDED — точка входа FastAPI.

Запуск: uvicorn nova_funded.main:app
"""
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from nova_funded.api.routes import admin, challenges, notifications, payments, plans, users
from nova_funded.core.config import settings
from nova_funded.core.database import close_db, get_redis, ping_db
from nova_funded.core.exceptions import InconsistentStateError, PaymentError, VerificationError
from nova_funded.schemas.common import ErrorResponse
from nova_funded.tasks.scheduler import setup_scheduler

API_PREFIX = "/api/v1"

# Пользователь видит эти тексты вместо внутренних деталей
MSG_ACTIVATION_PENDING = "Payment confirmed but challenge activation is pending. Support has been notified."
MSG_EXPLORER_DOWN = "Could not reach the blockchain explorer. Please try again."


def setup_logging() -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if settings.app_debug else "INFO",
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )
    logger.add("logs/app.log", rotation="100 MB", retention="90 days", level="INFO", compression="gz")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"NOVA_FUNDED v{settings.app_version} starting ({settings.app_env})")
    logger.info(
        f"Accepting {settings.settlement_currency} TRC20 at {settings.receiving_wallet_address} "
        f"via {'TronGrid' if settings.use_trongrid else 'TronScan'}"
    )

    try:
        redis = await get_redis()
        await redis.ping()
    except Exception as e:
        # Без Redis работают оплата и каталог; отключаются rate limit и поток уведомлений
        logger.error(f"Redis unavailable, rate limits and live notifications degraded: {e}")

    scheduler = setup_scheduler()
    scheduler.start()
    logger.info(f"Reconciliation every {settings.reconcile_interval_minutes} min")

    yield

    scheduler.shutdown(wait=True)
    await close_db()
    logger.info("NOVA_FUNDED stopped")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
        if isinstance(exc, InconsistentStateError):
            logger.critical(f"Inconsistent state on {request.url.path}: {exc.message} {exc.detail}")
            message = MSG_ACTIVATION_PENDING
        elif isinstance(exc, VerificationError):
            logger.warning(f"Explorer failure on {request.url.path}: {exc.message}")
            message = MSG_EXPLORER_DOWN
        else:
            message = exc.message
        body = ErrorResponse(error=message, detail=exc.detail)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"{request.method} {request.url.path} failed: {exc}")
        body = ErrorResponse(error="Internal server error")
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


def create_app() -> FastAPI:
    application = FastAPI(
        title="NOVA_FUNDED API",
        description="Prop trading challenges paid in USDT (TRC20)",
        version=settings.app_version,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(application)

    for module in (plans, payments, challenges, users, notifications, admin):
        application.include_router(module.router, prefix=API_PREFIX)

    @application.get("/health")
    async def health_check() -> dict:
        redis = await get_redis()
        await redis.ping()
        await ping_db()
        return {"status": "ok", "version": settings.app_version, "env": settings.app_env}

    return application


setup_logging()
app = create_app()

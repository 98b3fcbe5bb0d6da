from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings, setup_logging
from app.database import close_db, init_db
from app.dependencies import init_services
from app.services.scheduler_service import license_scheduler

from app.routers import SERVICE_NAME, SERVICE_VERSION, main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("="*60)
    logger.info(f"Starting {SERVICE_NAME}...")
    logger.info("="*60)

    try:
        if settings.license_store_backend == "sqlite":
            logger.info("Initializing database...")
            await init_db()
            logger.info("Database initialized successfully")

        service = init_services()

        if settings.license_retention_days > 0:
            logger.info("Starting scheduler...")
            license_scheduler.start(lambda: service.purge_expired(settings.license_retention_days))
            logger.info("Scheduler started successfully")
        else:
            logger.info("License retention disabled, scheduler not started")

        logger.info("="*60)
        logger.info(f"{SERVICE_NAME} started successfully")
        logger.info("="*60)
    except Exception as e:
        logger.error("="*60)
        logger.error(f"Failed to start {SERVICE_NAME}: {e}", exc_info=True)
        logger.error("="*60)
        raise

    yield

    logger.info("="*60)
    logger.info(f"Shutting down {SERVICE_NAME}...")
    logger.info("="*60)

    try:
        license_scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error while closing database: {e}", exc_info=True)

    logger.info("="*60)
    logger.info(f"{SERVICE_NAME} stopped")
    logger.info("="*60)


app = FastAPI(
    title=SERVICE_NAME,
    version=SERVICE_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )

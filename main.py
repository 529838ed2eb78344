import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from core.celery import celery_app
from core.config import settings
from core.db import init_db
from core.exceptions import OrderServiceError
from core.logging_config import setup_logging
from routes.orders import router as orders_router
from routes.payments import router as payments_router
from routes.webhooks import router as webhooks_router
from services.blockchain import HttpBlockchainRegistrar
from services.notifications import EmailNotificationSender
from services.providers import ProviderConfig, ProviderRegistry
from services.secrets import SettingsSecretStore

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Ensure tables exist (for dev/test; in prod use migrations)
    init_db()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Collaborators are built once per process and injected through core.deps
app.state.providers = ProviderRegistry(ProviderConfig.from_settings(settings))
app.state.secrets = SettingsSecretStore(settings)
app.state.notifier = EmailNotificationSender()
app.state.registrar = HttpBlockchainRegistrar.from_settings(settings)

app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(webhooks_router)


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    # Webhook providers redeliver on 5xx
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Order store unavailable"})


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@app.get("/celery-health")
async def celery_health_check():
    """Check Celery worker status"""
    try:
        inspect = celery_app.control.inspect()
        stats = inspect.stats()
        if stats:
            return {"status": "healthy", "workers": len(stats)}
        else:
            return {"status": "no_workers", "message": "No Celery workers running"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
    )

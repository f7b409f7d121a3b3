import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.config import settings
from core.db import init_db
from core.errors import OrderServiceError
from core.logging import configure_logging
from routes.rpc import router as rpc_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Ensure tables exist (for dev/test; in prod use migrations)
init_db()

app.include_router(rpc_router)


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(_: Request, exc: OrderServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


if __name__ == "__main__":
    import uvicorn

    logger.info("Order service listening on %s:%s", settings.ORDER_SERVICE_HOST, settings.ORDER_SERVICE_PORT)
    uvicorn.run(
        "main:app",
        host=settings.ORDER_SERVICE_HOST,
        port=settings.ORDER_SERVICE_PORT,
        reload=settings.DEBUG,
    )

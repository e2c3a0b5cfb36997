"""
Shiprelay - FastAPI backend
Shopify webhooks in, Blue Dart / Shiprocket tracking out.
"""
import logging

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from routes.api import register_routes
from shiprelay import __version__
from shiprelay.config import settings
from shiprelay.database import Base, engine
from shiprelay.workers.scheduler import start_background_workers, stop_background_workers

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
# httpx logs every request line at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Shiprelay API",
    description="Shipment relay between Shopify and Blue Dart / Shiprocket",
    version=__version__,
    docs_url="/docs" if settings.IS_DEVELOPMENT else None,
    redoc_url="/redoc" if settings.IS_DEVELOPMENT else None,
)

logger.info("Starting Shiprelay API")
logger.info("Environment: %s (production=%s, cloud=%s)", settings.ENV, settings.IS_PRODUCTION, settings.IS_CLOUD)

if not settings.SHOPIFY_WEBHOOK_SECRET:
    logger.warning("SHOPIFY_WEBHOOK_SECRET is not set. Every webhook will fail verification and be discarded.")
if not (settings.bluedart_configured or settings.shiprocket_configured):
    logger.warning("No carrier credentials configured. Tracking and EDD will return 500.")


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{k: v for k, v in err.items() if k in ("type", "loc", "msg")} for err in exc.errors()]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error: %s", exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": jsonable_errors(exc),
            "message": "Validation error: Please check your request format",
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.IS_DEVELOPMENT else "An error occurred",
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials="*" not in settings.ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

register_routes(app)


@app.on_event("startup")
async def startup() -> None:
    """Create missing tables, then start the sweep / keep-alive scheduler."""
    Base.metadata.create_all(bind=engine)
    start_background_workers()


@app.on_event("shutdown")
async def shutdown() -> None:
    stop_background_workers()


@app.get("/health")
async def health():
    """Liveness probe for the host's health check and the keep-alive ping."""
    return PlainTextResponse("OK")


@app.get("/")
async def root():
    return PlainTextResponse("Shiprelay is running")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.IS_DEVELOPMENT,
        log_level=settings.LOG_LEVEL.lower(),
    )

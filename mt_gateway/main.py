from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

import uvicorn

from mt_gateway.core.config import settings
from mt_gateway.core.exceptions import GatewayError, ValidationError
from mt_gateway.api.accounts import router as accounts_router
from mt_gateway.api.healthcheck import router as system_router
from mt_gateway.schemas.account import ErrorResponse
from mt_gateway.services.account_registry import AccountRegistry
from mt_gateway.services.account_service import disconnect_all
from mt_gateway.services.broker_connectors.metaapi import MetaApiConnector
from mt_gateway.services.metaapi_client import MetaApiClient
from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger(__name__)


def build_connector() -> MetaApiConnector:
    if not settings.METAAPI_TOKEN:
        logger.warning("METAAPI_TOKEN is not set; connect requests will be rejected upstream")
    client = MetaApiClient(
        settings.METAAPI_TOKEN,
        domain=settings.METAAPI_DOMAIN,
        client_domain=settings.METAAPI_CLIENT_DOMAIN,
        region=settings.METAAPI_REGION,
        timeout=settings.METAAPI_REQUEST_TIMEOUT_S,
    )
    return MetaApiConnector(
        client,
        default_platform=settings.METAAPI_PLATFORM,
        poll_interval_s=settings.CONNECT_POLL_INTERVAL_S,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.registry = AccountRegistry()
    app.state.connector = build_connector()
    logger.info("Account gateway started (connector=%s)", app.state.connector.service_name)

    yield

    # Cleanup
    logger.info("Shutting down, disconnecting accounts")
    await disconnect_all(app.state.registry)
    await app.state.connector.close()


_level_name = (settings.LOG_LEVEL or "INFO").upper().strip()
_valid = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}
logging.basicConfig(
    level=_valid.get(_level_name, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logging.getLogger(__name__).info(f"Logging initialized with level {_level_name}")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error=error).model_dump(mode="json"),
    )


@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Map gateway errors onto the JSON envelope."""
    return _error_response(exc.status_code, exc.message, exc.error)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are answered like missing fields."""
    return _error_response(ValidationError.status_code, ValidationError.default_message, str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Server error: %s", exc, exc_info=exc)
    return _error_response(500, "Internal server error", str(exc))


app.include_router(accounts_router, prefix=settings.API_PREFIX)
app.include_router(system_router, prefix=settings.API_PREFIX)


def run() -> None:
    """Console entry point."""
    logger.info("Server running on port %s", settings.PORT)
    logger.info("Health check: http://localhost:%s%s/health", settings.PORT, settings.API_PREFIX)
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=_valid.get(_level_name, logging.INFO))


if __name__ == "__main__":
    run()

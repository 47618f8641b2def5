"""Entry point for the WOPI host service."""

import uvicorn
import time
import uuid
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.constants import (
    DISCOVERY_CACHE_TTL_SECONDS,
    HEADER_SERVER_ERROR,
    PROOF_KEY_CACHE_TTL_SECONDS
)
from common.logging_config import setup_logging, get_logger
from wopi_host import config
from wopi_host.cache import TtlCache
from wopi_host.database import get_db_connection, init_database
from wopi_host.exceptions import (
    WopiException,
    ResourceNotFoundError,
    BackendTransientError
)
from wopi_host.repositories.file_repository import FileRepository
from wopi_host.routes.file_routes import router as file_router
from wopi_host.routes.wopi_routes import router as wopi_router
from wopi_host.security import AccessTokenIssuer
from wopi_host.service_locator import (
    get_action_cache,
    get_dispatcher,
    set_action_cache,
    set_dispatcher,
    set_file_service
)
from wopi_host.services.file_service import FileService
from wopi_host.storage.blob_storage import BlobStorage
from wopi_host.wopi.actions import ActionResolver
from wopi_host.wopi.discovery import DiscoveryClient
from wopi_host.wopi.dispatcher import WopiDispatcher
from wopi_host.wopi.locks import LockEngine
from wopi_host.wopi.operations import OperationHandlers
from wopi_host.wopi.proof import ProofValidator

setup_logging('wopi_host')
logger = get_logger('wopi_host')

app = FastAPI(
    title="WOPI Host",
    description="Host side of the WOPI protocol for online document viewing and editing",
    version="1.0.0"
)


def wire_services() -> None:
    """
    Build the storage, discovery and WOPI components and register them.
    """
    file_repo = FileRepository()
    blobs = BlobStorage(config.BLOB_STORAGE_PATH)
    tokens = AccessTokenIssuer()

    discovery = DiscoveryClient(config.DISCOVERY_URL)
    action_cache = TtlCache("discovery-actions", discovery.fetch_actions, DISCOVERY_CACHE_TTL_SECONDS)
    key_cache = TtlCache("proof-keys", discovery.fetch_proof_keys, PROOF_KEY_CACHE_TTL_SECONDS)

    resolver = ActionResolver(action_cache)
    validator = ProofValidator(key_cache) if config.VALIDATE_PROOF else None
    if validator is None:
        logger.warning("Proof validation is DISABLED (WOPI_VALIDATE_PROOF=false)")

    engine = LockEngine(file_repo)
    handlers = OperationHandlers(engine, blobs, tokens, resolver)

    set_dispatcher(WopiDispatcher(file_repo, handlers, resolver, validator))
    set_file_service(FileService(file_repo, blobs, tokens, resolver))
    set_action_cache(action_cache)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Initialize database and wire services on application startup.
    """
    logger.info("WOPI host starting up...")

    init_database()
    logger.info("Database initialized")

    if get_dispatcher() is None:
        wire_services()
        logger.info(f"WOPI services wired [discovery={config.DISCOVERY_URL}]")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Release process-wide components on application shutdown.
    """
    logger.info("WOPI host shutting down...")
    set_dispatcher(None)
    set_file_service(None)
    set_action_cache(None)


@app.exception_handler(ResourceNotFoundError)
async def resource_not_found_handler(request: Request, exc: ResourceNotFoundError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"File not found error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "code": exc.code}
    )


@app.exception_handler(BackendTransientError)
async def backend_transient_handler(request: Request, exc: BackendTransientError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"Backend unavailable error: {exc} [request_id={request_id}] path={request.url.path}",
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "code": exc.code},
        headers={HEADER_SERVER_ERROR: exc.code}
    )


@app.exception_handler(WopiException)
async def wopi_exception_handler(request: Request, exc: WopiException):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"WOPI exception: {exc} [request_id={request_id}] path={request.url.path}",
        exc_info=True
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "code": exc.code}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"Unhandled exception [request_id={request_id}] path={request.url.path}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
        headers={HEADER_SERVER_ERROR: "INTERNAL_ERROR"}
    )


app.include_router(wopi_router)
app.include_router(file_router)


@app.get("/")
async def root():
    """
    Root endpoint.
    """
    return {"message": "WOPI Host API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint for Docker healthcheck.
    Returns 200 if service is alive.
    """
    return {"status": "healthy", "service": "wopi_host"}


@app.get("/ready")
async def ready_check():
    """
    Readiness check endpoint.
    Verifies database connectivity and reports the discovery cache state.
    """
    try:
        with get_db_connection() as conn:
            conn.execute("SELECT 1 FROM files LIMIT 1")
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    action_cache = get_action_cache()
    if action_cache is None:
        discovery_status = "not configured"
    elif action_cache.is_fresh():
        discovery_status = "fresh"
    elif action_cache.has_value:
        discovery_status = "stale"
    else:
        discovery_status = "cold"

    ready = db_status == "ok" and get_dispatcher() is not None
    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "ready": ready,
            "database": db_status,
            "discovery": discovery_status
        }
    )


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "wopi_host.main:app",
        host=config.WOPI_HOST,
        port=config.WOPI_PORT
    )


if __name__ == "__main__":
    main()

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from buspass.core.config import settings
from buspass.core.logger import logger, log_error, log_warning
from buspass.db.session import get_db, init_db
from buspass.api.admin.routes_admin import router as admin_router
from buspass.api.client.routes_client import router as client_router


def configure_cors(application: FastAPI) -> None:
    """Wildcard origins run without credentials; explicit origins may send the auth cookie"""
    origins = settings.cors_origins_list
    wildcard = origins == ["*"]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info(f"CORS origins: {origins} (credentials {'off' if wildcard else 'on'})")


app = FastAPI(
    title=settings.APP_NAME,
    description="Bus ticket booking: journey search between stops, segment fares, bookings, bus passes and network administration",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)
configure_cors(app)


# ============ Exception handlers ============

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Return HTTP errors as {"detail": ...}, keeping auth headers"""
    log_warning(f"{request.method} {request.url.path}", f"HTTP {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Flatten pydantic errors into "field -> path: message" strings"""
    errors = [
        f"{' -> '.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    log_warning(f"{request.method} {request.url.path}", f"Validation failed: {errors}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Invalid request data", "errors": errors}
    )


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError):
    log_error(f"{request.method} {request.url.path}", exc, "system")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Database is temporarily unavailable. Please try again shortly."}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Last resort: log with traceback, hide internals unless DEBUG"""
    log_error(f"{request.method} {request.url.path}", exc, "system")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An unexpected error occurred. Please try again later.",
            "type": type(exc).__name__ if settings.DEBUG else None
        }
    )


app.include_router(admin_router, prefix="/api")
app.include_router(client_router, prefix="/api")


# ============ Lifecycle ============

@app.on_event("startup")
async def startup_event():
    """Create tables and report the search defaults in effect"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} (debug={settings.DEBUG})")
    try:
        init_db()
    except Exception as e:
        logger.critical(f"Startup failed: {type(e).__name__} - {e}", exc_info=True)
        raise
    logger.info(
        f"Search defaults: {settings.SEARCH_PAGE_SIZE} per page, "
        f"{settings.DEFAULT_AVERAGE_STOP_TIME} min per stop, {settings.SEARCH_READ_RETRIES} read retries"
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.APP_NAME}")


# ============ Service endpoints ============

@app.get("/")
async def root():
    """Service banner with entry points"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "online",
        "endpoints": {
            "search": "/api/client/buses/search",
            "bookings": "/api/client/bookings",
            "passes": "/api/client/passes",
            "admin": "/api/admin",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Liveness plus a round-trip to the database"""
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as e:
        log_error("/health", e, "system")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "unreachable"}
        )
    return {"status": "healthy", "database": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("buspass.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)

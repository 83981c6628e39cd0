import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from circulation.core.config import settings
from circulation.core.errors import CirculationError, InvalidInputError
from circulation.core.logging import setup_logging, get_logger, request_id_ctx
from circulation.db.session import engine
from circulation.db.models import Base
from circulation.schemas.common import ServiceResult

logger = get_logger("circulation.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Create tables (in dev; in prod use migrations)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await engine.dispose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "## Library Circulation API\n\n"
        "Circulation and catalog consistency core of a library system:\n\n"
        "- **Loans** – lend a copy, change loan status, return with overdue penalties\n"
        "- **Books** – add books with copies, adjust copy counts, set book status\n"
        "- **Catalog** – set category, subcategory, language, author, publisher "
        "and location status with cascade to books\n"
        "- **Penalties** – overdue fees by member\n\n"
        "Every endpoint answers with the envelope "
        "`{success, data, errorMessage, successMessage, errorKind}`.\n"
    ),
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Application health checks"},
        {"name": "Loans", "description": "Loan lifecycle – lend, update, return"},
        {"name": "Books", "description": "Books and their physical copies"},
        {"name": "Catalog", "description": "Status of catalog containers and shelf locations"},
        {"name": "Penalties", "description": "Overdue penalties"},
    ],
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CirculationError)
async def circulation_error_handler(request: Request, exc: CirculationError) -> JSONResponse:
    logger.info(
        f"{request.method} {request.url.path} rejected: kind={exc.kind.value} message={exc.message}"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ServiceResult.fail(exc).model_dump(by_alias=True, mode="json"),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return await circulation_error_handler(request, InvalidInputError(details))


# Request ID and timing middleware
@app.middleware("http")
async def request_middleware(request: Request, call_next):
    req_id = str(uuid.uuid4())[:8]
    request_id_ctx.set(req_id)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({duration:.3f}s)"
    )

    response.headers["X-Request-ID"] = req_id
    return response


# Health check
@app.get("/health", tags=["Health"], summary="Health check", description="Returns the current health status and API version.")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Include routers
from circulation.api.v1.endpoints.loans import router as loans_router
from circulation.api.v1.endpoints.books import router as books_router
from circulation.api.v1.endpoints.catalog import router as catalog_router
from circulation.api.v1.endpoints.penalties import router as penalties_router

app.include_router(loans_router, prefix="/api/v1")
app.include_router(books_router, prefix="/api/v1")
app.include_router(catalog_router, prefix="/api/v1")
app.include_router(penalties_router, prefix="/api/v1")

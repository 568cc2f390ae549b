from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from docapproval.config import settings
from docapproval.database import init_db, close_db, get_db
from docapproval.logging_config import setup_logging
from docapproval.middleware.correlation import CorrelationIdMiddleware
from docapproval.services.notification_service import get_notifier

# Import models so they are registered with Base.metadata
import docapproval.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_docapproval", env=settings.ENVIRONMENT)
    if not settings.NOTIFICATION_FUNCTION_URL:
        logger.warning("notification_function_not_configured")
    await init_db()
    yield
    await get_notifier().aclose()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers normalize all errors to the structured format:
# {"error": {"code": "...", "message": "..."}}
# ---------------------------------------------------------------------------

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        detail = {"error": {"code": "HTTP_ERROR", "message": detail}}
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_errors(exc),
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception objects that JSONResponse cannot encode
    return [
        {key: value for key, value in err.items() if key != "ctx"}
        for err in exc.errors()
    ]


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except Exception as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"

    health_status["checks"]["notifications"] = (
        "configured" if settings.NOTIFICATION_FUNCTION_URL else "disabled"
    )

    if health_status["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from docapproval.routes.workflows import router as workflows_router  # noqa: E402
from docapproval.routes.document_approvals import router as document_approvals_router  # noqa: E402
from docapproval.routes.stage_approvals import router as stage_approvals_router  # noqa: E402
from docapproval.routes.audit_logs import router as audit_logs_router  # noqa: E402
from docapproval.jobs.scheduled import router as jobs_router  # noqa: E402

app.include_router(workflows_router, prefix="/api/v1/workflows", tags=["Workflows"])
app.include_router(document_approvals_router, prefix="/api/v1/document-approvals", tags=["Document Approvals"])
app.include_router(stage_approvals_router, prefix="/api/v1/stage-approvals", tags=["Stage Approvals"])
app.include_router(audit_logs_router, prefix="/api/v1/audit-logs", tags=["Audit Logs"])
app.include_router(jobs_router, prefix="/internal/jobs", tags=["Internal Jobs"])

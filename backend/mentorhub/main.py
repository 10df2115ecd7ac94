import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from mentorhub.api.routes import ai, auth, concepts, dashboard, practice, projects, resumes, skills
from mentorhub.core import database
from mentorhub.core.config import settings
from mentorhub.core.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: Create missing tables, start model detection scheduler
    Shutdown: Stop background scheduler
    """
    try:
        database.init_db()
    except SQLAlchemyError as e:
        # A paused database must not keep the app from serving 503s
        logger.error(f"Could not create tables at startup: {str(e)}")
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="MentorHub API",
    description="AI mentoring platform for engineers: projects, skills, resumes and interview practice",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware - allows frontend to make requests to backend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,  # Allow cookies/auth headers
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Every error body is {"error": message}, plus "code" when one is attached"""
    content = {"error": exc.detail if isinstance(exc.detail, str) else "Request failed"}
    code = getattr(exc, "code", None)
    if code:
        content["code"] = code
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON in request body"})

    details = [
        {
            "path": [str(part) for part in error.get("loc", ())],
            "message": error.get("msg", "Invalid value"),
            "type": error.get("type"),
        }
        for error in errors
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid input", "details": details})


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Store errors no route classified itself: 503 when the database is unreachable"""
    error = database.classify_database_error(exc, f"{request.method} {request.url.path}")
    return await http_exception_handler(request, error)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if settings.DEBUG:
        content = {
            "error": str(exc) or exc.__class__.__name__,
            "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
        }
    else:
        content = {"error": "Internal server error"}
    return JSONResponse(status_code=500, content=content)


# Register API route modules
# All routes are prefixed with /api for consistency
app.include_router(auth.router, prefix="/api")
app.include_router(ai.router, prefix="/api")
app.include_router(projects.router, prefix="/api")
app.include_router(skills.router, prefix="/api")
app.include_router(dashboard.router, prefix="/api")
app.include_router(concepts.router, prefix="/api")
app.include_router(resumes.router, prefix="/api")
app.include_router(practice.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {"message": "MentorHub API", "version": "1.0.0"}


@app.get("/health")
def health():
    """Health check endpoint - pings the database"""
    engine = database.get_engine()
    if engine is None:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "not configured"},
        )
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(status_code=500, content={"status": "error", "database": "disconnected"})
    return {"status": "ok", "database": "connected"}

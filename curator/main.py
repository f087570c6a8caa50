import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

# ============================================
# Load .env before any curator settings are read
# ============================================
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from curator import __version__
from curator.config.settings import settings
from curator.database import init_db, close_db
from curator.errors import APIError, ErrorCode
from curator.routes import router
from curator.services.discovery_service import build_discovery_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting curator ranking core {__version__}")
    logger.info(f"Settings: {settings.as_dict()}")
    await init_db()
    app.state.discovery = build_discovery_service()

    yield

    if app.state.discovery is not None:
        await app.state.discovery.aclose()
    await close_db()
    logger.info("Ranking core stopped")


app = FastAPI(
    title="Curator Ranking API",
    description="Tier lists and face-off tournaments for curated collections",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# ================= ERROR HANDLERS =================

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Body/query problems share the ValidationError envelope (400, not FastAPI's 422)
    errors = [
        {"loc": error.get("loc"), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    logger.warning(f"Rejected request to {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request body or parameters are invalid",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": {"errors": errors},
        },
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return exc.to_response()


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_id = uuid.uuid4().hex[:8]
    logger.exception(f"[{log_id}] Unhandled {type(exc).__name__} on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal Error",
            "message": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
            "details": {"log_id": log_id},
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "version": __version__,
        "discovery_configured": settings.discovery_configured(),
    }


app.include_router(router, prefix="/api")

# main.py
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError

import admin_api, auth_api, file_api, student_api, teaching_api
from config import settings
from database import init_db
from errors import AppError
from storage import MinioStorage, get_storage

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# HTTP client debug logs are noise here
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def _error(status_code, code, message):
    return JSONResponse(status_code=status_code,
                        content={"success": False, "error": {"code": code, "message": message}})


def add_error_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request.")
        return _error(400, "VALIDATION_ERROR", message)

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return _error(409, "CONFLICT", "Record conflicts with existing data.")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "INTERNAL_ERROR", "Internal server error.")


def create_app(init_on_startup: bool = True) -> FastAPI:
    app = FastAPI(title=settings.APP_TITLE, version=settings.APP_VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_error_handlers(app)

    app.include_router(auth_api.router)
    app.include_router(admin_api.router)
    app.include_router(student_api.router)
    app.include_router(teaching_api.router)
    app.include_router(file_api.router)

    @app.get("/api/health")
    def health():
        return {
            "success": True,
            "message": "API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.ENV,
        }

    if settings.STORAGE_BACKEND == "local":
        app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

    if init_on_startup:
        @app.on_event("startup")
        def _startup():
            init_db()
            store = get_storage()
            if isinstance(store, MinioStorage):
                store.ensure_buckets()
            logger.info("%s %s started (%s)", settings.APP_TITLE, settings.APP_VERSION, settings.ENV)

    return app


app = create_app()

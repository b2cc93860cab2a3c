import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import router as auth_router
from config import Settings
from database import connect, ensure_indexes
from orders import router as orders_router
from products import router as products_router
from storage import build_storage

logger = logging.getLogger(__name__)

_UNSET = object()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _error_body(message: str, error=None) -> dict:
    body = {"message": message}
    if error is not None:
        body["error"] = error
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = exc.detail
        # Router-level 404 for a path nothing matched
        if exc.status_code == 404 and not isinstance(exc, HTTPException):
            message = f"Route {request.url.path} not found"
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(message)), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
        return JSONResponse(status_code=400, content=_error_body("Invalid input", errors))

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception):
        logger.exception("Server error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body("Internal server error", str(exc)))


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    storage=_UNSET,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="Shop API")
    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)
    app.state.storage = build_storage(settings) if storage is _UNSET else storage
    app.state.started_at = time.monotonic()

    try:
        ensure_indexes(app.state.db)
    except Exception:
        # The unique email index backs registration; refuse to start without it
        logger.exception("Could not ensure indexes")
        raise

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s - Origin: %s", request.method, request.url.path, request.headers.get("origin"))
        return await call_next(request)

    register_error_handlers(app)

    # Routes
    @app.get("/")
    def read_root():
        return {
            "message": "Shop API is running!",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
        }

    @app.get("/health")
    def health():
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": time.monotonic() - app.state.started_at,
        }

    @app.get("/test")
    def test_database():
        database = app.state.db
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
            "database_name": None,
            "connection_status": "Not Connected",
            "collections": [],
            "storage": "✅ Configured" if app.state.storage is not None else "❌ Not Configured",
        }
        try:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["database_name"] = database.name
            response["collections"] = database.list_collection_names()
        except Exception as e:
            response["database"] = f"❌ Error: {str(e)[:80]}"
        return response

    app.include_router(auth_router)
    app.include_router(products_router)
    app.include_router(orders_router)
    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)

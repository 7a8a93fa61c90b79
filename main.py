import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import graphql_api
import rest_api
from config import Settings, configure_logging
from database import connect
from errors import ServiceUnavailable, ShopError
from providers import shutdown_executor
from services import Services, build_services

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "validation": 400,
    "not_found": 404,
    "conflict": 400,
    "immutable_order_state": 400,
    "service_unavailable": 503,
}


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


async def shop_error_handler(request: Request, exc: ShopError):
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code == 500:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
        return error_response(500, "Server Error")
    if isinstance(exc, ServiceUnavailable):
        logger.error("%s service unavailable on %s: %s", exc.service, request.url.path, exc.message)
        return error_response(503, f"{exc.service.capitalize()} service temporarily unavailable", message=exc.message)
    logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return error_response(status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error["loc"] if part != "body")
    message = f"{location}: {error['msg']}" if location else error["msg"]
    return error_response(400, message)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Server Error")


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the application. Without ``services`` the database is connected on startup."""
    settings = settings or (services.settings if services else Settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(connect(settings), settings)
        cache = app.state.services.cache
        cache.start_sweeper(settings.cache_sweep_interval)
        try:
            yield
        finally:
            cache.stop_sweeper()
            shutdown_executor()

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/")
    def read_root():
        return {"message": "Storefront API running"}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
            "database_name": None,
            "connection_status": "Not Connected",
            "collections": [],
        }
        services = getattr(request.app.state, "services", None)
        if services is None:
            response["database"] = "⚠️  Available but not initialized"
            return response
        db = services.db
        response["database"] = "✅ Available"
        response["database_name"] = db.name
        response["connection_status"] = "Connected"
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
        return response

    app.include_router(rest_api.router)
    app.include_router(graphql_api.router)
    return app


def build_app() -> FastAPI:
    settings = Settings()
    configure_logging(settings.log_level)
    return create_app(settings=settings)


app = build_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Settings().port)

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY, HTTP_500_INTERNAL_SERVER_ERROR

from api.bootstrap import Services, build_services
from api.config import Settings, build_engine, build_session_factory, create_db, get_settings
from api.errors import DomainError, error_body
from api.routes.chat_routes import chat_routes
from api.routes.event_routes import event_routes
from api.routes.job_routes import job_routes
from api.routes.recommendation_routes import recommendation_routes
from api.utils.logger import clear_request_id, configure_logging, set_request_id
from infra.jobs.dispatcher import LocalDispatcher

logger = configure_logging()


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the application. Pass `services` to run against an already composed graph
    (tests); otherwise the database and services are built from settings at startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is None:
            engine = build_engine(settings.database_url)
            create_db(engine)
            app.state.services = build_services(settings, build_session_factory(engine))
        else:
            app.state.services = services
        logger.info("startup dispatcher=%s model=%s", settings.job_dispatcher, settings.chat_model)
        yield
        dispatcher = app.state.services.dispatcher
        if isinstance(dispatcher, LocalDispatcher):
            await dispatcher.drain()

    app = FastAPI(title="Genii API", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        rid = set_request_id(request.headers.get("x-request-id"))
        try:
            logger.info("request start method=%s path=%s client=%s", request.method, request.url.path, request.client)
            response: Response = await call_next(request)
            logger.info("request end status=%s method=%s path=%s", response.status_code, request.method, request.url.path)
            response.headers["x-request-id"] = rid
            return response
        except Exception:
            logger.exception("request error method=%s path=%s", request.method, request.url.path)
            raise
        finally:
            clear_request_id()

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "domain error code=%s status=%s method=%s path=%s message=%s details=%s",
                exc.code, exc.status_code, request.method, request.url.path, exc.message, exc.details,
            )
        else:
            logger.warning(
                "domain error code=%s status=%s method=%s path=%s message=%s",
                exc.code, exc.status_code, request.method, request.url.path, exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("validation error method=%s path=%s errors=\n%s", request.method, request.url.path, exc.errors())
        return JSONResponse(
            status_code=HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid request",
                    "details": jsonable_errors(exc),
                },
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # Never leak internal exception details to clients.
        logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
        return JSONResponse(status_code=HTTP_500_INTERNAL_SERVER_ERROR, content=error_body(exc))

    @app.get("/")
    def read_root():
        return {"message": "Genii API is Healthy"}

    app.include_router(chat_routes, prefix="/api")
    app.include_router(recommendation_routes, prefix="/api")
    app.include_router(event_routes, prefix="/api")
    app.include_router(job_routes, prefix="/api")
    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

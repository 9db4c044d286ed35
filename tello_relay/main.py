import time
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from tello_relay.api.v1.errors import app_error_handler
from tello_relay.api.v1.routers import relay
from tello_relay.app_config import get_app_environ_config
from tello_relay.domain.relay.controller import RelaySessionController
from tello_relay.shared.api import health
from tello_relay.shared.api.errors import E_INTERNAL
from tello_relay.shared.api.utils import api_failure, init_logger, validation_exception_handler
from tello_relay.utils.app_errors import AppError


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=E_INTERNAL,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    server.state.relay_controller = RelaySessionController(get_app_environ_config())

    yield

    logger.info("Application shutdown...")

    await server.state.relay_controller.close()


def create_app() -> FastAPI:
    server = FastAPI(
        version="1.0",
        title="Tello Relay API",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    server.add_middleware(HTTPLoggingMiddleware)

    # The player is usually served from another origin (or file://)
    server.add_middleware(
        CORSMiddleware,  # type: ignore
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    server.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
    server.add_exception_handler(AppError, app_error_handler)  # type: ignore

    server.include_router(health.router)
    server.include_router(relay.router, prefix="/api/v1")

    return server


app = create_app()


def build_granian_kwargs():
    config = get_app_environ_config()
    kwargs = {
        "interface": "asgi",
        "address": config.API_HOST,
        "port": config.API_PORT,
        "workers": config.API_WORKERS,
        "reload": config.DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("tello_relay.main:app", **granian_kwargs).serve()

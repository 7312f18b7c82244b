"""FastAPI application factory for kubehatch."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kubehatch import __version__
from kubehatch.api import routes
from kubehatch.api.dependencies import ServicesFactory
from kubehatch.core.config import KubehatchConfig
from kubehatch.core.exceptions import InputError
from kubehatch.provisioning.services import HostServices
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, DELETE",
    "Access-Control-Allow-Headers": "Content-Type",
}


def create_app(
    config: KubehatchConfig | None = None,
    services_factory: ServicesFactory | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: kubehatch configuration (defaults apply when omitted)
        services_factory: Builds HostServices for a host kubeconfig path
            (optional, used by tests to inject fakes)
    """
    if config is None:
        config = KubehatchConfig()

    app = FastAPI(title="kubehatch", version=__version__)
    app.state.config = config
    app.state.services_factory = services_factory or (
        lambda credentials_path: HostServices(config, credentials_path)
    )

    @app.middleware("http")
    async def cors(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(InputError)
    async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
        logger.info("invalid_request", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info("malformed_request", path=request.url.path, errors=str(exc.errors()))
        return JSONResponse(status_code=400, content={"detail": "Malformed request"})

    app.include_router(routes.router)

    logger.debug("app_created", requests_dir=config.paths.requests_dir)
    return app

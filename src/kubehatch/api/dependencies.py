"""FastAPI dependencies for identity, configuration and host services."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from kubehatch.core.config import KubehatchConfig
from kubehatch.provisioning.services import HostServices
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_IDENTITY = "default"

ServicesFactory = Callable[[str | None], HostServices]


class OptionalBasicAuth(HTTPBasic):
    """HTTP basic credentials that treat an undecodable header as absent."""

    def __init__(self) -> None:
        super().__init__(auto_error=False)

    async def __call__(self, request: Request) -> HTTPBasicCredentials | None:
        try:
            return await super().__call__(request)
        except HTTPException:
            logger.debug("basic_auth_header_ignored", path=request.url.path)
            return None


_basic_auth = OptionalBasicAuth()


def get_identity(
    request: Request,
    credentials: Annotated[HTTPBasicCredentials | None, Depends(_basic_auth)],
) -> str:
    """Resolve the requesting identity.

    Basic auth username, then X-Forwarded-User, then X-Remote-User, then
    ``default``.
    """
    if credentials is not None and credentials.username:
        return credentials.username
    for header in ("X-Forwarded-User", "X-Remote-User"):
        user = request.headers.get(header)
        if user:
            return user
    return DEFAULT_IDENTITY


def get_config(request: Request) -> KubehatchConfig:
    return request.app.state.config


def get_services_factory(request: Request) -> ServicesFactory:
    return request.app.state.services_factory

"""HTTP endpoints for virtual cluster lifecycle."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Cookie, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import ValidationError

from kubehatch.api.dependencies import (
    ServicesFactory,
    get_config,
    get_identity,
    get_services_factory,
)
from kubehatch.core.config import KubehatchConfig
from kubehatch.core.exceptions import (
    InputError,
    ProvisioningError,
    ProvisioningTimeoutError,
    SubprocessFailureError,
)
from kubehatch.core.models import (
    KubeconfigResponse,
    ProvisioningRequest,
    VirtualClusterSpec,
    namespace_for,
)
from kubehatch.provisioning.orchestrator import new_request
from kubehatch.provisioning.services import resolve_credentials_path
from kubehatch.utils.logging import cluster_context, get_logger, log_error

logger = get_logger(__name__)

router = APIRouter(tags=["vclusters"])

REQUEST_ID_COOKIE = "reqid"

_TRUE_VALUES = {"on", "true", "1"}
_REQUEST_ID_PATTERN = re.compile(r"^\d+$")


def _flag(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _cluster_name(name: str) -> str:
    try:
        return VirtualClusterSpec(name=name).name
    except ValidationError as e:
        raise InputError(f"Invalid cluster name: {name!r}") from e


def _attachment(document: bytes, filename: str) -> Response:
    return Response(
        content=document,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/api/vcluster", response_model=KubeconfigResponse)
def create_vcluster(
    response: Response,
    identity: Annotated[str, Depends(get_identity)],
    config: Annotated[KubehatchConfig, Depends(get_config)],
    services_factory: Annotated[ServicesFactory, Depends(get_services_factory)],
    cluster_name: Annotated[str, Form(alias="clusterName")] = "",
    ha: Annotated[str, Form()] = "",
    loadbalancer: Annotated[str, Form()] = "",
    kubeconfig_file: Annotated[UploadFile | None, File(alias="kubeconfigFile")] = None,
) -> KubeconfigResponse:
    """Create a virtual cluster and return its kubeconfig."""
    if not cluster_name:
        raise InputError("clusterName is required")

    try:
        spec = VirtualClusterSpec.from_flags(cluster_name, _flag(ha), _flag(loadbalancer))
    except ValidationError as e:
        raise InputError(f"Invalid cluster name: {cluster_name!r}") from e

    upload = None
    if kubeconfig_file is not None and kubeconfig_file.filename:
        upload = kubeconfig_file.file

    try:
        request = new_request(config.paths.requests_dir, upload)
    except OSError as e:
        log_error(logger, e, operation="create_request_directory")
        raise HTTPException(
            status_code=500, detail=f"Error creating working directory: {e}"
        ) from e

    credentials_path = resolve_credentials_path(config, request.uploaded_credentials_path)
    logger.info(
        "create_requested",
        request_id=request.request_id,
        identity=identity,
        cluster_name=spec.name,
        ha=spec.high_availability,
        load_balancer=spec.expose_externally,
        credentials_path=credentials_path,
    )

    services = services_factory(credentials_path)
    try:
        with cluster_context(identity=identity):
            result = services.orchestrator.provision(spec, request, owner=identity)
    except ProvisioningError as e:
        detail = f"Error creating virtual cluster ({e.stage}): {e}"
        if e.output:
            detail += f"\nOutput:\n{e.output.decode(errors='replace')}"
        raise HTTPException(status_code=500, detail=detail) from e

    response.set_cookie(REQUEST_ID_COOKIE, request.request_id, path="/")
    return KubeconfigResponse(kubeconfig=result.kubeconfig.decode(errors="replace"))


@router.get("/api/vcluster/{name}/kubeconfig")
def get_kubeconfig(
    name: str,
    config: Annotated[KubehatchConfig, Depends(get_config)],
    services_factory: Annotated[ServicesFactory, Depends(get_services_factory)],
) -> Response:
    """Fetch live credentials for a virtual cluster."""
    cluster_name = _cluster_name(name)
    services = services_factory(resolve_credentials_path(config, read_path=True))

    try:
        with cluster_context(cluster_name=cluster_name):
            document = services.retriever(read_path=True).fetch_live(
                cluster_name, namespace_for(cluster_name)
            )
    except (ProvisioningTimeoutError, SubprocessFailureError) as e:
        logger.warning("kubeconfig_unavailable", cluster_name=cluster_name, error=str(e))
        raise HTTPException(
            status_code=404, detail=f"Error getting kubeconfig for {cluster_name}: {e}"
        ) from e

    return _attachment(document, f"kubeconfig-{cluster_name}.yaml")


@router.delete("/api/vcluster/{name}")
def delete_vcluster(
    name: str,
    config: Annotated[KubehatchConfig, Depends(get_config)],
    services_factory: Annotated[ServicesFactory, Depends(get_services_factory)],
) -> dict[str, str]:
    """Tear down a virtual cluster and its namespace."""
    cluster_name = _cluster_name(name)
    services = services_factory(resolve_credentials_path(config, read_path=True))

    try:
        with cluster_context(cluster_name=cluster_name):
            services.orchestrator.teardown(cluster_name)
    except SubprocessFailureError as e:
        logger.error("vcluster_delete_failed", cluster_name=cluster_name, error=str(e))
        raise HTTPException(status_code=500, detail=f"Error deleting vcluster: {e}") from e

    return {"message": "Cluster deleted successfully"}


@router.get("/api/vclusters")
def list_vclusters(
    identity: Annotated[str, Depends(get_identity)],
    config: Annotated[KubehatchConfig, Depends(get_config)],
    services_factory: Annotated[ServicesFactory, Depends(get_services_factory)],
) -> JSONResponse:
    """List the virtual clusters visible to the requesting identity."""
    credentials_path = resolve_credentials_path(config, read_path=True)
    try:
        records = services_factory(credentials_path).inventory.list(identity)
    except Exception as e:
        # the list view stays available even when the host cluster is not
        log_error(logger, e, operation="list_vclusters", credentials_path=credentials_path)
        return JSONResponse(content=[])

    return JSONResponse(content=[record.to_api() for record in records])


@router.get("/download")
def download(
    config: Annotated[KubehatchConfig, Depends(get_config)],
    cluster_name: Annotated[str | None, Query(alias="clusterName")] = None,
    request_id: Annotated[str | None, Cookie(alias=REQUEST_ID_COOKIE)] = None,
) -> FileResponse:
    """Download the kubeconfig generated by this session's create request."""
    if not request_id:
        raise InputError("Request ID not set")
    if not cluster_name:
        raise InputError("clusterName query parameter required")
    if not _REQUEST_ID_PATTERN.match(request_id):
        raise InputError("Invalid request ID")
    cluster_name = _cluster_name(cluster_name)

    request = ProvisioningRequest(
        request_id=request_id,
        working_directory=Path(config.paths.requests_dir) / request_id,
    )
    path = request.kubeconfig_path(cluster_name)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="kubeconfig not found")

    return FileResponse(path, media_type="application/octet-stream", filename="kubeconfig.yaml")

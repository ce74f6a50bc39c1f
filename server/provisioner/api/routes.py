"""API routes."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Response, status

from ..core.config import get_config_validation_result
from ..core.install_options import OptionsValidationError
from ..core.models import (
    CatalogEntry,
    DhcpLease,
    HealthResponse,
    InstallOsJobRequest,
    IpmiCatalogJobRequest,
    IpmiCommandJobRequest,
    Job,
    Node,
    ProfileResponse,
)
from ..services.inventory_service import inventory_service
from ..services.job_service import job_service
from ..services.lookup_service import lookup_service
from ..services.task_bus import task_bus

logger = logging.getLogger(__name__)

router = APIRouter()


def _active_install(node_id: str) -> Dict[str, Any]:
    profile = task_bus.request_profile(node_id)
    options = task_bus.request_properties(node_id)
    if profile is None or options is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active install job for node {node_id}",
        )
    return {"profile": profile, "options": options}


@router.get("/healthz", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", timestamp=datetime.now(timezone.utc))


@router.get("/readyz", response_model=HealthResponse, tags=["Health"])
async def readiness_check(response: Response):
    """Readiness check endpoint."""
    config_result = get_config_validation_result()
    if config_result and config_result.has_errors:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="config_error", timestamp=datetime.now(timezone.utc))
    return HealthResponse(status="ready", timestamp=datetime.now(timezone.utc))


@router.post(
    "/api/v1/jobs/install-os",
    response_model=Job,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Jobs"],
)
async def submit_install_os_job(request: InstallOsJobRequest):
    """Queue an operating system installation for a node."""
    try:
        return await job_service.submit_install_os_job(request)
    except OptionsValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "fields": exc.fields},
        ) from exc


@router.post(
    "/api/v1/jobs/ipmi-command",
    response_model=Job,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Jobs"],
)
async def submit_ipmi_command_job(request: IpmiCommandJobRequest):
    """Queue a single IPMI telemetry command for a node."""
    return await job_service.submit_ipmi_command_job(request)


@router.post(
    "/api/v1/jobs/ipmi-catalog",
    response_model=Job,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Jobs"],
)
async def submit_ipmi_catalog_job(request: IpmiCatalogJobRequest):
    """Queue an IPMI catalog run for a node."""
    return await job_service.submit_ipmi_catalog_job(request)


@router.get("/api/v1/jobs", response_model=List[Job], tags=["Jobs"])
async def list_jobs():
    """List all jobs."""
    return await job_service.get_all_jobs()


@router.get("/api/v1/jobs/{job_id}", response_model=Job, tags=["Jobs"])
async def get_job(job_id: str):
    """Get job details."""
    job = await job_service.get_job(job_id)

    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found"
        )

    return job


@router.get("/api/v1/profiles", response_model=ProfileResponse, tags=["Nodes"])
async def get_profile(node_id: str = Query(..., alias="nodeId", min_length=1)):
    """Return the installer profile and options for a node being installed."""
    active = _active_install(node_id)
    return ProfileResponse(node_id=node_id, **active)


@router.get("/api/v1/templates/{name}", tags=["Nodes"])
async def render_template(name: str, node_id: str = Query(..., alias="nodeId", min_length=1)):
    """Render the install options a node's installer template is built from."""
    active = _active_install(node_id)
    logger.info("Serving template %s to node %s", name, node_id)
    return {"name": name, "profile": active["profile"], "options": active["options"]}


@router.post("/api/v1/nodes", status_code=status.HTTP_201_CREATED, tags=["Nodes"])
async def register_node(node: Node):
    """Register or replace a node and its OBM settings."""
    await inventory_service.upsert_node(node)
    return {"id": node.id, "obm_services": [s.service for s in node.obm_settings]}


@router.get(
    "/api/v1/nodes/{node_id}/catalogs",
    response_model=List[CatalogEntry],
    tags=["Nodes"],
)
async def list_catalogs(node_id: str, source: Optional[str] = None):
    """List the catalogs collected for a node."""
    return await inventory_service.find_catalogs_by_node(node_id, source)


@router.post("/api/v1/leases", status_code=status.HTTP_204_NO_CONTENT, tags=["Nodes"])
async def register_lease(lease: DhcpLease):
    """Record the IP address leased to a BMC MAC address."""
    lookup_service.register_lease(lease.mac_address, lease.ip_address)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

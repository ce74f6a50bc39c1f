"""Data models for the application."""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum


class JobStatus(str, Enum):
    """Job execution status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    """Kinds of provisioning jobs the service can run."""
    INSTALL_OS = "install_os"
    IPMI_COMMAND = "ipmi_command"
    IPMI_CATALOG = "ipmi_catalog"


class IpmiCommand(str, Enum):
    """Out-of-band commands supported by the IPMI command job."""
    SEL_INFORMATION = "selInformation"
    SEL = "sel"
    SDR = "sdr"
    CHASSIS = "chassis"
    DRIVE_HEALTH = "driveHealth"


class Job(BaseModel):
    """Job execution tracking."""
    job_id: str
    job_type: JobType
    status: JobStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    target_node: Optional[str] = None
    parameters: Dict[str, Any]
    output: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class HttpResponseEvent(BaseModel):
    """Notification emitted after the HTTP server answered a node request."""
    status_code: int
    url: str
    node_id: Optional[str] = None
    method: str = "GET"


class ObmConfig(BaseModel):
    """Connection details for an out-of-band management controller."""
    host: str
    user: str
    password: str


class ObmSetting(BaseModel):
    """Out-of-band management service attached to a node."""
    service: str
    config: ObmConfig


class Node(BaseModel):
    """Managed bare-metal node."""
    id: str
    name: Optional[str] = None
    obm_settings: List[ObmSetting] = Field(default_factory=list)


class CatalogEntry(BaseModel):
    """Persisted hardware telemetry for a node."""
    node: str
    source: Optional[str] = None
    data: Any = None


class DhcpLease(BaseModel):
    """Address lease used to resolve a BMC MAC address to its IP."""
    mac_address: str = Field(..., min_length=1)
    ip_address: str = Field(..., min_length=1)


class InstallOsJobRequest(BaseModel):
    """Request body for submitting an OS install job."""
    node_id: str = Field(..., min_length=1, description="Target node identifier")
    options: Dict[str, Any] = Field(
        ..., description="Installation options rendered into the installer profile",
    )


class IpmiCommandJobRequest(BaseModel):
    """Request body for submitting an IPMI command job."""
    node_id: str = Field(..., min_length=1, description="Target node identifier")
    command: IpmiCommand
    count: Optional[int] = Field(
        None, ge=1, description="Number of SEL entries to collect (sel only)",
    )


class IpmiCatalogJobRequest(BaseModel):
    """Request body for submitting an IPMI catalog job."""
    node_id: str = Field(..., min_length=1, description="Target node identifier")
    commands: List[str] = Field(..., min_length=1)
    accepted_response_codes: List[int] = Field(default_factory=list)


class ProfileResponse(BaseModel):
    """Profile and rendered options served to a node during installation."""
    node_id: str
    profile: str
    options: Dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime

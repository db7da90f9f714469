"""
NetWarden REST API Routes

Endpoints for starting, stopping, listing and scanning monitored targets.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from netwarden.config import settings
from netwarden.errors import ConfigurationError, InvalidTargetError
from netwarden.monitoring.service import MonitoringService, get_monitoring_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/monitoring", tags=["monitoring"])

Service = Annotated[MonitoringService, Depends(get_monitoring_service)]


# =============================================================================
# Request/Response Models
# =============================================================================


class StartMonitoringRequest(BaseModel):
    """Request to start monitoring a target."""

    ip: str = Field(..., description="IPv4 or IPv6 address to monitor")
    interval: float = Field(
        default_factory=lambda: settings.default_interval_minutes,
        description="Minutes between scan cycles",
    )


class MonitoringResponse(BaseModel):
    """Acknowledgement of a monitoring state change."""

    ip: str
    status: str
    message: str


class MonitoredTargetsResponse(BaseModel):
    """Currently monitored targets."""

    ips: list[str]
    targets: list[dict]


# =============================================================================
# API Endpoints
# =============================================================================


@router.post("/start", response_model=MonitoringResponse)
async def start_monitoring(request: StartMonitoringRequest, service: Service) -> MonitoringResponse:
    """
    Start monitoring an IP address.

    The first cycle establishes a baseline before any anomaly check.
    Starting a target that is already monitored replaces its schedule.
    """
    try:
        ip = await service.start_monitoring(request.ip, request.interval)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return MonitoringResponse(
        ip=ip,
        status="monitoring",
        message=f"Started monitoring {ip} every {request.interval:g} minute(s)",
    )


@router.delete("/{ip}", response_model=MonitoringResponse)
async def stop_monitoring(ip: str, service: Service) -> MonitoringResponse:
    """Stop monitoring an IP address. Unknown targets are not an error."""
    stopped = await service.stop_monitoring(ip)

    return MonitoringResponse(
        ip=ip,
        status="stopped" if stopped else "not_monitored",
        message=f"Stopped monitoring {ip}" if stopped else f"{ip} was not being monitored",
    )


@router.get("/", response_model=MonitoredTargetsResponse)
async def list_monitored(service: Service) -> MonitoredTargetsResponse:
    """List monitored IP addresses."""
    ips = service.list_monitored_ips()
    targets = [t.to_dict() for ip in ips if (t := service.get_target(ip)) is not None]
    return MonitoredTargetsResponse(ips=ips, targets=targets)


@router.post("/scan/{ip}")
async def scan_once(ip: str, service: Service) -> dict:
    """
    Run a single scan cycle and return its result.

    Blocks for the baseline window too when the target has no baseline yet.
    """
    try:
        result = await service.run_once_scan(ip)
    except InvalidTargetError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        logger.error("scan_configuration_error", target_ip=ip, error=str(e))
        raise HTTPException(status_code=409, detail=str(e))

    return result.to_dict()


@router.post("/{ip}/reset-baseline", response_model=MonitoringResponse)
async def reset_baseline(ip: str, service: Service) -> MonitoringResponse:
    """Drop a target's baseline; the next cycle re-establishes it."""
    try:
        reset = service.reset_baseline(ip)
    except InvalidTargetError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return MonitoringResponse(
        ip=ip,
        status="baseline_reset" if reset else "no_baseline",
        message="Baseline will be re-established on the next cycle" if reset else "No baseline cached",
    )

"""Site registry API endpoints."""
from typing import List

from fastapi import APIRouter, Depends

from ..schemas.site import SiteCreate, SiteUpdate, SiteResponse, SiteTestResponse
from ..services.monitoring import MonitoringService
from .deps import get_monitoring

router = APIRouter(prefix="/api/sites", tags=["sites"])


@router.get("", response_model=List[SiteResponse])
async def list_sites(monitoring: MonitoringService = Depends(get_monitoring)):
    """List all registered sites."""
    return await monitoring.list_sites()


@router.post("", response_model=SiteResponse, status_code=201)
async def create_site(data: SiteCreate, monitoring: MonitoringService = Depends(get_monitoring)):
    """Register a new site. Name and URL must be unique."""
    return await monitoring.create_site(**data.model_dump())


@router.get("/{site_id}", response_model=SiteResponse)
async def get_site(site_id: int, monitoring: MonitoringService = Depends(get_monitoring)):
    return await monitoring.get_site(site_id)


@router.put("/{site_id}", response_model=SiteResponse)
async def update_site(site_id: int, data: SiteUpdate, monitoring: MonitoringService = Depends(get_monitoring)):
    """Update a site. Only fields present in the body change."""
    return await monitoring.update_site(site_id, **data.model_dump(exclude_unset=True))


@router.delete("/{site_id}", status_code=204)
async def delete_site(site_id: int, monitoring: MonitoringService = Depends(get_monitoring)):
    """Soft-delete a site. Its checks and alerts are kept."""
    await monitoring.delete_site(site_id)


@router.post("/{site_id}/test", response_model=SiteTestResponse)
async def test_site(site_id: int, monitoring: MonitoringService = Depends(get_monitoring)):
    """Probe a site right now without recording the result."""
    result = await monitoring.test_site_now(site_id)
    return SiteTestResponse(
        success=result.is_online,
        status=result.status,
        http_status=result.http_status,
        response_time_ms=result.response_time_ms,
        error_message=result.error_message,
    )

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..core.exceptions import ManagedShareError
from ..dependencies import get_mount_orchestrator, get_reachability_monitor, get_settings
from ..models import MountOutcome, ReconcileReport, Share, ShareDefinition, TriggerKind
from ..services.mount_orchestrator import MountOrchestrator
from ..services.reachability import ReachabilityMonitor

router = APIRouter(prefix="/api", tags=["shares"])


class MountRequest(BaseModel):
    share_id: Optional[str] = None  # None = all shares
    user_triggered: bool = True


class UnmountRequest(BaseModel):
    share_id: Optional[str] = None
    user_triggered: bool = True


@router.get("/shares", response_model=List[Share])
async def list_shares(orchestrator: MountOrchestrator = Depends(get_mount_orchestrator)):
    """All configured shares in registration order, with their current status."""
    return await orchestrator.shares()


@router.post("/mount", response_model=ReconcileReport)
async def mount(
    request: MountRequest,
    orchestrator: MountOrchestrator = Depends(get_mount_orchestrator),
):
    trigger = TriggerKind.USER_TRIGGERED if request.user_triggered else TriggerKind.AUTOMATIC
    logging.info(f"Mount requested via API (share: {request.share_id or 'all'}, trigger: {trigger.value})")
    return await orchestrator.reconcile(share_id=request.share_id, trigger=trigger)


@router.post("/unmount", response_model=List[MountOutcome])
async def unmount(
    request: UnmountRequest,
    orchestrator: MountOrchestrator = Depends(get_mount_orchestrator),
):
    logging.info(f"Unmount requested via API (share: {request.share_id or 'all'})")
    return await orchestrator.unmount(share_id=request.share_id, user_triggered=request.user_triggered)


@router.post("/shares", response_model=Share, status_code=status.HTTP_201_CREATED)
async def add_share(
    definition: ShareDefinition,
    orchestrator: MountOrchestrator = Depends(get_mount_orchestrator),
):
    try:
        share = Share(**definition.model_dump())
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )

    if not await orchestrator.add_share(share):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Share {share.resource_uri} is already configured",
        )
    return share


@router.delete("/shares/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_share(
    share_id: str,
    orchestrator: MountOrchestrator = Depends(get_mount_orchestrator),
):
    try:
        removed = await orchestrator.remove_share(share_id, user_initiated=True)
    except ManagedShareError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown share {share_id}")


@router.get("/network")
async def network_status(monitor: ReachabilityMonitor = Depends(get_reachability_monitor)):
    return {"is_usable": monitor.is_network_usable, "connection_kind": monitor.connection_kind}


@router.get("/config-info")
async def get_config_info(settings: Settings = Depends(get_settings)):
    """Which configuration file is being used"""
    return settings.config_file_info

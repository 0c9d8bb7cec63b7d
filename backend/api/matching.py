"""Real-time matching API endpoints."""

from fastapi import APIRouter, Depends

from agents.matching.matcher import MatcherStats, MatchingConfig, OpportunityMatcher
from backend.api.deps import get_matcher
from backend.core.exceptions import ConfigurationError, NotFoundError, ServiceUnavailableError, ValidationError
from backend.schemas.matching import (
    AlertActionRequest,
    AlertListResponse,
    CycleResponse,
    MatchingConfigUpdate,
    MatchingStatusResponse,
    StartMatchingRequest,
)

router = APIRouter(prefix="/api/matching", tags=["matching"])


@router.post("/start", response_model=MatchingStatusResponse)
async def start_matching(
    request: StartMatchingRequest,
    matcher: OpportunityMatcher = Depends(get_matcher),
) -> MatchingStatusResponse:
    """Start periodic matching for a profile. Starting a running profile is a no-op."""
    try:
        changed = await matcher.start_matching(request.profile)
    except ConfigurationError as e:
        raise ServiceUnavailableError(str(e))
    return MatchingStatusResponse(
        profile_id=request.profile.id,
        running=matcher.is_running(request.profile.id),
        changed=changed,
    )


@router.post("/{profile_id}/stop", response_model=MatchingStatusResponse)
async def stop_matching(
    profile_id: str,
    matcher: OpportunityMatcher = Depends(get_matcher),
) -> MatchingStatusResponse:
    """Stop matching for a profile and discard its alerts."""
    changed = await matcher.stop_matching(profile_id)
    return MatchingStatusResponse(profile_id=profile_id, running=False, changed=changed)


@router.post("/run", response_model=CycleResponse)
async def run_cycle(
    request: StartMatchingRequest,
    matcher: OpportunityMatcher = Depends(get_matcher),
) -> CycleResponse:
    """Run a single matching cycle immediately."""
    try:
        alerts = await matcher.run_cycle(request.profile)
    except ConfigurationError as e:
        raise ServiceUnavailableError(str(e))
    return CycleResponse(profile_id=request.profile.id, new_alerts=alerts)


@router.get("/{profile_id}/alerts", response_model=AlertListResponse)
async def get_alerts(
    profile_id: str,
    matcher: OpportunityMatcher = Depends(get_matcher),
) -> AlertListResponse:
    """Alerts for a profile, newest first."""
    alerts = matcher.get_alerts(profile_id)
    return AlertListResponse(
        profile_id=profile_id,
        alerts=alerts,
        unread=sum(1 for alert in alerts if not alert.read),
    )


@router.post("/{profile_id}/alerts/{alert_id}/read")
async def mark_alert_read(
    profile_id: str,
    alert_id: str,
    matcher: OpportunityMatcher = Depends(get_matcher),
) -> dict:
    if not await matcher.mark_alert_read(profile_id, alert_id):
        raise NotFoundError("Alert", alert_id)
    return {"alert_id": alert_id, "read": True}


@router.post("/{profile_id}/alerts/{alert_id}/action")
async def mark_alert_action(
    profile_id: str,
    alert_id: str,
    request: AlertActionRequest,
    matcher: OpportunityMatcher = Depends(get_matcher),
) -> dict:
    if not await matcher.mark_alert_action_taken(profile_id, alert_id, request.action):
        raise NotFoundError("Alert", alert_id)
    return {"alert_id": alert_id, "read": True, "action_taken": request.action}


@router.delete("/{profile_id}/alerts")
async def clear_alerts(
    profile_id: str,
    matcher: OpportunityMatcher = Depends(get_matcher),
) -> dict:
    await matcher.clear_alerts(profile_id)
    return {"profile_id": profile_id, "cleared": True}


@router.get("/stats", response_model=MatcherStats)
async def get_stats(matcher: OpportunityMatcher = Depends(get_matcher)) -> MatcherStats:
    return matcher.get_stats()


@router.get("/config", response_model=MatchingConfig)
async def get_config(matcher: OpportunityMatcher = Depends(get_matcher)) -> MatchingConfig:
    return matcher.config


@router.patch("/config", response_model=MatchingConfig)
async def update_config(
    request: MatchingConfigUpdate,
    matcher: OpportunityMatcher = Depends(get_matcher),
) -> MatchingConfig:
    """Update matching configuration. Unset fields keep their current value."""
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("No configuration changes provided")
    return await matcher.update_config(**changes)

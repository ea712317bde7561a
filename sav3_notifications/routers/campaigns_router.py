from fastapi import APIRouter, Depends, Query, Request
import logging

from ..application.services.campaign_service import CampaignService
from ..dependencies import CurrentUser, get_campaign_service, require_privileged
from ..exceptions import handle_service_error
from ..responses import success_response
from ..schemas.campaigns.campaign import CampaignLaunchRequest, CampaignLaunchResponse, NotificationTemplate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications/campaigns", tags=["Campaigns"])


@router.post("/templates", status_code=201)
def save_template(
    request: Request,
    template: NotificationTemplate,
    current_user: CurrentUser = Depends(require_privileged),
    service: CampaignService = Depends(get_campaign_service),
):
    """Create a template, or replace the one with the same id."""
    try:
        saved = service.add_template(template)
        return success_response(request, saved.model_dump(mode="json", by_alias=True), status_code=201)
    except Exception as e:
        handle_service_error(e, "save notification template")


@router.get("/templates")
def list_templates(
    request: Request,
    active_only: bool = Query(False, alias="activeOnly"),
    current_user: CurrentUser = Depends(require_privileged),
    service: CampaignService = Depends(get_campaign_service),
):
    try:
        templates = service.list_templates(active_only)
        return success_response(request, [t.model_dump(mode="json", by_alias=True) for t in templates])
    except Exception as e:
        handle_service_error(e, "list notification templates")


@router.get("/templates/{template_id}")
def get_template(
    request: Request,
    template_id: str,
    current_user: CurrentUser = Depends(require_privileged),
    service: CampaignService = Depends(get_campaign_service),
):
    try:
        return success_response(request, service.get_template(template_id).model_dump(mode="json", by_alias=True))
    except Exception as e:
        handle_service_error(e, f"get notification template {template_id}")


@router.post("", status_code=201)
def launch_campaign(
    request: Request,
    payload: CampaignLaunchRequest,
    current_user: CurrentUser = Depends(require_privileged),
    service: CampaignService = Depends(get_campaign_service),
):
    try:
        ids = service.launch(payload, payload.user_ids, payload.contexts, payload.scheduled_for)
        logger.info(f"User {current_user.id} launched campaign {payload.id} to {len(ids)} users")
        body = CampaignLaunchResponse(campaign_id=payload.id, created=len(ids), ids=ids)
        return success_response(request, body.model_dump(mode="json", by_alias=True), status_code=201)
    except Exception as e:
        handle_service_error(e, "launch campaign")

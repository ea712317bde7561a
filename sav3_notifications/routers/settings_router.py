from typing import Any, Dict
from fastapi import APIRouter, Body, Depends, Request
import logging

from ..application.services.settings_service import SettingsService
from ..dependencies import CurrentUser, get_current_user, get_settings_service
from ..exceptions import handle_service_error
from ..responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications/settings", tags=["Notification Settings"])


@router.get("")
def get_notification_settings(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    service: SettingsService = Depends(get_settings_service),
):
    try:
        return success_response(request, service.get(current_user.id).model_dump(mode="json", by_alias=True))
    except Exception as e:
        handle_service_error(e, "get notification settings")


@router.put("")
def update_notification_settings(
    request: Request,
    partial: Dict[str, Any] = Body(...),
    current_user: CurrentUser = Depends(get_current_user),
    service: SettingsService = Depends(get_settings_service),
):
    """Deep-merge the given fields into the stored settings."""
    try:
        updated = service.update(current_user.id, partial)
        return success_response(request, updated.model_dump(mode="json", by_alias=True))
    except Exception as e:
        handle_service_error(e, "update notification settings")


@router.post("/reset")
def reset_notification_settings(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    service: SettingsService = Depends(get_settings_service),
):
    try:
        return success_response(request, service.reset(current_user.id).model_dump(mode="json", by_alias=True))
    except Exception as e:
        handle_service_error(e, "reset notification settings")

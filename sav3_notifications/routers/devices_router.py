from fastapi import APIRouter, Depends, Request
import logging

from ..dependencies import CurrentUser, get_current_user, get_device_repository, get_push_sender
from ..exceptions import NotFoundError, handle_service_error
from ..infrastructure.channels.firebase_push import FirebasePushSender
from ..infrastructure.persistence.sqlalchemy.repositories.device_repository_sql import SqlDeviceRepository
from ..responses import success_response
from ..schemas.devices.device import DeviceRegisterRequest, DeviceResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications/devices", tags=["Devices"])


@router.post("", status_code=201)
def register_device(
    request: Request,
    payload: DeviceRegisterRequest,
    current_user: CurrentUser = Depends(get_current_user),
    devices: SqlDeviceRepository = Depends(get_device_repository),
):
    try:
        device = devices.upsert(current_user.id, payload.device_id, payload.fcm_token, payload.platform.value)
        logger.info(f"Registered {device.platform} device {device.device_id} for user {current_user.id}")
        body = DeviceResponse(
            device_id=device.device_id,
            platform=device.platform,
            is_active=device.is_active,
            last_used_at=device.last_used_at,
        ).model_dump(mode="json", by_alias=True, exclude_none=True)
        return success_response(request, body, status_code=201)
    except Exception as e:
        handle_service_error(e, "register device")


@router.delete("/{device_id}")
def unregister_device(
    request: Request,
    device_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    devices: SqlDeviceRepository = Depends(get_device_repository),
):
    try:
        if not devices.deactivate(current_user.id, device_id):
            raise NotFoundError("Device")
        return success_response(request, {"success": True, "message": "Device unregistered"})
    except Exception as e:
        handle_service_error(e, f"unregister device {device_id}")


@router.post("/topics/{topic}")
def subscribe_to_topic(
    request: Request,
    topic: str,
    current_user: CurrentUser = Depends(get_current_user),
    push: FirebasePushSender = Depends(get_push_sender),
):
    try:
        return success_response(request, {"topic": topic, "subscribed": push.subscribe(current_user.id, topic)})
    except Exception as e:
        handle_service_error(e, f"subscribe to topic {topic}")


@router.delete("/topics/{topic}")
def unsubscribe_from_topic(
    request: Request,
    topic: str,
    current_user: CurrentUser = Depends(get_current_user),
    push: FirebasePushSender = Depends(get_push_sender),
):
    try:
        return success_response(request, {"topic": topic, "unsubscribed": push.unsubscribe(current_user.id, topic)})
    except Exception as e:
        handle_service_error(e, f"unsubscribe from topic {topic}")

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
import logging

from ..application.ports.notification_repo import NotificationDto
from ..application.services.dispatch_router import DispatchResult, DispatchRouter
from ..application.services.notification_store import NotificationStore
from ..application.services.settings_service import SettingsService
from ..application.services.social_notifications import like_notification, match_notification, message_notification
from ..dependencies import (
    CurrentUser,
    get_current_user,
    get_dispatch_router,
    get_notification_store,
    get_push_sender,
    get_settings_service,
    require_privileged,
)
from ..exceptions import ValidationError, handle_service_error
from ..infrastructure.channels.firebase_push import FirebasePushSender
from ..responses import offset_pagination, success_response
from ..schemas.notifications.notification import (
    BulkNotificationCreate,
    DispatchResultResponse,
    MarkReadRequest,
    NotificationCreate,
    NotificationResponse,
    SocialEvent,
    SocialEventRequest,
    TopicMessage,
)
from ..schemas.settings.settings import PushSettingsUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def to_response(n: NotificationDto) -> dict:
    return NotificationResponse(
        id=n.id,
        user_id=n.user_id,
        type=n.type,
        category=n.category,
        title=n.title,
        body=n.body,
        data=n.data,
        priority=n.priority,
        status=n.status,
        channels=n.channels,
        actions=n.actions,
        metadata=n.meta,
        is_read=n.is_read,
        scheduled_for=n.scheduled_for,
        sent_at=n.sent_at,
        read_at=n.read_at,
        expires_at=n.expires_at,
        created_at=n.created_at,
        updated_at=n.updated_at,
    ).model_dump(mode="json", by_alias=True)


def dispatch_response(result: DispatchResult) -> dict:
    return DispatchResultResponse(
        notification_id=result.notification_id,
        action=result.action,
        status=result.status,
        reason=result.reason,
        channels_sent=result.channels_sent,
        channels_failed=result.channels_failed,
        deliver_at=result.deliver_at,
    ).model_dump(mode="json", by_alias=True)


@router.get("")
def list_notifications(
    request: Request,
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    unread_only: bool = Query(False, alias="unreadOnly"),
    type: Optional[str] = Query(None),
    cursor: Optional[str] = Query(None),
    mode: str = Query("offset", pattern="^(offset|cursor)$"),
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_notification_store),
):
    try:
        if cursor is not None or mode == "cursor":
            page = store.list(current_user.id, limit, cursor)
            pagination = {"limit": limit, "nextCursor": page.next_cursor, "hasNext": page.next_cursor is not None}
            return success_response(request, [to_response(n) for n in page.items], pagination=pagination)
        items, total = store.search(current_user.id, limit, offset, unread_only, type)
        return success_response(request, [to_response(n) for n in items], pagination=offset_pagination(total, limit, offset))
    except Exception as e:
        handle_service_error(e, "list notifications")


@router.get("/unread-count")
def unread_count(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_notification_store),
):
    try:
        return success_response(request, store.unread_count(current_user.id))
    except Exception as e:
        handle_service_error(e, "unread count")


@router.post("", status_code=201)
def create_notification(
    request: Request,
    payload: NotificationCreate,
    dispatch: bool = Query(False),
    current_user: CurrentUser = Depends(require_privileged),
    store: NotificationStore = Depends(get_notification_store),
    dispatcher: DispatchRouter = Depends(get_dispatch_router),
):
    try:
        item = store.create(payload)
        if dispatch:
            result = dispatcher.dispatch(item.id)
            item = dispatcher.repo.get(item.id)
            logger.info(f"Dispatched notification {item.id}: {result.action} ({result.reason})")
            return success_response(request, {**to_response(item), "dispatch": dispatch_response(result)}, status_code=201)
        return success_response(request, to_response(item), status_code=201)
    except Exception as e:
        handle_service_error(e, "create notification")


@router.post("/bulk", status_code=201)
def bulk_create_notifications(
    request: Request,
    payload: BulkNotificationCreate,
    current_user: CurrentUser = Depends(require_privileged),
    store: NotificationStore = Depends(get_notification_store),
):
    try:
        items = store.bulk_create(payload.notifications)
        return success_response(request, {"created": len(items), "ids": [n.id for n in items]}, status_code=201)
    except Exception as e:
        handle_service_error(e, "bulk create notifications")


@router.put("/read")
def mark_read(
    request: Request,
    payload: MarkReadRequest,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_notification_store),
):
    try:
        return success_response(request, store.mark_read(current_user.id, payload.ids))
    except Exception as e:
        handle_service_error(e, "mark notifications read")


@router.put("/read-all")
def mark_all_read(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_notification_store),
):
    try:
        return success_response(request, store.mark_all_read(current_user.id))
    except Exception as e:
        handle_service_error(e, "mark all notifications read")


@router.put("/push-settings")
def update_push_settings(
    request: Request,
    payload: PushSettingsUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    settings_service: SettingsService = Depends(get_settings_service),
):
    try:
        updated = settings_service.update_push_settings(current_user.id, payload.enabled, payload.types)
        return success_response(request, updated.model_dump(mode="json", by_alias=True))
    except Exception as e:
        handle_service_error(e, "update push settings")


@router.post("/dispatch/due")
def process_due_notifications(
    request: Request,
    current_user: CurrentUser = Depends(require_privileged),
    dispatcher: DispatchRouter = Depends(get_dispatch_router),
):
    try:
        purged = dispatcher.store.purge_expired()
        processed = dispatcher.process_due()
        return success_response(request, {"processed": processed, "purged": purged})
    except Exception as e:
        handle_service_error(e, "process due notifications")


@router.post("/dispatch/groups/{user_id}")
def flush_grouped_notifications(
    request: Request,
    user_id: str,
    current_user: CurrentUser = Depends(require_privileged),
    dispatcher: DispatchRouter = Depends(get_dispatch_router),
):
    try:
        digest = dispatcher.flush_groups(user_id)
        return success_response(request, to_response(digest) if digest else None)
    except Exception as e:
        handle_service_error(e, "flush grouped notifications")


@router.post("/events/{event}", status_code=201)
def create_social_notification(
    request: Request,
    event: SocialEvent,
    payload: SocialEventRequest,
    dispatch: bool = Query(True),
    current_user: CurrentUser = Depends(require_privileged),
    store: NotificationStore = Depends(get_notification_store),
    dispatcher: DispatchRouter = Depends(get_dispatch_router),
):
    """Build and store a match, message or like notification, then dispatch it."""
    try:
        if event == SocialEvent.MATCH:
            create = match_notification(payload.user_id, payload.actor_name)
        elif event == SocialEvent.LIKE:
            create = like_notification(payload.user_id, payload.actor_name)
        else:
            if not payload.message:
                raise ValidationError("A message event needs the message text", {"field": "message"})
            create = message_notification(payload.user_id, payload.actor_name, payload.message)
        item = store.create(create)
        if not dispatch:
            return success_response(request, to_response(item), status_code=201)
        result = dispatcher.dispatch(item.id)
        item = dispatcher.repo.get(item.id)
        return success_response(request, {**to_response(item), "dispatch": dispatch_response(result)}, status_code=201)
    except Exception as e:
        handle_service_error(e, f"create {event.value} notification")


@router.post("/topics/{topic}")
def send_to_topic(
    request: Request,
    topic: str,
    payload: TopicMessage,
    current_user: CurrentUser = Depends(require_privileged),
    push: FirebasePushSender = Depends(get_push_sender),
):
    try:
        result = push.send_to_topic(topic, payload.title, payload.body, payload.data, payload.image_url)
        return success_response(request, {"success": result.success, "messageId": result.provider_id, "error": result.error})
    except Exception as e:
        handle_service_error(e, f"send to topic {topic}")


@router.get("/{notification_id}")
def get_notification(
    request: Request,
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_notification_store),
):
    try:
        return success_response(request, to_response(store.get(current_user.id, notification_id)))
    except Exception as e:
        handle_service_error(e, f"get notification {notification_id}")


@router.put("/{notification_id}/read")
def mark_notification_read(
    request: Request,
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_notification_store),
):
    try:
        return success_response(request, to_response(store.mark_one_read(current_user.id, notification_id)))
    except Exception as e:
        handle_service_error(e, f"mark notification {notification_id} read")


@router.delete("/{notification_id}")
def delete_notification(
    request: Request,
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_notification_store),
):
    try:
        store.delete(current_user.id, notification_id)
        return success_response(request, {"success": True, "message": "Notification deleted"})
    except Exception as e:
        handle_service_error(e, f"delete notification {notification_id}")

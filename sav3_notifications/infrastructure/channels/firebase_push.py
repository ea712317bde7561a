from typing import Any, Dict, Optional
import logging
import re

import firebase_admin
from firebase_admin import credentials, messaging

from ...core.config import settings
from ...application.ports.channel_sender import ChannelSender, Recipient, SendResult
from ...application.ports.device_repo import DeviceRepository
from ...application.ports.notification_repo import NotificationDto
from ...exceptions import ValidationError

logger = logging.getLogger(__name__)

# FCM error codes meaning the token will never work again
UNREGISTERED_CODES = ("UNREGISTERED", "INVALID_ARGUMENT", "SENDER_ID_MISMATCH")
_TOPIC = re.compile(r"^[a-zA-Z0-9\-_.~%]{1,900}$")


def init_firebase_app() -> Optional[firebase_admin.App]:
    try:
        if firebase_admin._apps:  # type: ignore[attr-defined]
            return list(firebase_admin._apps.values())[0]
        if not settings.FIREBASE_CLIENT_EMAIL or not settings.FIREBASE_PRIVATE_KEY or not settings.FIREBASE_PROJECT_ID:
            logger.warning("Firebase credentials are not configured; push delivery disabled")
            return None
        cred = credentials.Certificate({
            "type": "service_account",
            "project_id": settings.FIREBASE_PROJECT_ID,
            "private_key": settings.FIREBASE_PRIVATE_KEY,
            "client_email": settings.FIREBASE_CLIENT_EMAIL,
            "token_uri": "https://oauth2.googleapis.com/token",
        })
        app = firebase_admin.initialize_app(cred, {"projectId": settings.FIREBASE_PROJECT_ID})
        logger.info("Firebase app initialized")
        return app
    except Exception as e:
        logger.error(f"Failed to initialize Firebase app: {e}")
        return None


def _string_data(notification: NotificationDto) -> Dict[str, str]:
    # FCM data payloads only carry string values
    data = {
        "notificationId": notification.id,
        "type": notification.type,
        "category": notification.category,
    }
    payload = notification.data or {}
    if payload.get("deepLink"):
        data["deepLink"] = str(payload["deepLink"])
    if payload.get("entityId"):
        data["entityId"] = str(payload["entityId"])
    return data


class FirebasePushSender(ChannelSender):
    channel = "push"

    def __init__(self, devices: DeviceRepository, app: Optional[Any] = None):
        self.devices = devices
        self.app = app

    def _build_message(self, notification: NotificationDto, tokens) -> messaging.MulticastMessage:
        high = notification.priority in ("high", "urgent")
        image_url = (notification.data or {}).get("imageUrl")
        return messaging.MulticastMessage(
            tokens=list(tokens),
            notification=messaging.Notification(title=notification.title, body=notification.body, image=image_url),
            data=_string_data(notification),
            android=messaging.AndroidConfig(
                priority="high" if high else "normal",
                ttl=settings.PUSH_TTL_SECONDS,
                notification=messaging.AndroidNotification(channel_id=notification.category, sound="default"),
            ),
            apns=messaging.APNSConfig(
                headers={"apns-priority": "10" if high else "5"},
                payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
            ),
        )

    def send(self, notification: NotificationDto, recipient: Recipient) -> SendResult:
        if not settings.ENABLE_PUSH_NOTIFICATIONS:
            return SendResult(success=False, error="Push notifications are disabled", retryable=False)
        tokens = self.devices.active_tokens(recipient.user_id)
        if not tokens:
            return SendResult(success=False, error="No active devices", retryable=False)
        app = self.app or init_firebase_app()
        if app is None:
            return SendResult(success=False, error="Firebase is not configured", retryable=False)

        try:
            response = messaging.send_each_for_multicast(self._build_message(notification, tokens), app=app)
        except Exception as e:
            logger.error(f"FCM multicast failed for notification {notification.id}: {e}")
            return SendResult(success=False, error=str(e))

        invalid = []
        for token, result in zip(tokens, response.responses):
            if result.success:
                continue
            code = getattr(result.exception, "code", None)
            if code in UNREGISTERED_CODES or type(result.exception).__name__ == "UnregisteredError":
                invalid.append(token)
            logger.debug(f"FCM rejected token for user {recipient.user_id}: {result.exception}")
        if invalid:
            self.devices.deactivate_tokens(invalid)

        if response.success_count == 0:
            return SendResult(success=False, error=f"All {response.failure_count} push deliveries failed", retryable=not invalid)
        message_ids = [r.message_id for r in response.responses if r.success]
        logger.info(f"Push sent for notification {notification.id}: {response.success_count} ok, {response.failure_count} failed")
        return SendResult(success=True, provider_id=message_ids[0] if message_ids else None)

    def _topic_app(self, topic: str) -> Optional[Any]:
        if not _TOPIC.match(topic):
            raise ValidationError(f"Invalid topic name '{topic}'", {"topic": topic})
        if not settings.ENABLE_PUSH_NOTIFICATIONS:
            logger.warning("Push notifications are disabled; topic request ignored")
            return None
        app = self.app or init_firebase_app()
        if app is None:
            logger.warning("Firebase is not configured; topic request ignored")
        return app

    def send_to_topic(self, topic: str, title: str, body: str, data: Optional[Dict[str, Any]] = None, image_url: Optional[str] = None) -> SendResult:
        app = self._topic_app(topic)
        if app is None:
            return SendResult(success=False, error="Push is not available", retryable=False)
        message = messaging.Message(
            topic=topic,
            notification=messaging.Notification(title=title, body=body, image=image_url),
            data={k: str(v) for k, v in (data or {}).items()},
        )
        try:
            message_id = messaging.send(message, app=app)
        except Exception as e:
            logger.error(f"Failed to send to topic {topic}: {e}")
            return SendResult(success=False, error=str(e))
        logger.info(f"Sent notification to topic: {topic}")
        return SendResult(success=True, provider_id=message_id)

    def subscribe(self, user_id: str, topic: str) -> int:
        """Subscribe every active device of the user; returns how many tokens FCM accepted."""
        return self._manage_topic(user_id, topic, messaging.subscribe_to_topic, "Subscribed")

    def unsubscribe(self, user_id: str, topic: str) -> int:
        return self._manage_topic(user_id, topic, messaging.unsubscribe_from_topic, "Unsubscribed")

    def _manage_topic(self, user_id: str, topic: str, call, verb: str) -> int:
        app = self._topic_app(topic)
        tokens = self.devices.active_tokens(user_id)
        if app is None or not tokens:
            return 0
        response = call(tokens, topic, app=app)
        for error in response.errors:
            logger.debug(f"FCM topic error for user {user_id} (token #{error.index}): {error.reason}")
        logger.info(f"{verb} {response.success_count}/{len(tokens)} tokens of user {user_id} to topic: {topic}")
        return response.success_count

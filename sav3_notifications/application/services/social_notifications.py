"""Ready-made payloads for the social events the app pushes most often."""
from ...schemas.notifications.notification import NotificationCategory, NotificationCreate

PREVIEW_LENGTH = 50


def match_notification(user_id: str, match_user_name: str) -> NotificationCreate:
    return NotificationCreate(
        user_id=user_id,
        type="match",
        category=NotificationCategory.DATING,
        priority="high",
        title="🎉 New Match!",
        body=f"You matched with {match_user_name}",
        data={"action": "open_chat"},
        channels=["push", "in_app"],
    )


def message_notification(user_id: str, sender_name: str, message: str) -> NotificationCreate:
    preview = message[:PREVIEW_LENGTH] + "..." if len(message) > PREVIEW_LENGTH else message
    return NotificationCreate(
        user_id=user_id,
        type="message",
        title=sender_name,
        body=preview,
        data={"action": "open_chat"},
        channels=["push", "in_app"],
    )


def like_notification(user_id: str, liker_name: str) -> NotificationCreate:
    return NotificationCreate(
        user_id=user_id,
        type="like",
        category=NotificationCategory.DATING,
        title="Someone likes you! 💖",
        body=f"{liker_name} liked your profile",
        data={"action": "open_discovery"},
        channels=["push", "in_app"],
    )

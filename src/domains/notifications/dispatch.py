"""Push notification dispatch using Firebase Admin SDK.

Notifications go to FCM topics (``user_<id>`` / ``org_<id>``) that client
apps subscribe to. Requires firebase-admin and service account credentials;
dispatch is a no-op when they are not configured.
"""
import json
import logging
from typing import Any

from src.config.settings import settings

logger = logging.getLogger(__name__)

# Firebase Admin SDK (lazy import to avoid errors if not installed)
_firebase_app = None


def _init_firebase():
    """Initialize Firebase Admin SDK."""
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    if not settings.push_enabled:
        logger.debug("Firebase credentials not configured, push disabled")
        return None

    try:
        import firebase_admin
        from firebase_admin import credentials

        try:
            _firebase_app = firebase_admin.get_app()
            return _firebase_app
        except ValueError:
            pass

        if settings.FIREBASE_CREDENTIALS_JSON:
            cred = credentials.Certificate(json.loads(settings.FIREBASE_CREDENTIALS_JSON))
        else:
            cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_PATH)

        _firebase_app = firebase_admin.initialize_app(cred)
        logger.info("Firebase Admin SDK initialized")
        return _firebase_app

    except ImportError as e:
        logger.warning(f"firebase-admin package not installed: {e}")
        return None
    except (ValueError, OSError) as e:
        logger.error(f"Failed to initialize Firebase Admin SDK: {e}")
        return None


def topic_for(user_id: int | None = None, organization_id: int | None = None) -> str:
    """FCM topic for a user, falling back to the organization."""
    if user_id is not None:
        return f"user_{user_id}"
    return f"org_{organization_id}"


async def send_push_to_topic(
    topic: str,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> bool:
    """Send push notification to a topic.

    Returns:
        True if sent successfully
    """
    app = _init_firebase()
    if app is None:
        return False

    from firebase_admin import messaging

    notification = messaging.Notification(title=title, body=body)
    # FCM requires string values
    str_data = {k: str(v) for k, v in (data or {}).items()}

    message = messaging.Message(
        notification=notification,
        data=str_data,
        topic=topic,
    )

    try:
        response = messaging.send(message)
    except (messaging.UnregisteredError, ValueError) as e:
        logger.error(f"Failed to send topic notification to '{topic}': {e}")
        return False

    logger.info(f"Topic notification sent to '{topic}': {response}")
    return True


async def notify_plan_assigned(
    plan_id: int,
    plan_title: str,
    recipients: list[tuple[int | None, int | None]],
) -> int:
    """Tell each assignee (user or organization) about a newly assigned plan.

    Returns:
        Number of notifications sent
    """
    sent = 0
    for user_id, organization_id in recipients:
        try:
            ok = await send_push_to_topic(
                topic_for(user_id, organization_id),
                title="New plan assigned",
                body=f"{plan_title} has been added to your schedule",
                data={"type": "plan_assigned", "plan_id": plan_id},
            )
        except Exception:
            logger.exception(f"Push dispatch failed for plan {plan_id}")
            continue
        if ok:
            sent += 1

    logger.info(f"Plan {plan_id} assignment notifications: {sent}/{len(recipients)} sent")
    return sent

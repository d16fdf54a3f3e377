from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import UserNotification


async def create_user_notification(
    db: AsyncSession,
    *,
    user_id: str,
    notification_type: str,
    title: str,
    body: str | None = None,
    i18n_key: str | None = None,
    i18n_params: dict | None = None,
    link: str | None = None,
    related_entity_type: str | None = None,
    related_entity_id: str | None = None,
) -> UserNotification:
    notification = UserNotification(
        user_id=user_id,
        notification_type=notification_type,
        title=title,
        body=body,
        i18n_key=i18n_key,
        i18n_params=i18n_params or {},
        link=link,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
    )
    db.add(notification)
    await db.flush()
    return notification

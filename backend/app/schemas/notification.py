from datetime import datetime

from pydantic import BaseModel

from app.models.notification import NotificationPriority, NotificationType


class NotificationOut(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    notification_type: NotificationType
    priority: NotificationPriority
    related_id: str | None = None
    related_model: str | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

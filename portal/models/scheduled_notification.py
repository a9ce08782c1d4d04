"""ScheduledNotification model — admin push queued for a future time."""

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from portal.database import Base


class ScheduledNotification(Base):
    """A manual notification to be dispatched once ``scheduled_at`` is due.

    Attributes:
        id: Primary key.
        created_by: Superadmin who scheduled it.
        title: Push title.
        message: Push body.
        notification_type: "broadcast", "role" or "personal".
        target_role: Role to notify (type "role").
        target_user_id: User to notify (type "personal").
        scheduled_at: Earliest dispatch time.
        status: "pending", "sent", "failed" or "cancelled".
        sent_at: When processing finished.
        recipients_count: Pushes accepted by the push services.
        error_message: Reason for a failed dispatch.
    """

    __tablename__ = "scheduled_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_by = Column(String(64), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    notification_type = Column(String(20), nullable=False)
    target_role = Column(String(50), nullable=True)
    target_user_id = Column(String(64), nullable=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    recipients_count = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)

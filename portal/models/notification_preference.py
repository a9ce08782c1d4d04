"""NotificationPreference model — per-user opt-in flags for trámite pushes."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from portal.database import Base


class NotificationPreference(Base):
    """Per-user notification switches, created lazily with everything enabled.

    Attributes:
        id: Primary key.
        user_id: Owner of the preferences (unique).
        notify_requisiciones: Receive pushes about requisiciones.
        notify_reposiciones: Receive pushes about reposiciones.
    """

    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), unique=True, nullable=False)
    notify_requisiciones = Column(Boolean, default=True, nullable=False)
    notify_reposiciones = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False
    )

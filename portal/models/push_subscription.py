"""PushSubscription model — the single Web Push endpoint registered by a user."""

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from portal.database import Base


class PushSubscription(Base):
    """Browser push endpoint plus its encryption keys.

    ``user_id`` is unique: registering again replaces the previous endpoint,
    so only the most recently registered device receives pushes.

    Attributes:
        id: Primary key; expired rows are pruned by this id.
        user_id: Subscribed user.
        endpoint: Push-service URL issued by the browser.
        p256dh: Client public key (base64url).
        auth: Client auth secret (base64url).
    """

    __tablename__ = "push_subscriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), unique=True, nullable=False)
    endpoint = Column(Text, nullable=False)
    p256dh = Column(String(255), nullable=False)
    auth = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False
    )

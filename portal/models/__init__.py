"""SQLAlchemy models package for the Portal de Trámites.

Importing all models here ensures that SQLAlchemy's mapper registry is
populated before ``Base.metadata.create_all()`` or Alembic migrations run.

Usage from other modules:
    from portal.models import Requisicion, PushSubscription
"""

# Trámites (workflow records)
from portal.models.requisicion import Requisicion  # noqa: F401
from portal.models.reposicion import Reposicion  # noqa: F401
from portal.models.folio_counter import FolioCounter  # noqa: F401

# Identity / role directory
from portal.models.usuario_rol import UsuarioRol  # noqa: F401

# Notifications
from portal.models.notification_preference import NotificationPreference  # noqa: F401
from portal.models.push_subscription import PushSubscription  # noqa: F401
from portal.models.scheduled_notification import ScheduledNotification  # noqa: F401

__all__ = [
    "Requisicion",
    "Reposicion",
    "FolioCounter",
    "UsuarioRol",
    "NotificationPreference",
    "PushSubscription",
    "ScheduledNotification",
]

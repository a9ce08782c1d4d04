"""
Pydantic v2 schemas for push notifications.

Covers the push payload and dispatch summary used internally by the
notification pipeline, plus the request/response shapes of the endpoints
under ``/api/notificaciones`` and ``/api/push``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class PushPayload(BaseModel):
    """JSON document delivered to the browser's service worker.

    Attributes:
        title: Notification heading, e.g. "Requisición REQ-0001".
        body: Notification text, e.g. "Estado: Aprobado".
        url: Page opened when the notification is clicked.
        tag: Collapse key; repeated pushes with the same tag replace each other.
    """

    title: str = Field(..., description="Título de la notificación.")
    body: str = Field(..., description="Texto de la notificación.")
    url: str = Field(..., description="URL a abrir al hacer clic.")
    tag: str | None = Field(default=None, description="Etiqueta para agrupar notificaciones.")


class DispatchResult(BaseModel):
    """Outcome counts of one dispatch batch.

    ``expired`` subscriptions are also counted in ``failed``.
    """

    sent: int = Field(default=0, ge=0, description="Entregas aceptadas (200/201).")
    failed: int = Field(default=0, ge=0, description="Entregas fallidas.")
    expired: int = Field(
        default=0, ge=0, description="Endpoints reportados como inexistentes (404/410)."
    )


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class PreferenciasResponse(BaseModel):
    """Current notification switches of the caller."""

    user_id: str
    notify_requisiciones: bool
    notify_reposiciones: bool

    model_config = ConfigDict(from_attributes=True)


class PreferenciasUpdate(BaseModel):
    """Partial update of the caller's switches; omitted fields are unchanged."""

    notify_requisiciones: bool | None = Field(
        default=None, description="Recibir notificaciones de requisiciones."
    )
    notify_reposiciones: bool | None = Field(
        default=None, description="Recibir notificaciones de reposiciones."
    )


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1, max_length=255)
    auth: str = Field(..., min_length=1, max_length=255)


class SuscripcionCreate(BaseModel):
    """Body of ``PushSubscription.toJSON()`` as produced by the browser."""

    endpoint: str = Field(..., min_length=1, description="URL del servicio push.")
    keys: SubscriptionKeys

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
                "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"},
            }
        }
    )


class SuscripcionResponse(BaseModel):
    id: int
    user_id: str
    endpoint: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class VapidPublicKeyResponse(BaseModel):
    public_key: str | None = Field(
        default=None, description="Clave pública VAPID (base64url) o null si no está configurada."
    )


# ---------------------------------------------------------------------------
# Manual notifications
# ---------------------------------------------------------------------------


class NotificacionBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200, description="Título.")
    message: str = Field(..., min_length=1, max_length=2000, description="Mensaje.")
    url: str | None = Field(default=None, description="URL a abrir; por defecto el portal.")


class NotificacionPersonal(NotificacionBase):
    user_id: str = Field(..., min_length=1, max_length=64, description="Usuario destino.")


class NotificacionRol(NotificacionBase):
    role: str = Field(..., min_length=1, max_length=50, description="Rol destino.")


class NotificacionBroadcast(NotificacionBase):
    pass


class NotificacionEnvioResponse(BaseModel):
    """Summary returned by the manual notification endpoints.

    Attributes:
        recipients: Distinct users with at least one subscription.
        sent / failed / expired: Dispatch counters.
    """

    recipients: int = 0
    sent: int = 0
    failed: int = 0
    expired: int = 0


# ---------------------------------------------------------------------------
# Scheduled notifications
# ---------------------------------------------------------------------------


class NotificacionProgramadaCreate(NotificacionBase):
    """A manual notification queued for a future time.

    ``target_role`` is required for type "role" and ``target_user_id`` for
    type "personal"; the service validates the combination.
    """

    notification_type: Literal["broadcast", "role", "personal"] = Field(
        ..., description="Alcance: broadcast, role o personal."
    )
    target_role: str | None = Field(default=None, max_length=50)
    target_user_id: str | None = Field(default=None, max_length=64)
    scheduled_at: datetime = Field(..., description="Fecha y hora de envío (con zona horaria).")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Cierre de mes",
                "message": "Recuerde enviar sus reposiciones antes del viernes.",
                "notification_type": "role",
                "target_role": "solicitador",
                "scheduled_at": "2026-03-27T09:00:00-06:00",
            }
        }
    )


class NotificacionProgramadaResponse(BaseModel):
    id: int
    created_by: str
    title: str
    message: str
    notification_type: str
    target_role: str | None = None
    target_user_id: str | None = None
    scheduled_at: datetime
    status: str
    sent_at: datetime | None = None
    recipients_count: int | None = None
    error_message: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ProcesamientoResponse(BaseModel):
    """Summary of one scheduled-notification processing run."""

    processed: int = 0
    sent: int = 0
    failed: int = 0


class NotificacionPrueba(BaseModel):
    """Test push; without ``user_id`` it goes to the caller's own device."""

    user_id: str | None = Field(default=None, max_length=64, description="Usuario destino.")

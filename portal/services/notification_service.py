"""
Notification pipeline and manual notifications — service layer.

Event pipeline
--------------
``procesar_evento`` is scheduled as a FastAPI background task after a
transition commits (or after the database-change webhook arrives).  It runs
on its own session and chains the three stages::

    resolve_targets  →  preference_service.filter_recipients  →  push_service.dispatch

Any failure is logged and contained; the actor that caused the transition
already has their response.

Manual notifications
--------------------
Superadmin pushes to one user, to a role, to everyone, or a test push.
They bypass notification preferences.  Scheduled notifications queue the
same three kinds for a later time; ``procesar_programadas`` dispatches the
due ones and is meant to be called periodically.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from portal.config import get_settings
from portal.database import SessionLocal
from portal.models.push_subscription import PushSubscription
from portal.models.scheduled_notification import ScheduledNotification
from portal.schemas.evento import TransitionEvent
from portal.schemas.notificacion import (
    DispatchResult,
    NotificacionBase,
    NotificacionEnvioResponse,
    NotificacionProgramadaCreate,
    ProcesamientoResponse,
    PushPayload,
)
from portal.services import preference_service, push_service, subscription_service
from portal.services.auth_service import Actor, get_role_members
from portal.services.notification_targets import build_payload, resolve_targets
from portal.services.push_service import Sender

logger = logging.getLogger(__name__)

_TIPO_BROADCAST = "broadcast"
_TIPO_ROL = "role"
_TIPO_PERSONAL = "personal"

_STATUS_PENDING = "pending"
_STATUS_SENT = "sent"
_STATUS_FAILED = "failed"
_STATUS_CANCELLED = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Transition event pipeline
# ---------------------------------------------------------------------------


def notificar_transicion(
    db: Session, evento: TransitionEvent, sender: Sender | None = None
) -> DispatchResult:
    """Resolve, filter and dispatch the notification for one transition.

    Args:
        db: Active SQLAlchemy session.
        evento: Committed change.
        sender: Transport override for ``push_service``.

    Returns:
        Dispatch counters; all zero when nobody is to be notified.
    """
    anterior, nuevo = evento.snapshots()
    targets = resolve_targets(anterior, nuevo)
    if targets.is_empty:
        logger.debug(
            "notify: no targets for %s id=%s (%s -> %s)",
            nuevo.tipo, nuevo.id, anterior.estado if anterior else None, nuevo.estado,
        )
        return DispatchResult()

    recipients = preference_service.filter_recipients(
        db, nuevo.tipo, targets.user_ids, targets.roles
    )
    if not recipients:
        logger.debug("notify: every target of %s opted out", nuevo.folio)
        return DispatchResult()

    payload = build_payload(nuevo, targets, get_settings().APP_BASE_URL)
    logger.info(
        "notify: %s %s estado=%s recipients=%d rechazo=%s",
        nuevo.tipo, nuevo.folio, nuevo.estado, len(recipients), targets.rechazo,
    )
    return push_service.dispatch(db, recipients, payload, sender)


def procesar_evento(evento: TransitionEvent | None) -> None:
    """Background-task entry point; never raises."""
    if evento is None:
        return
    db = SessionLocal()
    try:
        notificar_transicion(db, evento)
    except Exception:  # noqa: BLE001 - delivery must not affect the committed transition
        logger.exception(
            "notify: pipeline failed for %s id=%s",
            evento.table, evento.new_record.get("id"),
        )
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Manual notifications (superadmin)
# ---------------------------------------------------------------------------


def _payload(data: NotificacionBase, tag: str | None = None) -> PushPayload:
    base_url = get_settings().APP_BASE_URL.rstrip("/")
    return PushPayload(
        title=data.title,
        body=data.message,
        url=data.url or f"{base_url}/dashboard",
        tag=tag,
    )


def _envio(
    db: Session,
    subscriptions: list[PushSubscription],
    payload: PushPayload,
    sender: Sender | None,
) -> NotificacionEnvioResponse:
    recipients = len({sub.user_id for sub in subscriptions})
    result = push_service.dispatch_to_subscriptions(db, subscriptions, payload, sender)
    return NotificacionEnvioResponse(
        recipients=recipients,
        sent=result.sent,
        failed=result.failed,
        expired=result.expired,
    )


def _sin_suscripciones(destino: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No hay suscripciones activas para {destino}",
    )


def enviar_personal(
    db: Session, user_id: str, data: NotificacionBase, sender: Sender | None = None
) -> NotificacionEnvioResponse:
    """Push to a single user.

    Raises:
        HTTPException 404: If the user has no subscription.
    """
    subscriptions = subscription_service.get_for_users(db, [user_id])
    if not subscriptions:
        raise _sin_suscripciones(f"usuario {user_id}")
    logger.info("manual: personal push to user=%s", user_id)
    return _envio(db, subscriptions, _payload(data), sender)


def enviar_rol(
    db: Session, role: str, data: NotificacionBase, sender: Sender | None = None
) -> NotificacionEnvioResponse:
    """Push to every member of *role*.

    Raises:
        HTTPException 404: If no member of the role is subscribed.
    """
    members = get_role_members(db, [role])
    subscriptions = subscription_service.get_for_users(db, members)
    if not subscriptions:
        raise _sin_suscripciones(f"rol {role}")
    logger.info("manual: role push role=%s members=%d", role, len(members))
    return _envio(db, subscriptions, _payload(data), sender)


def enviar_broadcast(
    db: Session, data: NotificacionBase, sender: Sender | None = None
) -> NotificacionEnvioResponse:
    """Push to every registered subscription."""
    subscriptions = subscription_service.list_all(db)
    if not subscriptions:
        raise _sin_suscripciones("todos")
    logger.info("manual: broadcast to %d subscriptions", len(subscriptions))
    return _envio(db, subscriptions, _payload(data), sender)


def enviar_prueba(
    db: Session, actor: Actor, user_id: str | None = None, sender: Sender | None = None
) -> NotificacionEnvioResponse:
    """Send a test push to *user_id*, or to the caller when omitted."""
    destino = user_id or actor.user_id
    subscriptions = subscription_service.get_for_users(db, [destino])
    if not subscriptions:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="El usuario no tiene suscripción push activa",
        )
    base_url = get_settings().APP_BASE_URL.rstrip("/")
    payload = PushPayload(
        title="Notificación de Prueba",
        body="Esta es una prueba del sistema de notificaciones.",
        url=f"{base_url}/perfil",
        tag="prueba",
    )
    logger.info("manual: test push to user=%s by %s", destino, actor.user_id)
    return _envio(db, subscriptions, payload, sender)


# ---------------------------------------------------------------------------
# Scheduled notifications
# ---------------------------------------------------------------------------


def crear_programada(
    db: Session, actor: Actor, data: NotificacionProgramadaCreate
) -> ScheduledNotification:
    """Queue a manual notification for ``data.scheduled_at``.

    Raises:
        HTTPException 422: If the target does not match the notification type.
    """
    if data.notification_type == _TIPO_ROL and not data.target_role:
        raise HTTPException(
            status_code=422,
            detail="target_role es obligatorio para notificaciones por rol.",
        )
    if data.notification_type == _TIPO_PERSONAL and not data.target_user_id:
        raise HTTPException(
            status_code=422,
            detail="target_user_id es obligatorio para notificaciones personales.",
        )

    programada = ScheduledNotification(
        created_by=actor.user_id,
        title=data.title,
        message=data.message,
        notification_type=data.notification_type,
        target_role=data.target_role if data.notification_type == _TIPO_ROL else None,
        target_user_id=(
            data.target_user_id if data.notification_type == _TIPO_PERSONAL else None
        ),
        scheduled_at=_as_utc(data.scheduled_at),
        status=_STATUS_PENDING,
    )
    db.add(programada)
    db.commit()
    db.refresh(programada)
    logger.info(
        "scheduled: created id=%d type=%s at=%s by=%s",
        programada.id, programada.notification_type, programada.scheduled_at, actor.user_id,
    )
    return programada


def listar_programadas(db: Session, estado: str | None = None) -> list[ScheduledNotification]:
    query = db.query(ScheduledNotification)
    if estado is not None:
        query = query.filter(ScheduledNotification.status == estado)
    return query.order_by(ScheduledNotification.scheduled_at.desc()).all()


def cancelar_programada(db: Session, programada_id: int) -> ScheduledNotification:
    """Cancel a pending scheduled notification.

    Raises:
        HTTPException 404: If it does not exist.
        HTTPException 409: If it is no longer pending.
    """
    programada = (
        db.query(ScheduledNotification)
        .filter(ScheduledNotification.id == programada_id)
        .first()
    )
    if programada is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notificación programada con id={programada_id} no encontrada.",
        )
    if programada.status != _STATUS_PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Solo se pueden cancelar notificaciones pendientes (estado: {programada.status}).",
        )
    programada.status = _STATUS_CANCELLED
    db.commit()
    db.refresh(programada)
    logger.info("scheduled: cancelled id=%d", programada_id)
    return programada


def _suscripciones_programada(
    db: Session, programada: ScheduledNotification
) -> tuple[list[PushSubscription], str]:
    if programada.notification_type == _TIPO_BROADCAST:
        return subscription_service.list_all(db), "todos"
    if programada.notification_type == _TIPO_ROL:
        members = get_role_members(db, [programada.target_role])
        return subscription_service.get_for_users(db, members), f"rol {programada.target_role}"
    return (
        subscription_service.get_for_users(db, [programada.target_user_id]),
        f"usuario {programada.target_user_id}",
    )


def procesar_programadas(
    db: Session, now: datetime | None = None, sender: Sender | None = None
) -> ProcesamientoResponse:
    """Dispatch every pending scheduled notification that is due.

    Each row ends as ``sent`` (``recipients_count`` = accepted pushes) or
    ``failed`` with an ``error_message``; one failing row does not stop
    the rest.
    """
    now = _as_utc(now) if now is not None else _utcnow()
    pendientes = (
        db.query(ScheduledNotification)
        .filter(
            ScheduledNotification.status == _STATUS_PENDING,
            ScheduledNotification.scheduled_at <= now,
        )
        .order_by(ScheduledNotification.scheduled_at.asc())
        .all()
    )
    resumen = ProcesamientoResponse(processed=len(pendientes))

    for programada in pendientes:
        try:
            subscriptions, destino = _suscripciones_programada(db, programada)
            if not subscriptions:
                programada.status = _STATUS_FAILED
                programada.recipients_count = 0
                programada.error_message = f"No hay suscripciones activas para {destino}"
            else:
                payload = PushPayload(
                    title=programada.title,
                    body=programada.message,
                    url=f"{get_settings().APP_BASE_URL.rstrip('/')}/dashboard",
                    tag=f"programada-{programada.id}",
                )
                result = push_service.dispatch_to_subscriptions(
                    db, subscriptions, payload, sender
                )
                programada.recipients_count = result.sent
                if result.sent > 0:
                    programada.status = _STATUS_SENT
                else:
                    programada.status = _STATUS_FAILED
                    programada.error_message = (
                        f"Ninguna entrega aceptada para {destino} (fallidas: {result.failed})"
                    )
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.exception("scheduled: processing failed for id=%d", programada.id)
            programada.status = _STATUS_FAILED
            programada.error_message = str(exc) or exc.__class__.__name__

        programada.sent_at = _utcnow()
        db.commit()
        if programada.status == _STATUS_SENT:
            resumen.sent += 1
        else:
            resumen.failed += 1
        logger.info(
            "scheduled: id=%d -> %s recipients=%s",
            programada.id, programada.status, programada.recipients_count,
        )

    return resumen

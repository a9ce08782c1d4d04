"""
Notificaciones router.

Mounts under ``/api/notificaciones`` (prefix set in ``main.py``).

Preferences are available to every authenticated user.  Manual and
scheduled notifications require the ``superadmin`` role and ignore the
recipients' preferences.

Endpoints
---------
GET    /preferencias                 — Caller's switches (created on first read).
PUT    /preferencias                 — Update the caller's switches.
POST   /personal                     — Push to one user.
POST   /rol                          — Push to every member of a role.
POST   /broadcast                    — Push to every subscription.
POST   /test                         — Test push (caller or given user).
GET    /programadas                  — List scheduled notifications (?estado=).
POST   /programadas                  — Schedule a notification.
DELETE /programadas/{id}             — Cancel a pending scheduled notification.
POST   /programadas/procesar         — Dispatch every due scheduled notification.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.schemas.notificacion import (
    NotificacionBroadcast,
    NotificacionEnvioResponse,
    NotificacionPersonal,
    NotificacionProgramadaCreate,
    NotificacionProgramadaResponse,
    NotificacionPrueba,
    NotificacionRol,
    PreferenciasResponse,
    PreferenciasUpdate,
    ProcesamientoResponse,
)
from portal.services import notification_service, preference_service
from portal.services.auth_service import Actor, get_current_actor, require_role
from portal.utils.constants import ROL_SUPERADMIN

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notificaciones"])

SuperAdmin = Annotated[Actor, Depends(require_role(ROL_SUPERADMIN))]

_MANUAL_RESPONSES = {
    403: {"description": "Se requiere rol superadmin."},
    404: {"description": "No hay suscripciones activas para el destino."},
}


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


@router.get(
    "/preferencias",
    response_model=PreferenciasResponse,
    summary="Obtener preferencias de notificación",
)
def get_preferencias(
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> PreferenciasResponse:
    return preference_service.get_or_create(db, actor.user_id)


@router.put(
    "/preferencias",
    response_model=PreferenciasResponse,
    summary="Actualizar preferencias de notificación",
)
def update_preferencias(
    data: PreferenciasUpdate,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> PreferenciasResponse:
    return preference_service.update(db, actor.user_id, data)


# ---------------------------------------------------------------------------
# Manual notifications
# ---------------------------------------------------------------------------


@router.post(
    "/personal",
    response_model=NotificacionEnvioResponse,
    summary="Notificación personal",
    responses=_MANUAL_RESPONSES,
)
def send_personal(
    data: NotificacionPersonal,
    db: Annotated[Session, Depends(get_db)],
    actor: SuperAdmin,
) -> NotificacionEnvioResponse:
    logger.info("POST /notificaciones/personal by %s -> %s", actor.user_id, data.user_id)
    return notification_service.enviar_personal(db, data.user_id, data)


@router.post(
    "/rol",
    response_model=NotificacionEnvioResponse,
    summary="Notificación a un rol",
    responses=_MANUAL_RESPONSES,
)
def send_role(
    data: NotificacionRol,
    db: Annotated[Session, Depends(get_db)],
    actor: SuperAdmin,
) -> NotificacionEnvioResponse:
    logger.info("POST /notificaciones/rol by %s -> %s", actor.user_id, data.role)
    return notification_service.enviar_rol(db, data.role, data)


@router.post(
    "/broadcast",
    response_model=NotificacionEnvioResponse,
    summary="Notificación a todos",
    responses=_MANUAL_RESPONSES,
)
def send_broadcast(
    data: NotificacionBroadcast,
    db: Annotated[Session, Depends(get_db)],
    actor: SuperAdmin,
) -> NotificacionEnvioResponse:
    logger.info("POST /notificaciones/broadcast by %s", actor.user_id)
    return notification_service.enviar_broadcast(db, data)


@router.post(
    "/test",
    response_model=NotificacionEnvioResponse,
    summary="Notificación de prueba",
    responses=_MANUAL_RESPONSES,
)
def send_test(
    db: Annotated[Session, Depends(get_db)],
    actor: SuperAdmin,
    data: Annotated[NotificacionPrueba, Body()] = NotificacionPrueba(),
) -> NotificacionEnvioResponse:
    return notification_service.enviar_prueba(db, actor, data.user_id)


# ---------------------------------------------------------------------------
# Scheduled notifications
# ---------------------------------------------------------------------------


@router.get(
    "/programadas",
    response_model=list[NotificacionProgramadaResponse],
    summary="Listar notificaciones programadas",
)
def list_programadas(
    db: Annotated[Session, Depends(get_db)],
    _actor: SuperAdmin,
    estado: Annotated[
        str | None,
        Query(description="pending, sent, failed o cancelled.", max_length=20),
    ] = None,
) -> list[NotificacionProgramadaResponse]:
    return notification_service.listar_programadas(db, estado)


@router.post(
    "/programadas",
    response_model=NotificacionProgramadaResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Programar notificación",
    responses={422: {"description": "Destino incompatible con el tipo."}},
)
def create_programada(
    data: NotificacionProgramadaCreate,
    db: Annotated[Session, Depends(get_db)],
    actor: SuperAdmin,
) -> NotificacionProgramadaResponse:
    return notification_service.crear_programada(db, actor, data)


@router.post(
    "/programadas/procesar",
    response_model=ProcesamientoResponse,
    summary="Procesar notificaciones programadas vencidas",
    description="Envía todas las notificaciones pendientes cuya fecha ya pasó. Pensado para cron.",
)
def procesar_programadas(
    db: Annotated[Session, Depends(get_db)],
    actor: SuperAdmin,
) -> ProcesamientoResponse:
    logger.info("POST /notificaciones/programadas/procesar by %s", actor.user_id)
    return notification_service.procesar_programadas(db)


@router.delete(
    "/programadas/{programada_id}",
    response_model=NotificacionProgramadaResponse,
    summary="Cancelar notificación programada",
    responses={
        404: {"description": "Notificación programada no encontrada."},
        409: {"description": "La notificación ya no está pendiente."},
    },
)
def cancel_programada(
    programada_id: Annotated[int, Path(description="ID de la notificación.", ge=1)],
    db: Annotated[Session, Depends(get_db)],
    _actor: SuperAdmin,
) -> NotificacionProgramadaResponse:
    return notification_service.cancelar_programada(db, programada_id)

"""
Push subscription router.

Mounts under ``/api/push`` (prefix set in ``main.py``).

Endpoints
---------
GET    /vapid-public-key      — Application server key for ``pushManager.subscribe``.
PUT    /suscripcion           — Register or replace the caller's subscription.
DELETE /suscripcion           — Remove the caller's subscription.
GET    /suscripciones         — List every subscription (admin, superadmin).
DELETE /suscripciones/{id}    — Remove any subscription (admin, superadmin).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from portal.config import get_settings
from portal.database import get_db
from portal.schemas.common import MessageResponse
from portal.schemas.notificacion import (
    SuscripcionCreate,
    SuscripcionResponse,
    VapidPublicKeyResponse,
)
from portal.services import subscription_service
from portal.services.auth_service import Actor, get_current_actor, require_role
from portal.utils.constants import ROL_ADMIN, ROL_SUPERADMIN

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Push"])

Administrador = Annotated[Actor, Depends(require_role(ROL_ADMIN, ROL_SUPERADMIN))]


@router.get(
    "/vapid-public-key",
    response_model=VapidPublicKeyResponse,
    summary="Clave pública VAPID",
)
def get_vapid_public_key() -> VapidPublicKeyResponse:
    return VapidPublicKeyResponse(public_key=get_settings().VAPID_PUBLIC_KEY)


@router.put(
    "/suscripcion",
    response_model=SuscripcionResponse,
    summary="Registrar suscripción push",
    description="Reemplaza cualquier suscripción previa del usuario: solo el último dispositivo recibe notificaciones.",
    responses={409: {"description": "Registro concurrente del mismo usuario."}},
)
def upsert_suscripcion(
    data: SuscripcionCreate,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> SuscripcionResponse:
    return subscription_service.upsert(db, actor.user_id, data)


@router.delete(
    "/suscripcion",
    response_model=MessageResponse,
    summary="Eliminar mi suscripción push",
)
def delete_suscripcion(
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> MessageResponse:
    if subscription_service.delete_own(db, actor.user_id):
        return MessageResponse(message="Suscripción eliminada.")
    return MessageResponse(message="No había una suscripción registrada.")


@router.get(
    "/suscripciones",
    response_model=list[SuscripcionResponse],
    summary="Listar suscripciones (administración)",
)
def list_suscripciones(
    db: Annotated[Session, Depends(get_db)],
    _actor: Administrador,
) -> list[SuscripcionResponse]:
    return subscription_service.list_all(db)


@router.delete(
    "/suscripciones/{subscription_id}",
    response_model=MessageResponse,
    summary="Eliminar una suscripción (administración)",
    responses={404: {"description": "Suscripción no encontrada."}},
)
def delete_suscripcion_admin(
    subscription_id: Annotated[int, Path(description="ID de la suscripción.", ge=1)],
    db: Annotated[Session, Depends(get_db)],
    actor: Administrador,
) -> MessageResponse:
    logger.info("DELETE /push/suscripciones/%d by %s", subscription_id, actor.user_id)
    subscription_service.delete_by_id(db, subscription_id)
    return MessageResponse(message=f"Suscripción {subscription_id} eliminada.")

"""
Requisiciones router.

Mounts under ``/api/requisiciones`` (prefix set in ``main.py``).

Every endpoint requires a valid JWT.  Who may run each action is decided by
``permission_service``; a denied action answers 403 with
``{"detail": {"kind": "Unauthorized", ...}}`` and a lost race answers 409
(``Conflict``).  Notifications are sent in the background after the
response.

Endpoints
---------
POST   /                          — Submit a new requisición.
GET    /                          — List requisiciones (?estado=&eliminadas=).
GET    /{id}                      — Requisición detail.
POST   /{id}/approve              — Approve (pendiente → aprobado).
POST   /{id}/reject               — Reject with justification (pendiente → rechazado).
POST   /{id}/revert               — Back to pendiente (aprobado/rechazado).
POST   /{id}/cancel               — Owner cancels (pendiente → cancelado).
POST   /{id}/licitar              — Compras starts bidding (aprobado → en_licitacion).
POST   /{id}/rechazar-compras     — Compras rejects with justification (aprobado → pendiente).
POST   /{id}/colocar-pedido       — Order placed (en_licitacion → pedido_colocado).
POST   /{id}/autorizar-pedido     — Budget authorises (pedido_colocado → pedido_autorizado).
POST   /{id}/pagar                — Treasury pays (pedido_autorizado → pedido_pagado).
POST   /{id}/eliminar             — Soft-delete a pending requisición.
POST   /{id}/restaurar            — Restore a soft-deleted one (superadmin).
POST   /{id}/reenviar             — Owner edits and resubmits after a rejection.
DELETE /{id}                      — Permanently delete a soft-deleted one (superadmin).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Path, Query, status
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.schemas.common import MessageResponse
from portal.schemas.tramite import (
    RechazoRequest,
    ReenvioRequest,
    RequisicionResponse,
    TramiteCreate,
)
from portal.services import notification_service, workflow_service
from portal.services.auth_service import Actor, get_current_actor
from portal.services.permission_service import Operacion
from portal.services.workflow_service import TransicionResultado
from portal.utils.constants import TIPO_REQUISICION

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Requisiciones"])

IdPath = Annotated[int, Path(description="ID de la requisición.", ge=1)]

_ACTION_RESPONSES = {
    200: {"description": "Transición aplicada."},
    401: {"description": "Token JWT ausente o inválido."},
    403: {"description": "El usuario no puede ejecutar la acción en el estado actual."},
    404: {"description": "Requisición no encontrada."},
    409: {"description": "La requisición fue modificada por otro usuario."},
}


def _responder(
    resultado: TransicionResultado, background_tasks: BackgroundTasks
) -> RequisicionResponse:
    if resultado.evento is not None:
        background_tasks.add_task(notification_service.procesar_evento, resultado.evento)
    return RequisicionResponse.model_validate(resultado.tramite)


def _transicionar(
    db: Session,
    tramite_id: int,
    actor: Actor,
    operacion: Operacion,
    background_tasks: BackgroundTasks,
    justificacion: str | None = None,
) -> RequisicionResponse:
    logger.debug("POST /requisiciones/%d %s by %s", tramite_id, operacion.value, actor.user_id)
    resultado = workflow_service.transition(
        db, TIPO_REQUISICION, tramite_id, actor, operacion, justificacion
    )
    return _responder(resultado, background_tasks)


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@router.post(
    "/",
    response_model=RequisicionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crear requisición",
    description="Registra una requisición en estado pendiente y notifica al autorizador asignado.",
)
def create_requisicion(
    data: TramiteCreate,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    resultado = workflow_service.submit(db, TIPO_REQUISICION, actor, data)
    return _responder(resultado, background_tasks)


@router.get(
    "/",
    response_model=list[RequisicionResponse],
    summary="Listar requisiciones",
    description=(
        "Retorna las requisiciones más recientes primero. Las eliminadas se "
        "excluyen; un superadmin puede listarlas con ``eliminadas=true``."
    ),
)
def list_requisiciones(
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    estado: Annotated[str | None, Query(description="Filtrar por estado.", max_length=30)] = None,
    eliminadas: Annotated[
        bool, Query(description="Solo eliminadas (superadmin).")
    ] = False,
) -> list[RequisicionResponse]:
    return workflow_service.list_tramites(
        db, TIPO_REQUISICION, actor, estado=estado, eliminadas=eliminadas
    )


@router.get(
    "/{tramite_id}",
    response_model=RequisicionResponse,
    summary="Detalle de requisición",
    responses={404: {"description": "Requisición no encontrada."}},
)
def get_requisicion(
    tramite_id: IdPath,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    return workflow_service.get_tramite(db, TIPO_REQUISICION, tramite_id, actor)


# ---------------------------------------------------------------------------
# Authorisation stage
# ---------------------------------------------------------------------------


@router.post(
    "/{tramite_id}/approve",
    response_model=RequisicionResponse,
    summary="Aprobar requisición",
    responses=_ACTION_RESPONSES,
)
def approve(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.APPROVE, background_tasks)


@router.post(
    "/{tramite_id}/reject",
    response_model=RequisicionResponse,
    summary="Rechazar requisición",
    description="Requiere una justificación no vacía; se notifica únicamente al solicitante.",
    responses={**_ACTION_RESPONSES, 422: {"description": "Justificación vacía."}},
)
def reject(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    body: Annotated[RechazoRequest, Body()] = RechazoRequest(),
) -> RequisicionResponse:
    return _transicionar(
        db, tramite_id, actor, Operacion.REJECT, background_tasks, body.justificacion
    )


@router.post(
    "/{tramite_id}/revert",
    response_model=RequisicionResponse,
    summary="Revertir a pendiente",
    responses=_ACTION_RESPONSES,
)
def revert(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.REVERT, background_tasks)


@router.post(
    "/{tramite_id}/cancel",
    response_model=RequisicionResponse,
    summary="Cancelar requisición",
    description="Solo el solicitante sin rol admin, autorizador ni superadmin.",
    responses=_ACTION_RESPONSES,
)
def cancel(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.CANCEL, background_tasks)


# ---------------------------------------------------------------------------
# Procurement pipeline
# ---------------------------------------------------------------------------


@router.post(
    "/{tramite_id}/licitar",
    response_model=RequisicionResponse,
    summary="Pasar a licitación",
    responses=_ACTION_RESPONSES,
)
def advance_to_bidding(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.ADVANCE_TO_BIDDING, background_tasks)


@router.post(
    "/{tramite_id}/rechazar-compras",
    response_model=RequisicionResponse,
    summary="Rechazo de compras antes de licitar",
    description="Devuelve la requisición a pendiente con una justificación obligatoria.",
    responses={**_ACTION_RESPONSES, 422: {"description": "Justificación vacía."}},
)
def reject_before_bidding(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    body: Annotated[RechazoRequest, Body()] = RechazoRequest(),
) -> RequisicionResponse:
    return _transicionar(
        db, tramite_id, actor, Operacion.REJECT_BEFORE_BIDDING, background_tasks,
        body.justificacion,
    )


@router.post(
    "/{tramite_id}/colocar-pedido",
    response_model=RequisicionResponse,
    summary="Colocar pedido",
    responses=_ACTION_RESPONSES,
)
def place_order(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.PLACE_ORDER, background_tasks)


@router.post(
    "/{tramite_id}/autorizar-pedido",
    response_model=RequisicionResponse,
    summary="Autorizar pedido (presupuestos)",
    responses=_ACTION_RESPONSES,
)
def authorize_order(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.AUTHORIZE_ORDER, background_tasks)


@router.post(
    "/{tramite_id}/pagar",
    response_model=RequisicionResponse,
    summary="Marcar como pagada (tesorería)",
    responses=_ACTION_RESPONSES,
)
def mark_paid(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.MARK_PAID, background_tasks)


# ---------------------------------------------------------------------------
# Deletion and resubmission
# ---------------------------------------------------------------------------


@router.post(
    "/{tramite_id}/eliminar",
    response_model=RequisicionResponse,
    summary="Eliminar requisición pendiente",
    description="Eliminación lógica; la requisición deja de aparecer en los listados.",
    responses=_ACTION_RESPONSES,
)
def soft_delete(
    tramite_id: IdPath,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    resultado = workflow_service.soft_delete(db, tramite_id, actor)
    return RequisicionResponse.model_validate(resultado.tramite)


@router.post(
    "/{tramite_id}/restaurar",
    response_model=RequisicionResponse,
    summary="Restaurar requisición eliminada",
    responses=_ACTION_RESPONSES,
)
def restore(
    tramite_id: IdPath,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> RequisicionResponse:
    resultado = workflow_service.restore(db, tramite_id, actor)
    return RequisicionResponse.model_validate(resultado.tramite)


@router.post(
    "/{tramite_id}/reenviar",
    response_model=RequisicionResponse,
    summary="Editar y reenviar",
    description=(
        "El solicitante corrige una requisición devuelta con justificación de "
        "rechazo; la justificación se borra y el estado sigue pendiente."
    ),
    responses=_ACTION_RESPONSES,
)
def resubmit(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    body: Annotated[ReenvioRequest, Body()] = ReenvioRequest(),
) -> RequisicionResponse:
    resultado = workflow_service.resubmit(db, tramite_id, actor, body)
    return _responder(resultado, background_tasks)


@router.delete(
    "/{tramite_id}",
    response_model=MessageResponse,
    summary="Eliminar definitivamente",
    description="Borra de forma permanente una requisición previamente eliminada (superadmin).",
    responses=_ACTION_RESPONSES,
)
def purge(
    tramite_id: IdPath,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> MessageResponse:
    workflow_service.purge(db, tramite_id, actor)
    return MessageResponse(message=f"Requisición {tramite_id} eliminada definitivamente.")

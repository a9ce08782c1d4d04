"""
Reposiciones router.

Mounts under ``/api/reposiciones`` (prefix set in ``main.py``).

Endpoints
---------
POST /               — Submit a new reposición.
GET  /               — List reposiciones (?estado=).
GET  /{id}           — Reposición detail.
POST /{id}/approve   — Approve (pendiente → aprobado).
POST /{id}/reject    — Reject with justification (pendiente → rechazado).
POST /{id}/revert    — Back to pendiente (aprobado/rechazado).
POST /{id}/cancel    — Owner cancels (pendiente → cancelado).
POST /{id}/pagar     — Treasury pays (aprobado → pagado).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Path, Query, status
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.schemas.tramite import RechazoRequest, ReposicionResponse, TramiteCreate
from portal.services import notification_service, workflow_service
from portal.services.auth_service import Actor, get_current_actor
from portal.services.permission_service import Operacion
from portal.utils.constants import TIPO_REPOSICION

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reposiciones"])

IdPath = Annotated[int, Path(description="ID de la reposición.", ge=1)]

_ACTION_RESPONSES = {
    200: {"description": "Transición aplicada."},
    401: {"description": "Token JWT ausente o inválido."},
    403: {"description": "El usuario no puede ejecutar la acción en el estado actual."},
    404: {"description": "Reposición no encontrada."},
    409: {"description": "La reposición fue modificada por otro usuario."},
}


def _transicionar(
    db: Session,
    tramite_id: int,
    actor: Actor,
    operacion: Operacion,
    background_tasks: BackgroundTasks,
    justificacion: str | None = None,
) -> ReposicionResponse:
    logger.debug("POST /reposiciones/%d %s by %s", tramite_id, operacion.value, actor.user_id)
    resultado = workflow_service.transition(
        db, TIPO_REPOSICION, tramite_id, actor, operacion, justificacion
    )
    background_tasks.add_task(notification_service.procesar_evento, resultado.evento)
    return ReposicionResponse.model_validate(resultado.tramite)


@router.post(
    "/",
    response_model=ReposicionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crear reposición",
)
def create_reposicion(
    data: TramiteCreate,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> ReposicionResponse:
    resultado = workflow_service.submit(db, TIPO_REPOSICION, actor, data)
    background_tasks.add_task(notification_service.procesar_evento, resultado.evento)
    return ReposicionResponse.model_validate(resultado.tramite)


@router.get(
    "/",
    response_model=list[ReposicionResponse],
    summary="Listar reposiciones",
)
def list_reposiciones(
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    estado: Annotated[str | None, Query(description="Filtrar por estado.", max_length=30)] = None,
) -> list[ReposicionResponse]:
    return workflow_service.list_tramites(db, TIPO_REPOSICION, actor, estado=estado)


@router.get(
    "/{tramite_id}",
    response_model=ReposicionResponse,
    summary="Detalle de reposición",
    responses={404: {"description": "Reposición no encontrada."}},
)
def get_reposicion(
    tramite_id: IdPath,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> ReposicionResponse:
    return workflow_service.get_tramite(db, TIPO_REPOSICION, tramite_id, actor)


@router.post(
    "/{tramite_id}/approve",
    response_model=ReposicionResponse,
    summary="Aprobar reposición",
    responses=_ACTION_RESPONSES,
)
def approve(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> ReposicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.APPROVE, background_tasks)


@router.post(
    "/{tramite_id}/reject",
    response_model=ReposicionResponse,
    summary="Rechazar reposición",
    responses={**_ACTION_RESPONSES, 422: {"description": "Justificación vacía."}},
)
def reject(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    body: Annotated[RechazoRequest, Body()] = RechazoRequest(),
) -> ReposicionResponse:
    return _transicionar(
        db, tramite_id, actor, Operacion.REJECT, background_tasks, body.justificacion
    )


@router.post(
    "/{tramite_id}/revert",
    response_model=ReposicionResponse,
    summary="Revertir a pendiente",
    responses=_ACTION_RESPONSES,
)
def revert(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> ReposicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.REVERT, background_tasks)


@router.post(
    "/{tramite_id}/cancel",
    response_model=ReposicionResponse,
    summary="Cancelar reposición",
    responses=_ACTION_RESPONSES,
)
def cancel(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> ReposicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.CANCEL, background_tasks)


@router.post(
    "/{tramite_id}/pagar",
    response_model=ReposicionResponse,
    summary="Marcar como pagada (tesorería)",
    responses=_ACTION_RESPONSES,
)
def mark_paid(
    tramite_id: IdPath,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> ReposicionResponse:
    return _transicionar(db, tramite_id, actor, Operacion.MARK_PAID, background_tasks)

"""
Webhooks router.

Mounts under ``/api/webhooks`` (prefix set in ``main.py``).

``POST /tramite-change`` receives committed changes from a database trigger
or another writer and feeds them to the notification pipeline, exactly as
if the transition had been made through this API.  The caller proves
itself with the shared secret in ``X-Webhook-Secret``.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, status

from portal.config import get_settings
from portal.schemas.common import MessageResponse
from portal.schemas.evento import TransitionEvent
from portal.services import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post(
    "/tramite-change",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Recibir cambio de trámite",
    responses={401: {"description": "Secreto del webhook ausente o inválido."}},
)
def tramite_change(
    evento: TransitionEvent,
    background_tasks: BackgroundTasks,
    x_webhook_secret: Annotated[str | None, Header()] = None,
) -> MessageResponse:
    expected = get_settings().WEBHOOK_SECRET
    if not x_webhook_secret or not hmac.compare_digest(
        x_webhook_secret.encode(), expected.encode()
    ):
        logger.warning("webhook: rejected call with invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Secreto del webhook inválido",
        )

    logger.info(
        "webhook: %s on %s id=%s",
        evento.change_type, evento.table, evento.new_record.get("id"),
    )
    background_tasks.add_task(notification_service.procesar_evento, evento)
    return MessageResponse(message="Evento recibido.")

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from portal.models.requisicion import Requisicion
from portal.models.scheduled_notification import ScheduledNotification
from portal.schemas.notificacion import (
    NotificacionBroadcast,
    NotificacionProgramadaCreate,
    NotificacionRol,
    PreferenciasUpdate,
)
from portal.services import notification_service, preference_service, workflow_service
from portal.services.permission_service import Operacion
from tests.conftest import (
    AUTORIZADOR,
    COMPRADOR,
    COMPRADOR_2,
    SOLICITANTE,
    SUPERADMIN,
    TESORERIA,
    FakeSender,
)


def _endpoint(user_id: str) -> str:
    return f"https://push.example/{user_id}"


# ---------------------------------------------------------------------------
# Transition pipeline
# ---------------------------------------------------------------------------


def test_approved_req_0042_notifies_owner_and_compradores(db, actor, subscribe, fake_sender):
    req = Requisicion(
        folio="REQ-0042",
        estado="pendiente",
        solicitado_por=SOLICITANTE,
        autorizador_id=AUTORIZADOR,
    )
    db.add(req)
    db.commit()
    for user_id in (SOLICITANTE, AUTORIZADOR, COMPRADOR, COMPRADOR_2, TESORERIA):
        subscribe(user_id)

    resultado = workflow_service.transition(
        db, "requisiciones", req.id, actor(AUTORIZADOR), Operacion.APPROVE
    )
    result = notification_service.notificar_transicion(db, resultado.evento, fake_sender)

    assert resultado.tramite.estado == "aprobado"
    assert resultado.tramite.autorizado_por == AUTORIZADOR
    assert resultado.tramite.fecha_autorizacion_real is not None
    assert fake_sender.endpoints == {
        _endpoint(SOLICITANTE), _endpoint(COMPRADOR), _endpoint(COMPRADOR_2)
    }
    assert result.sent == 3
    payload = json.loads(fake_sender.calls[0][1])
    assert payload["title"] == "Requisición REQ-0042"
    assert payload["body"] == "Estado: Aprobado"
    assert payload["url"] == "https://portal.test/tramites"
    assert payload["tag"] == f"tramite-{req.id}"


def test_rejection_notifies_only_owner(db, actor, make_requisicion, subscribe, fake_sender):
    req = make_requisicion()
    for user_id in (SOLICITANTE, AUTORIZADOR, COMPRADOR):
        subscribe(user_id)

    resultado = workflow_service.transition(
        db, "requisiciones", req.id, actor(AUTORIZADOR), Operacion.REJECT, "Sin cotización"
    )
    notification_service.notificar_transicion(db, resultado.evento, fake_sender)

    assert fake_sender.endpoints == {_endpoint(SOLICITANTE)}
    assert "Sin cotización" in json.loads(fake_sender.calls[0][1])["body"]


def test_requisicion_opt_out_does_not_silence_reposiciones(
    db, actor, make_requisicion, make_reposicion, subscribe, fake_sender
):
    preference_service.update(db, SOLICITANTE, PreferenciasUpdate(notify_requisiciones=False))
    subscribe(SOLICITANTE)
    req = make_requisicion()
    rep = make_reposicion()

    evento_req = workflow_service.transition(
        db, "requisiciones", req.id, actor(AUTORIZADOR), Operacion.APPROVE
    ).evento
    evento_rep = workflow_service.transition(
        db, "reposiciones", rep.id, actor(AUTORIZADOR), Operacion.APPROVE
    ).evento

    assert notification_service.notificar_transicion(db, evento_req, fake_sender).sent == 0
    assert notification_service.notificar_transicion(db, evento_rep, fake_sender).sent == 1
    assert json.loads(fake_sender.calls[0][1])["title"].startswith("Reposición")


def test_background_entry_point_contains_failures(db, actor, make_requisicion, monkeypatch):
    req = make_requisicion()
    evento = workflow_service.transition(
        db, "requisiciones", req.id, actor(AUTORIZADOR), Operacion.APPROVE
    ).evento

    def _boom(*_args, **_kwargs):
        raise RuntimeError("push service down")

    monkeypatch.setattr(notification_service.push_service, "dispatch", _boom)

    notification_service.procesar_evento(evento)
    notification_service.procesar_evento(None)


# ---------------------------------------------------------------------------
# Manual notifications
# ---------------------------------------------------------------------------


def test_role_notification_bypasses_preferences(db, subscribe, fake_sender):
    preference_service.update(
        db, COMPRADOR, PreferenciasUpdate(notify_requisiciones=False, notify_reposiciones=False)
    )
    subscribe(COMPRADOR)
    subscribe(COMPRADOR_2)
    subscribe(TESORERIA)

    result = notification_service.enviar_rol(
        db, "comprador", NotificacionRol(title="Aviso", message="Cierre", role="comprador"),
        fake_sender,
    )

    assert result.recipients == 2
    assert result.sent == 2
    assert fake_sender.endpoints == {_endpoint(COMPRADOR), _endpoint(COMPRADOR_2)}


def test_broadcast_without_subscriptions_is_404(db):
    with pytest.raises(HTTPException) as exc_info:
        notification_service.enviar_broadcast(db, NotificacionBroadcast(title="Hola", message="Todos"))
    assert exc_info.value.status_code == 404


# ---------------------------------------------------------------------------
# Scheduled notifications
# ---------------------------------------------------------------------------


def _schedule(db, actor, minutes: int, **fields):
    data = NotificacionProgramadaCreate(
        title=fields.pop("title", "Recordatorio"),
        message=fields.pop("message", "Envíe sus reposiciones"),
        scheduled_at=datetime.now(timezone.utc) + timedelta(minutes=minutes),
        **fields,
    )
    return notification_service.crear_programada(db, actor(SUPERADMIN), data)


def test_scheduled_role_requires_target(db, actor):
    with pytest.raises(HTTPException) as exc_info:
        _schedule(db, actor, 5, notification_type="role")
    assert exc_info.value.status_code == 422


def test_process_sends_only_due_notifications(db, actor, subscribe, fake_sender):
    subscribe(COMPRADOR)
    subscribe(COMPRADOR_2)
    due = _schedule(db, actor, -5, notification_type="role", target_role="comprador")
    future = _schedule(db, actor, 60, notification_type="broadcast")

    resumen = notification_service.procesar_programadas(db, sender=fake_sender)

    assert (resumen.processed, resumen.sent, resumen.failed) == (1, 1, 0)
    db.expire_all()
    due = db.get(ScheduledNotification, due.id)
    assert due.status == "sent"
    assert due.recipients_count == 2
    assert due.sent_at is not None
    assert db.get(ScheduledNotification, future.id).status == "pending"


def test_process_marks_failed_when_nobody_is_subscribed(db, actor, fake_sender):
    programada = _schedule(db, actor, -1, notification_type="personal", target_user_id=TESORERIA)

    resumen = notification_service.procesar_programadas(db, sender=fake_sender)

    assert resumen.failed == 1
    db.expire_all()
    programada = db.get(ScheduledNotification, programada.id)
    assert programada.status == "failed"
    assert programada.recipients_count == 0
    assert programada.error_message == f"No hay suscripciones activas para usuario {TESORERIA}"


def test_process_marks_failed_when_every_delivery_fails(db, actor, subscribe):
    subscribe(SOLICITANTE)
    programada = _schedule(db, actor, -1, notification_type="broadcast")

    notification_service.procesar_programadas(db, sender=FakeSender(default=503))

    db.expire_all()
    assert db.get(ScheduledNotification, programada.id).status == "failed"


def test_cancel_only_pending(db, actor, fake_sender):
    programada = _schedule(db, actor, 30, notification_type="broadcast")

    cancelled = notification_service.cancelar_programada(db, programada.id)
    assert cancelled.status == "cancelled"

    with pytest.raises(HTTPException) as exc_info:
        notification_service.cancelar_programada(db, programada.id)
    assert exc_info.value.status_code == 409

    resumen = notification_service.procesar_programadas(
        db, now=datetime.now(timezone.utc) + timedelta(hours=1), sender=fake_sender
    )
    assert resumen.processed == 0

from __future__ import annotations

import pytest

from portal.models.push_subscription import PushSubscription
from portal.services import push_service
from tests.conftest import (
    ADMIN,
    AUTORIZADOR,
    COMPRADOR,
    INACTIVO,
    SOLICITANTE,
    SUPERADMIN,
    FakeSender,
)

NUEVA = {"autorizador_id": AUTORIZADOR, "asunto": "Compra de tóner", "monto": 4500}


@pytest.fixture
def live_push(monkeypatch):
    """Route background deliveries to a fake sender as if VAPID were configured."""
    sender = FakeSender()
    monkeypatch.setattr(push_service, "vapid_configured", lambda: True)
    monkeypatch.setattr(push_service, "send_webpush", sender)
    return sender


def _crear(client, auth_headers, owner=SOLICITANTE, tipo="requisiciones"):
    response = client.post(f"/api/{tipo}/", json=NUEVA, headers=auth_headers(owner))
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/api/health").json()["status"] == "ok"


def test_missing_token_is_401(client):
    assert client.get("/api/requisiciones/").status_code == 401


def test_inactive_user_is_403(client, auth_headers):
    response = client.get("/api/requisiciones/", headers=auth_headers(INACTIVO))
    assert response.status_code == 403


def test_submit_and_approve(client, auth_headers):
    creada = _crear(client, auth_headers)
    assert creada["folio"] == "REQ-0001"
    assert creada["estado"] == "pendiente"

    response = client.post(
        f"/api/requisiciones/{creada['id']}/approve", headers=auth_headers(AUTORIZADOR)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["estado"] == "aprobado"
    assert body["autorizado_por"] == AUTORIZADOR
    assert body["fecha_autorizacion_real"] is not None


def test_unauthorized_action_body(client, auth_headers):
    creada = _crear(client, auth_headers)

    response = client.post(
        f"/api/requisiciones/{creada['id']}/approve", headers=auth_headers(COMPRADOR)
    )

    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "Unauthorized"


def test_admin_owner_cannot_cancel(client, auth_headers):
    creada = _crear(client, auth_headers, owner=ADMIN)

    response = client.post(f"/api/requisiciones/{creada['id']}/cancel", headers=auth_headers(ADMIN))

    assert response.status_code == 403


def test_reject_with_blank_justification_is_422(client, auth_headers):
    creada = _crear(client, auth_headers)

    response = client.post(
        f"/api/requisiciones/{creada['id']}/reject",
        json={"justificacion": "  "},
        headers=auth_headers(AUTORIZADOR),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "ValidationError"


def test_superadmin_out_of_order_transition_is_409(client, auth_headers):
    creada = _crear(client, auth_headers)

    response = client.post(
        f"/api/requisiciones/{creada['id']}/pagar", headers=auth_headers(SUPERADMIN)
    )

    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "Conflict"


def test_unknown_requisicion_is_404(client, auth_headers):
    response = client.post("/api/requisiciones/999/approve", headers=auth_headers(AUTORIZADOR))
    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "NotFound"


def test_soft_delete_restore_and_purge(client, auth_headers):
    creada = _crear(client, auth_headers)
    tramite_id = creada["id"]

    assert client.post(
        f"/api/requisiciones/{tramite_id}/eliminar", headers=auth_headers(SOLICITANTE)
    ).status_code == 200
    assert client.get(
        f"/api/requisiciones/{tramite_id}", headers=auth_headers(SOLICITANTE)
    ).status_code == 404
    eliminadas = client.get(
        "/api/requisiciones/", params={"eliminadas": True}, headers=auth_headers(SUPERADMIN)
    ).json()
    assert [r["id"] for r in eliminadas] == [tramite_id]

    assert client.delete(
        f"/api/requisiciones/{tramite_id}", headers=auth_headers(ADMIN)
    ).status_code == 403
    assert client.delete(
        f"/api/requisiciones/{tramite_id}", headers=auth_headers(SUPERADMIN)
    ).status_code == 200
    assert client.get(
        f"/api/requisiciones/{tramite_id}", headers=auth_headers(SUPERADMIN)
    ).status_code == 404


def test_reposicion_flow(client, auth_headers):
    creada = _crear(client, auth_headers, tipo="reposiciones")
    assert creada["folio"] == "REP-0001"

    client.post(f"/api/reposiciones/{creada['id']}/approve", headers=auth_headers(AUTORIZADOR))
    response = client.post(
        f"/api/reposiciones/{creada['id']}/pagar", headers=auth_headers("u-tesoreria")
    )

    assert response.status_code == 200
    assert response.json()["estado"] == "pagado"


def test_approval_pushes_in_background(client, auth_headers, subscribe, live_push):
    subscribe(SOLICITANTE)
    subscribe(COMPRADOR)
    creada = _crear(client, auth_headers)

    client.post(f"/api/requisiciones/{creada['id']}/approve", headers=auth_headers(AUTORIZADOR))

    assert {f"https://push.example/{u}" for u in (SOLICITANTE, COMPRADOR)} <= live_push.endpoints


def test_preferences_round_trip(client, auth_headers):
    headers = auth_headers(SOLICITANTE)

    inicial = client.get("/api/notificaciones/preferencias", headers=headers).json()
    assert inicial["notify_requisiciones"] is True

    actualizada = client.put(
        "/api/notificaciones/preferencias",
        json={"notify_reposiciones": False},
        headers=headers,
    ).json()
    assert actualizada["notify_requisiciones"] is True
    assert actualizada["notify_reposiciones"] is False


def test_subscription_is_replaced_not_duplicated(client, auth_headers, db):
    headers = auth_headers(SOLICITANTE)
    for endpoint in ("https://push.example/a", "https://push.example/b"):
        response = client.put(
            "/api/push/suscripcion",
            json={"endpoint": endpoint, "keys": {"p256dh": "key", "auth": "secret"}},
            headers=headers,
        )
        assert response.status_code == 200

    rows = db.query(PushSubscription).filter(PushSubscription.user_id == SOLICITANTE).all()
    assert [row.endpoint for row in rows] == ["https://push.example/b"]

    assert client.get("/api/push/suscripciones", headers=headers).status_code == 403
    listado = client.get("/api/push/suscripciones", headers=auth_headers(ADMIN)).json()
    assert len(listado) == 1


def test_vapid_public_key_is_public(client):
    assert client.get("/api/push/vapid-public-key").json() == {"public_key": None}


def test_manual_notifications_require_superadmin(client, auth_headers):
    response = client.post(
        "/api/notificaciones/broadcast",
        json={"title": "Hola", "message": "Todos"},
        headers=auth_headers(ADMIN),
    )
    assert response.status_code == 403


def test_scheduled_notification_lifecycle(client, auth_headers):
    headers = auth_headers(SUPERADMIN)
    creada = client.post(
        "/api/notificaciones/programadas",
        json={
            "title": "Cierre",
            "message": "Envíe sus reposiciones",
            "notification_type": "broadcast",
            "scheduled_at": "2099-01-01T09:00:00Z",
        },
        headers=headers,
    )
    assert creada.status_code == 201
    programada_id = creada.json()["id"]

    listado = client.get("/api/notificaciones/programadas", headers=headers).json()
    assert [n["id"] for n in listado] == [programada_id]

    assert client.delete(
        f"/api/notificaciones/programadas/{programada_id}", headers=headers
    ).json()["status"] == "cancelled"
    assert client.post(
        "/api/notificaciones/programadas/procesar", headers=headers
    ).json()["processed"] == 0


def test_webhook_requires_secret(client):
    evento = {
        "changeType": "update",
        "table": "requisiciones",
        "newRecord": {"id": 1, "folio": "REQ-0001", "estado": "aprobado"},
        "previousRecord": {"id": 1, "folio": "REQ-0001", "estado": "pendiente"},
    }

    assert client.post("/api/webhooks/tramite-change", json=evento).status_code == 401
    response = client.post(
        "/api/webhooks/tramite-change",
        json=evento,
        headers={"X-Webhook-Secret": "test-webhook-secret"},
    )
    assert response.status_code == 202


def test_webhook_non_ascii_secret_is_401(client):
    response = client.post(
        "/api/webhooks/tramite-change",
        json={"changeType": "insert", "table": "requisiciones", "newRecord": {"id": 1}},
        headers={"X-Webhook-Secret": "contraseña".encode("utf-8")},
    )
    assert response.status_code == 401

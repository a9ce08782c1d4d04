from __future__ import annotations

import json

from portal.models.push_subscription import PushSubscription
from portal.schemas.notificacion import PushPayload, SubscriptionKeys, SuscripcionCreate
from portal.services import push_service, subscription_service
from tests.conftest import AUTORIZADOR, COMPRADOR, SOLICITANTE, TESORERIA, FakeSender

PAYLOAD = PushPayload(
    title="Requisición REQ-0001",
    body="Estado: Aprobado",
    url="https://portal.test/tramites",
    tag="tramite-1",
)


def test_gone_success_and_timeout(db, subscribe):
    gone = subscribe(SOLICITANTE)
    subscribe(AUTORIZADOR)
    subscribe(COMPRADOR)
    sender = FakeSender({
        gone.endpoint: 410,
        f"https://push.example/{AUTORIZADOR}": 201,
        f"https://push.example/{COMPRADOR}": TimeoutError("read timed out"),
    })

    result = push_service.dispatch(db, [SOLICITANTE, AUTORIZADOR, COMPRADOR], PAYLOAD, sender)

    assert (result.sent, result.failed, result.expired) == (1, 2, 1)
    remaining = {sub.user_id for sub in db.query(PushSubscription).all()}
    assert remaining == {AUTORIZADOR, COMPRADOR}


def test_other_error_status_keeps_subscription(db, subscribe):
    subscribe(SOLICITANTE)
    result = push_service.dispatch(db, [SOLICITANTE], PAYLOAD, FakeSender(default=500))

    assert (result.sent, result.failed, result.expired) == (0, 1, 0)
    assert db.query(PushSubscription).count() == 1


def test_users_without_subscription_are_skipped(db, subscribe, fake_sender):
    subscribe(SOLICITANTE)

    result = push_service.dispatch(db, [SOLICITANTE, TESORERIA], PAYLOAD, fake_sender)

    assert result.sent == 1
    assert fake_sender.endpoints == {f"https://push.example/{SOLICITANTE}"}


def test_payload_is_sent_as_json(db, subscribe, fake_sender):
    sub = subscribe(SOLICITANTE)

    push_service.dispatch(db, [SOLICITANTE], PAYLOAD, fake_sender)

    info, data = fake_sender.calls[0]
    assert info == {"endpoint": sub.endpoint, "keys": {"p256dh": sub.p256dh, "auth": sub.auth}}
    assert json.loads(data) == {
        "title": "Requisición REQ-0001",
        "body": "Estado: Aprobado",
        "url": "https://portal.test/tramites",
        "tag": "tramite-1",
    }


def test_missing_vapid_keys_counts_everything_as_failed(db, subscribe, monkeypatch):
    subscribe(SOLICITANTE)
    subscribe(AUTORIZADOR)

    def _never_called(*_args):
        raise AssertionError("no request expected without VAPID keys")

    monkeypatch.setattr(push_service, "send_webpush", _never_called)

    result = push_service.dispatch(db, [SOLICITANTE, AUTORIZADOR], PAYLOAD)

    assert (result.sent, result.failed, result.expired) == (0, 2, 0)
    assert db.query(PushSubscription).count() == 2


def test_nobody_subscribed_is_a_no_op(db, fake_sender):
    result = push_service.dispatch(db, [SOLICITANTE], PAYLOAD, fake_sender)
    assert (result.sent, result.failed, result.expired) == (0, 0, 0)
    assert fake_sender.calls == []


def test_resubscription_during_delivery_survives_pruning(db, session_factory, subscribe):
    old_id = subscribe(SOLICITANTE).id
    replacement = SuscripcionCreate(
        endpoint="https://push.example/nuevo",
        keys=SubscriptionKeys(p256dh="key", auth="secret"),
    )

    class ResubscribeThenGone(FakeSender):
        def __call__(self, subscription_info, data):
            super().__call__(subscription_info, data)
            with session_factory() as other:
                subscription_service.upsert(other, SOLICITANTE, replacement)
            return 410

    result = push_service.dispatch(db, [SOLICITANTE], PAYLOAD, ResubscribeThenGone())

    assert (result.sent, result.failed, result.expired) == (0, 1, 1)
    db.expire_all()
    rows = db.query(PushSubscription).filter(PushSubscription.user_id == SOLICITANTE).all()
    assert [row.endpoint for row in rows] == ["https://push.example/nuevo"]
    assert rows[0].id != old_id

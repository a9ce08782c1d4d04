from __future__ import annotations

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from portal.models.push_subscription import PushSubscription
from portal.schemas.notificacion import SubscriptionKeys, SuscripcionCreate
from portal.services import subscription_service
from tests.conftest import SOLICITANTE


def _suscripcion(endpoint: str) -> SuscripcionCreate:
    return SuscripcionCreate(endpoint=endpoint, keys=SubscriptionKeys(p256dh="key", auth="secret"))


def _fail_commits(monkeypatch, db, times: int) -> list[int]:
    """Make the next *times* commits lose a unique-constraint race."""
    real_commit = db.commit
    attempts: list[int] = []

    def _commit():
        attempts.append(1)
        if len(attempts) <= times:
            raise IntegrityError(
                "INSERT INTO push_subscriptions", {}, Exception("UNIQUE constraint failed")
            )
        real_commit()

    monkeypatch.setattr(db, "commit", _commit)
    return attempts


def test_replacement_gets_a_new_row_id(db):
    first = subscription_service.upsert(db, SOLICITANTE, _suscripcion("https://push.example/a"))
    first_id = first.id

    second = subscription_service.upsert(db, SOLICITANTE, _suscripcion("https://push.example/b"))

    assert second.id != first_id
    assert db.query(PushSubscription).count() == 1


def test_concurrent_registration_is_retried_once(db, monkeypatch):
    subscription_service.upsert(db, SOLICITANTE, _suscripcion("https://push.example/a"))
    attempts = _fail_commits(monkeypatch, db, times=1)

    sub = subscription_service.upsert(db, SOLICITANTE, _suscripcion("https://push.example/b"))

    assert len(attempts) == 2
    assert sub.endpoint == "https://push.example/b"
    rows = db.query(PushSubscription).filter(PushSubscription.user_id == SOLICITANTE).all()
    assert [row.endpoint for row in rows] == ["https://push.example/b"]


def test_losing_the_race_twice_is_409(db, monkeypatch):
    subscription_service.upsert(db, SOLICITANTE, _suscripcion("https://push.example/a"))
    _fail_commits(monkeypatch, db, times=2)

    with pytest.raises(HTTPException) as exc_info:
        subscription_service.upsert(db, SOLICITANTE, _suscripcion("https://push.example/b"))

    assert exc_info.value.status_code == 409
    rows = db.query(PushSubscription).filter(PushSubscription.user_id == SOLICITANTE).all()
    assert [row.endpoint for row in rows] == ["https://push.example/a"]

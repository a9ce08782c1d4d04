from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["APP_BASE_URL"] = "https://portal.test"
os.environ.pop("VAPID_PUBLIC_KEY", None)
os.environ.pop("VAPID_PRIVATE_KEY", None)

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import portal.models  # noqa: F401
from portal.database import Base, get_db
from portal.main import app
from portal.models.push_subscription import PushSubscription
from portal.models.usuario_rol import UsuarioRol
from portal.schemas.tramite import TramiteCreate
from portal.services import notification_service, workflow_service
from portal.services.auth_service import Actor, get_roles
from portal.utils.security import create_access_token

SOLICITANTE = "u-solicitante"
AUTORIZADOR = "u-autorizador"
AUTORIZADOR_2 = "u-autorizador-2"
ADMIN = "u-admin"
COMPRADOR = "u-comprador"
COMPRADOR_2 = "u-comprador-2"
PRESUPUESTOS = "u-presupuestos"
TESORERIA = "u-tesoreria"
SUPERADMIN = "u-superadmin"
INACTIVO = "u-inactivo"

ROLE_DIRECTORY = [
    (SOLICITANTE, "solicitador"),
    (AUTORIZADOR, "autorizador"),
    (AUTORIZADOR_2, "autorizador"),
    (ADMIN, "admin"),
    (ADMIN, "solicitador"),
    (COMPRADOR, "comprador"),
    (COMPRADOR_2, "comprador"),
    (PRESUPUESTOS, "presupuestos"),
    (TESORERIA, "tesoreria"),
    (SUPERADMIN, "superadmin"),
    (INACTIVO, "inactivo"),
]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    # Background notification tasks open their own session
    monkeypatch.setattr(notification_service, "SessionLocal", factory)
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    session.add_all([UsuarioRol(user_id=uid, role=role) for uid, role in ROLE_DIRECTORY])
    session.commit()
    yield session
    session.close()


@pytest.fixture
def actor(db):
    def _actor(user_id: str) -> Actor:
        return Actor(user_id=user_id, roles=get_roles(db, user_id))

    return _actor


@pytest.fixture
def make_requisicion(db, actor):
    def _make(owner: str = SOLICITANTE, autorizador: str = AUTORIZADOR, **fields):
        data = TramiteCreate(
            autorizador_id=autorizador,
            asunto=fields.pop("asunto", "Compra de tóner"),
            monto=fields.pop("monto", Decimal("4500.00")),
        )
        resultado = workflow_service.submit(db, "requisiciones", actor(owner), data)
        return resultado.tramite

    return _make


@pytest.fixture
def make_reposicion(db, actor):
    def _make(owner: str = SOLICITANTE, autorizador: str = AUTORIZADOR):
        data = TramiteCreate(autorizador_id=autorizador, asunto="Viáticos", monto=Decimal("800"))
        return workflow_service.submit(db, "reposiciones", actor(owner), data).tramite

    return _make


@pytest.fixture
def subscribe(db):
    def _subscribe(user_id: str) -> PushSubscription:
        sub = PushSubscription(
            user_id=user_id,
            endpoint=f"https://push.example/{user_id}",
            p256dh=f"p256dh-{user_id}",
            auth=f"auth-{user_id}",
        )
        db.add(sub)
        db.commit()
        db.refresh(sub)
        return sub

    return _subscribe


class FakeSender:
    """Records deliveries and answers with a per-endpoint status or error."""

    def __init__(self, responses: dict[str, object] | None = None, default: object = 201):
        self.responses = responses or {}
        self.default = default
        self.calls: list[tuple[dict, str]] = []

    def __call__(self, subscription_info: dict, data: str) -> int:
        self.calls.append((subscription_info, data))
        outcome = self.responses.get(subscription_info["endpoint"], self.default)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def endpoints(self) -> set[str]:
        return {info["endpoint"] for info, _ in self.calls}


@pytest.fixture
def fake_sender():
    return FakeSender()


@pytest.fixture
def client(db, session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id: str) -> dict[str, str]:
        token = create_access_token({"sub": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _headers

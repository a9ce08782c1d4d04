from __future__ import annotations

from datetime import datetime, timezone
from itertools import product

import pytest

from portal.schemas.evento import TramiteSnapshot
from portal.services.auth_service import Actor
from portal.services.permission_service import Operacion, is_allowed, precondition_met
from portal.utils.constants import ESTADOS_REPOSICION, ESTADOS_REQUISICION, ROLES

REQ = "requisiciones"
REP = "reposiciones"

# Who may act, per (tipo, operation): (source estados or None for deleted-only, actor kind)
ALLOWED = {
    (REQ, Operacion.APPROVE): ({"pendiente"}, "approver"),
    (REQ, Operacion.REJECT): ({"pendiente"}, "approver"),
    (REQ, Operacion.REVERT): ({"aprobado", "rechazado"}, "approver"),
    (REQ, Operacion.CANCEL): ({"pendiente"}, "plain_owner"),
    (REQ, Operacion.ADVANCE_TO_BIDDING): ({"aprobado"}, "comprador"),
    (REQ, Operacion.REJECT_BEFORE_BIDDING): ({"aprobado"}, "comprador"),
    (REQ, Operacion.PLACE_ORDER): ({"en_licitacion"}, "comprador"),
    (REQ, Operacion.AUTHORIZE_ORDER): ({"pedido_colocado"}, "presupuestos"),
    (REQ, Operacion.MARK_PAID): ({"pedido_autorizado"}, "tesoreria"),
    (REQ, Operacion.SOFT_DELETE): ({"pendiente"}, "deleting_owner"),
    (REQ, Operacion.RESTORE): (None, "superadmin"),
    (REQ, Operacion.PURGE): (None, "superadmin"),
    (REQ, Operacion.RESUBMIT): ({"pendiente"}, "owner"),
    (REP, Operacion.APPROVE): ({"pendiente"}, "approver"),
    (REP, Operacion.REJECT): ({"pendiente"}, "approver"),
    (REP, Operacion.REVERT): ({"aprobado", "rechazado"}, "approver"),
    (REP, Operacion.CANCEL): ({"pendiente"}, "plain_owner"),
    (REP, Operacion.MARK_PAID): ({"aprobado"}, "tesoreria"),
}

USER = "u-actor"
OTHER = "u-otro"


def _snapshot(tipo, estado, relation, deleted=False, rechazo=None):
    return TramiteSnapshot(
        tipo=tipo,
        id=1,
        folio="REQ-0001" if tipo == REQ else "REP-0001",
        estado=estado,
        solicitado_por=USER if relation == "owner" else OTHER,
        autorizador_id=USER if relation == "assigned" else OTHER,
        justificacion_rechazo=rechazo,
        deleted_at=datetime.now(timezone.utc) if deleted else None,
    )


def _expected(tipo, operacion, estado, deleted, rechazo, role, relation):
    rule = ALLOWED.get((tipo, operacion))
    if rule is None:
        return False
    if role == "superadmin":
        return True
    origen, kind = rule
    if origen is None or deleted or estado not in origen:
        return False
    if operacion is Operacion.RESUBMIT and not rechazo:
        return False
    owner = relation == "owner"
    return {
        "approver": relation == "assigned" or role in ("admin", "autorizador"),
        "plain_owner": owner and role not in ("admin", "autorizador", "superadmin"),
        "deleting_owner": owner and role in ("solicitador", "admin"),
        "owner": owner,
        "comprador": role == "comprador",
        "presupuestos": role == "presupuestos",
        "tesoreria": role == "tesoreria",
        "superadmin": False,
    }[kind]


def _cases():
    for tipo, estados in ((REQ, ESTADOS_REQUISICION), (REP, ESTADOS_REPOSICION)):
        deleted_options = (False, True) if tipo == REQ else (False,)
        for estado, deleted, rechazo, role, relation, operacion in product(
            estados, deleted_options, (None, "Falta cotización"), ROLES,
            ("owner", "assigned", "stranger"), Operacion,
        ):
            yield tipo, operacion, estado, deleted, rechazo, role, relation


def test_every_combination_matches_the_decision_table():
    mismatches = []
    for tipo, operacion, estado, deleted, rechazo, role, relation in _cases():
        actor = Actor(user_id=USER, roles=frozenset({role}))
        tramite = _snapshot(tipo, estado, relation, deleted, rechazo)
        expected = _expected(tipo, operacion, estado, deleted, rechazo, role, relation)
        if is_allowed(actor, tramite, operacion) != expected:
            mismatches.append((tipo, operacion.value, estado, deleted, rechazo, role, relation))
    assert mismatches == []


def test_assigned_autorizador_can_approve_without_any_role():
    actor = Actor(user_id=USER, roles=frozenset({"solicitador"}))
    assert is_allowed(actor, _snapshot(REQ, "pendiente", "assigned"), Operacion.APPROVE)


def test_autorizador_role_can_approve_requisicion_assigned_to_someone_else():
    actor = Actor(user_id=USER, roles=frozenset({"autorizador"}))
    assert is_allowed(actor, _snapshot(REQ, "pendiente", "stranger"), Operacion.APPROVE)


@pytest.mark.parametrize("role", ["admin", "autorizador", "superadmin"])
def test_elevated_owner_cannot_cancel(role):
    actor = Actor(user_id=USER, roles=frozenset({"solicitador", role}))
    allowed = is_allowed(actor, _snapshot(REQ, "pendiente", "owner"), Operacion.CANCEL)
    # superadmin bypasses the actor condition entirely
    assert allowed is (role == "superadmin")


def test_plain_owner_can_cancel_only_while_pending():
    actor = Actor(user_id=USER, roles=frozenset({"solicitador"}))
    assert is_allowed(actor, _snapshot(REQ, "pendiente", "owner"), Operacion.CANCEL)
    assert not is_allowed(actor, _snapshot(REQ, "aprobado", "owner"), Operacion.CANCEL)


def test_soft_delete_is_not_defined_for_reposiciones():
    superadmin = Actor(user_id=USER, roles=frozenset({"superadmin"}))
    tramite = _snapshot(REP, "pendiente", "owner")
    for operacion in (Operacion.SOFT_DELETE, Operacion.RESTORE, Operacion.PURGE,
                      Operacion.ADVANCE_TO_BIDDING):
        assert not is_allowed(superadmin, tramite, operacion)


def test_deleted_requisicion_only_accepts_restore_and_purge():
    admin = Actor(user_id=USER, roles=frozenset({"admin"}))
    tramite = _snapshot(REQ, "pendiente", "owner", deleted=True)
    assert not is_allowed(admin, tramite, Operacion.APPROVE)
    assert not is_allowed(admin, tramite, Operacion.RESTORE)
    assert precondition_met(tramite, Operacion.RESTORE)
    assert not precondition_met(tramite, Operacion.APPROVE)


def test_resubmit_requires_a_rejection_reason():
    owner = Actor(user_id=USER, roles=frozenset({"solicitador"}))
    assert not is_allowed(owner, _snapshot(REQ, "pendiente", "owner"), Operacion.RESUBMIT)
    assert not is_allowed(
        owner, _snapshot(REQ, "pendiente", "owner", rechazo="   "), Operacion.RESUBMIT
    )
    assert is_allowed(
        owner, _snapshot(REQ, "pendiente", "owner", rechazo="Sin cotización"), Operacion.RESUBMIT
    )


def test_inactive_user_is_denied_everything():
    actor = Actor(user_id=USER, roles=frozenset({"inactivo"}))
    tramite = _snapshot(REQ, "pendiente", "stranger")
    assert not any(is_allowed(actor, tramite, operacion) for operacion in Operacion)

"""
Permission table for trámite operations.

``is_allowed`` is a pure decision over (actor roles, record ownership,
record state) and never touches the database, so it can be evaluated for
any snapshot in isolation.

Rules
-----
Superadmin is allowed every operation defined for the trámite type.
Everyone else needs both the state precondition and the actor condition:

==========================  ========================  =================================
Operation                   Source estado             Actor
==========================  ========================  =================================
approve / reject            pendiente                 assigned autorizador, admin, autorizador
revert                      aprobado, rechazado       assigned autorizador, admin, autorizador
cancel                      pendiente                 owner without admin/autorizador/superadmin
advance_to_bidding          aprobado                  comprador
reject_before_bidding       aprobado                  comprador
place_order                 en_licitacion             comprador
authorize_order             pedido_colocado           presupuestos
mark_paid (requisición)     pedido_autorizado         tesoreria
mark_paid (reposición)      aprobado                  tesoreria
soft_delete                 pendiente, not deleted    owner holding solicitador or admin
restore / purge             deleted                   superadmin only
resubmit                    pendiente + rejection     owner
==========================  ========================  =================================

Soft-deleted records only accept restore and purge.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import NamedTuple

from portal.schemas.evento import TramiteSnapshot
from portal.services.auth_service import Actor
from portal.utils.constants import (
    ESTADO_APROBADO,
    ESTADO_EN_LICITACION,
    ESTADO_PEDIDO_AUTORIZADO,
    ESTADO_PEDIDO_COLOCADO,
    ESTADO_PENDIENTE,
    ESTADO_RECHAZADO,
    ROL_COMPRADOR,
    ROL_PRESUPUESTOS,
    ROL_TESORERIA,
    ROLES_APROBADORES,
    ROLES_ELEVADOS,
    ROLES_ELIMINACION,
    TIPO_REPOSICION,
    TIPO_REQUISICION,
)


class Operacion(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REVERT = "revert"
    CANCEL = "cancel"
    ADVANCE_TO_BIDDING = "advance_to_bidding"
    REJECT_BEFORE_BIDDING = "reject_before_bidding"
    PLACE_ORDER = "place_order"
    AUTHORIZE_ORDER = "authorize_order"
    MARK_PAID = "mark_paid"
    SOFT_DELETE = "soft_delete"
    RESTORE = "restore"
    RESUBMIT = "resubmit"
    PURGE = "purge"


class Regla(NamedTuple):
    """Precondition and actor condition for one operation.

    ``origen`` is None for operations that apply to deleted records
    regardless of their estado.
    """

    origen: frozenset[str] | None
    actor: Callable[[Actor, TramiteSnapshot], bool]


# ---------------------------------------------------------------------------
# Actor conditions
# ---------------------------------------------------------------------------


def _is_owner(actor: Actor, tramite: TramiteSnapshot) -> bool:
    return tramite.solicitado_por is not None and actor.user_id == tramite.solicitado_por


def _is_approver(actor: Actor, tramite: TramiteSnapshot) -> bool:
    is_assigned = (
        tramite.autorizador_id is not None and actor.user_id == tramite.autorizador_id
    )
    return is_assigned or actor.has_role(*ROLES_APROBADORES)


def _is_plain_owner(actor: Actor, tramite: TramiteSnapshot) -> bool:
    return _is_owner(actor, tramite) and not actor.has_role(*ROLES_ELEVADOS)


def _is_deleting_owner(actor: Actor, tramite: TramiteSnapshot) -> bool:
    return _is_owner(actor, tramite) and actor.has_role(*ROLES_ELIMINACION)


def _has_role(*roles: str) -> Callable[[Actor, TramiteSnapshot], bool]:
    def _check(actor: Actor, _tramite: TramiteSnapshot) -> bool:
        return actor.has_role(*roles)

    return _check


def _superadmin_only(_actor: Actor, _tramite: TramiteSnapshot) -> bool:
    return False


# ---------------------------------------------------------------------------
# Decision table
# ---------------------------------------------------------------------------

_PENDIENTE = frozenset({ESTADO_PENDIENTE})
_DECIDIDO = frozenset({ESTADO_APROBADO, ESTADO_RECHAZADO})

REGLAS: dict[tuple[str, Operacion], Regla] = {
    # Requisiciones
    (TIPO_REQUISICION, Operacion.APPROVE): Regla(_PENDIENTE, _is_approver),
    (TIPO_REQUISICION, Operacion.REJECT): Regla(_PENDIENTE, _is_approver),
    (TIPO_REQUISICION, Operacion.REVERT): Regla(_DECIDIDO, _is_approver),
    (TIPO_REQUISICION, Operacion.CANCEL): Regla(_PENDIENTE, _is_plain_owner),
    (TIPO_REQUISICION, Operacion.ADVANCE_TO_BIDDING): Regla(
        frozenset({ESTADO_APROBADO}), _has_role(ROL_COMPRADOR)
    ),
    (TIPO_REQUISICION, Operacion.REJECT_BEFORE_BIDDING): Regla(
        frozenset({ESTADO_APROBADO}), _has_role(ROL_COMPRADOR)
    ),
    (TIPO_REQUISICION, Operacion.PLACE_ORDER): Regla(
        frozenset({ESTADO_EN_LICITACION}), _has_role(ROL_COMPRADOR)
    ),
    (TIPO_REQUISICION, Operacion.AUTHORIZE_ORDER): Regla(
        frozenset({ESTADO_PEDIDO_COLOCADO}), _has_role(ROL_PRESUPUESTOS)
    ),
    (TIPO_REQUISICION, Operacion.MARK_PAID): Regla(
        frozenset({ESTADO_PEDIDO_AUTORIZADO}), _has_role(ROL_TESORERIA)
    ),
    (TIPO_REQUISICION, Operacion.SOFT_DELETE): Regla(_PENDIENTE, _is_deleting_owner),
    (TIPO_REQUISICION, Operacion.RESTORE): Regla(None, _superadmin_only),
    (TIPO_REQUISICION, Operacion.PURGE): Regla(None, _superadmin_only),
    (TIPO_REQUISICION, Operacion.RESUBMIT): Regla(_PENDIENTE, _is_owner),
    # Reposiciones
    (TIPO_REPOSICION, Operacion.APPROVE): Regla(_PENDIENTE, _is_approver),
    (TIPO_REPOSICION, Operacion.REJECT): Regla(_PENDIENTE, _is_approver),
    (TIPO_REPOSICION, Operacion.REVERT): Regla(_DECIDIDO, _is_approver),
    (TIPO_REPOSICION, Operacion.CANCEL): Regla(_PENDIENTE, _is_plain_owner),
    (TIPO_REPOSICION, Operacion.MARK_PAID): Regla(
        frozenset({ESTADO_APROBADO}), _has_role(ROL_TESORERIA)
    ),
}


def get_regla(tipo: str, operacion: Operacion) -> Regla | None:
    return REGLAS.get((tipo, operacion))


def precondition_met(tramite: TramiteSnapshot, operacion: Operacion) -> bool:
    """Return True when the record's state admits *operacion*.

    Independent of who is asking; used by the workflow service to keep
    superadmin inside the state machine.
    """
    regla = get_regla(tramite.tipo, operacion)
    if regla is None:
        return False
    if regla.origen is None:
        return tramite.deleted_at is not None
    if tramite.deleted_at is not None:
        return False
    if tramite.estado not in regla.origen:
        return False
    if operacion is Operacion.RESUBMIT:
        return bool((tramite.justificacion_rechazo or "").strip())
    return True


def is_allowed(actor: Actor, tramite: TramiteSnapshot, operacion: Operacion) -> bool:
    """Decide whether *actor* may perform *operacion* on *tramite*.

    Args:
        actor: Acting user and role set.
        tramite: Snapshot of the target record.
        operacion: Requested operation.

    Returns:
        ``True`` if allowed.  Operations not defined for the trámite type
        (e.g. soft-delete on a reposición) are denied to everyone.
    """
    regla = get_regla(tramite.tipo, operacion)
    if regla is None:
        return False
    if actor.is_superadmin:
        return True
    return precondition_met(tramite, operacion) and regla.actor(actor, tramite)

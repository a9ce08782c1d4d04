"""
Notification target resolution for trámite transitions.

Pure functions: given the snapshots before and after a committed change,
decide who should hear about it and what the push says.  Role names are
returned unexpanded; ``preference_service`` turns them into user ids.
"""

from __future__ import annotations

from typing import NamedTuple

from portal.schemas.evento import TramiteSnapshot
from portal.schemas.notificacion import PushPayload
from portal.utils.constants import (
    ESTADO_APROBADO,
    ESTADO_CANCELADO,
    ESTADO_EN_LICITACION,
    ESTADO_LABELS,
    ESTADO_PAGADO,
    ESTADO_PEDIDO_AUTORIZADO,
    ESTADO_PEDIDO_COLOCADO,
    ESTADO_PEDIDO_PAGADO,
    ESTADO_PENDIENTE,
    ESTADO_RECHAZADO,
    ROL_COMPRADOR,
    ROL_PRESUPUESTOS,
    ROL_TESORERIA,
    TIPO_LABELS,
    TIPO_REPOSICION,
    TIPO_REQUISICION,
)

_AUTORIZADOR = "autorizador_id"
_SOLICITANTE = "solicitado_por"


class Destino(NamedTuple):
    """Who is notified when a record reaches a given estado."""

    campo: str
    roles: tuple[str, ...] = ()


DESTINOS: dict[str, dict[str, Destino]] = {
    TIPO_REQUISICION: {
        ESTADO_PENDIENTE: Destino(_AUTORIZADOR),
        ESTADO_APROBADO: Destino(_SOLICITANTE, (ROL_COMPRADOR,)),
        ESTADO_RECHAZADO: Destino(_SOLICITANTE),
        ESTADO_EN_LICITACION: Destino(_SOLICITANTE),
        ESTADO_PEDIDO_COLOCADO: Destino(_SOLICITANTE, (ROL_PRESUPUESTOS,)),
        ESTADO_PEDIDO_AUTORIZADO: Destino(_SOLICITANTE, (ROL_TESORERIA,)),
        ESTADO_PEDIDO_PAGADO: Destino(_SOLICITANTE),
        ESTADO_CANCELADO: Destino(_AUTORIZADOR),
    },
    TIPO_REPOSICION: {
        ESTADO_PENDIENTE: Destino(_AUTORIZADOR),
        ESTADO_APROBADO: Destino(_SOLICITANTE),
        ESTADO_RECHAZADO: Destino(_SOLICITANTE),
        ESTADO_PAGADO: Destino(_SOLICITANTE),
    },
}


class NotificationTargets(NamedTuple):
    """Resolved audience for one transition.

    Attributes:
        user_ids: Directly addressed users.
        roles: Roles whose members are also notified.
        rechazo: True when the change is a rejection with a fresh reason.
    """

    user_ids: frozenset[str]
    roles: frozenset[str]
    rechazo: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.user_ids and not self.roles


NO_TARGETS = NotificationTargets(frozenset(), frozenset())


def _has_text(value: str | None) -> bool:
    return bool((value or "").strip())


def is_new_rejection(anterior: TramiteSnapshot | None, nuevo: TramiteSnapshot) -> bool:
    """True when ``justificacion_rechazo`` went from empty to non-empty."""
    before = anterior.justificacion_rechazo if anterior is not None else None
    return not _has_text(before) and _has_text(nuevo.justificacion_rechazo)


def resolve_targets(
    anterior: TramiteSnapshot | None, nuevo: TramiteSnapshot
) -> NotificationTargets:
    """Decide who is notified about the change from *anterior* to *nuevo*.

    Args:
        anterior: Snapshot before the change (None for a new submission).
        nuevo: Snapshot after the change.

    Returns:
        The targets; ``NO_TARGETS`` when nothing should be sent.
    """
    if is_new_rejection(anterior, nuevo):
        owner = frozenset({nuevo.solicitado_por}) if nuevo.solicitado_por else frozenset()
        return NotificationTargets(owner, frozenset(), rechazo=True)

    estado_anterior = anterior.estado if anterior is not None else None
    if estado_anterior == nuevo.estado:
        return NO_TARGETS

    destino = DESTINOS.get(nuevo.tipo, {}).get(nuevo.estado or "")
    if destino is None:
        return NO_TARGETS

    direct = getattr(nuevo, destino.campo)
    user_ids = frozenset({direct}) if direct else frozenset()
    return NotificationTargets(user_ids, frozenset(destino.roles))


def build_payload(
    nuevo: TramiteSnapshot, targets: NotificationTargets, base_url: str
) -> PushPayload:
    """Build the push content for a resolved transition.

    ``tag`` is stable per record so clients collapse repeated pushes.
    """
    tipo_label = TIPO_LABELS.get(nuevo.tipo, nuevo.tipo)
    if targets.rechazo:
        body = f"Rechazado. Motivo: {(nuevo.justificacion_rechazo or '').strip()}"
    else:
        estado_label = ESTADO_LABELS.get(nuevo.estado or "", nuevo.estado or "")
        body = f"Estado: {estado_label}"

    return PushPayload(
        title=f"{tipo_label} {nuevo.folio}",
        body=body,
        url=f"{base_url.rstrip('/')}/tramites",
        tag=f"tramite-{nuevo.id}",
    )

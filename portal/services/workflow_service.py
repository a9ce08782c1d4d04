"""
Trámite workflow — service layer.

Every state change on a requisición or reposición goes through this module.
Each public operation receives an explicit ``Actor`` and follows the same
sequence:

1. Load the record (missing or soft-deleted → ``NotFoundError``).
2. Ask ``permission_service.is_allowed`` (denied → ``UnauthorizedError``).
3. Check the justification when the operation needs one
   (blank → ``ValidationError``).
4. Check the state precondition (only reachable by superadmin, whom the
   permission table allows unconditionally → ``ConflictError``).
5. Issue one ``UPDATE ... WHERE id = :id AND estado = :expected`` with the
   new estado, the stage actor/timestamp pair and justification fields.
   Zero affected rows means someone else moved the record first
   (``ConflictError``); the caller must reload, never retry blindly.
6. Commit and return the refreshed record plus a ``TransitionEvent``.

The caller schedules the event for the notification pipeline; nothing in
this module waits on delivery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, NamedTuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.models.folio_counter import FolioCounter
from portal.models.reposicion import Reposicion
from portal.models.requisicion import Requisicion
from portal.schemas.evento import TramiteSnapshot, TransitionEvent
from portal.schemas.tramite import ReenvioRequest, TramiteCreate
from portal.services.auth_service import Actor
from portal.services.permission_service import Operacion, is_allowed, precondition_met
from portal.utils.constants import (
    ESTADO_APROBADO,
    ESTADO_CANCELADO,
    ESTADO_EN_LICITACION,
    ESTADO_PAGADO,
    ESTADO_PEDIDO_AUTORIZADO,
    ESTADO_PEDIDO_COLOCADO,
    ESTADO_PEDIDO_PAGADO,
    ESTADO_PENDIENTE,
    ESTADO_RECHAZADO,
    FOLIO_PREFIJOS,
    TIPO_LABELS,
    TIPO_REPOSICION,
    TIPO_REQUISICION,
)
from portal.utils.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MODELOS: dict[str, type] = {
    TIPO_REQUISICION: Requisicion,
    TIPO_REPOSICION: Reposicion,
}


class Transicion(NamedTuple):
    """Effect of an estado-changing operation.

    ``etapa`` names the (actor column, timestamp column) pair written when
    the destination stage is reached.
    """

    destino: str
    etapa: tuple[str, str] | None = None
    requiere_justificacion: bool = False


TRANSICIONES: dict[tuple[str, Operacion], Transicion] = {
    (TIPO_REQUISICION, Operacion.APPROVE): Transicion(
        ESTADO_APROBADO, ("autorizado_por", "fecha_autorizacion_real")
    ),
    (TIPO_REQUISICION, Operacion.REJECT): Transicion(
        ESTADO_RECHAZADO, requiere_justificacion=True
    ),
    (TIPO_REQUISICION, Operacion.REVERT): Transicion(ESTADO_PENDIENTE),
    (TIPO_REQUISICION, Operacion.CANCEL): Transicion(ESTADO_CANCELADO),
    (TIPO_REQUISICION, Operacion.ADVANCE_TO_BIDDING): Transicion(
        ESTADO_EN_LICITACION, ("licitado_por", "fecha_licitacion")
    ),
    (TIPO_REQUISICION, Operacion.REJECT_BEFORE_BIDDING): Transicion(
        ESTADO_PENDIENTE, requiere_justificacion=True
    ),
    (TIPO_REQUISICION, Operacion.PLACE_ORDER): Transicion(
        ESTADO_PEDIDO_COLOCADO, ("pedido_colocado_por", "fecha_pedido_colocado")
    ),
    (TIPO_REQUISICION, Operacion.AUTHORIZE_ORDER): Transicion(
        ESTADO_PEDIDO_AUTORIZADO, ("pedido_autorizado_por", "fecha_pedido_autorizado")
    ),
    (TIPO_REQUISICION, Operacion.MARK_PAID): Transicion(
        ESTADO_PEDIDO_PAGADO, ("pagado_por", "fecha_pago")
    ),
    (TIPO_REPOSICION, Operacion.APPROVE): Transicion(
        ESTADO_APROBADO, ("autorizado_por", "fecha_autorizacion")
    ),
    (TIPO_REPOSICION, Operacion.REJECT): Transicion(
        ESTADO_RECHAZADO, requiere_justificacion=True
    ),
    (TIPO_REPOSICION, Operacion.REVERT): Transicion(ESTADO_PENDIENTE),
    (TIPO_REPOSICION, Operacion.CANCEL): Transicion(ESTADO_CANCELADO),
    (TIPO_REPOSICION, Operacion.MARK_PAID): Transicion(
        ESTADO_PAGADO, ("pagado_por", "fecha_pago")
    ),
}


@dataclass
class TransicionResultado:
    """Committed record plus the event describing the change."""

    tramite: Any
    evento: TransitionEvent | None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _label(tipo: str) -> str:
    return TIPO_LABELS.get(tipo, tipo)


def _event_dict(snapshot: TramiteSnapshot) -> dict[str, Any]:
    return snapshot.model_dump(mode="json", exclude={"tipo"})


def _ultimo_folio_existente(db: Session, model: type, prefijo: str) -> int:
    """Highest folio number already stored under *prefijo* (0 when none)."""
    ultimo = 0
    for (folio,) in db.query(model.folio).filter(model.folio.like(f"{prefijo}-%")):
        sufijo = folio.rsplit("-", 1)[1]
        if sufijo.isdigit():
            ultimo = max(ultimo, int(sufijo))
    return ultimo


def _lock_counter(db: Session, prefijo: str) -> FolioCounter | None:
    return (
        db.query(FolioCounter)
        .filter(FolioCounter.prefijo == prefijo)
        .with_for_update()
        .first()
    )


def _generate_folio(db: Session, tipo: str) -> str:
    """Reserve the next folio for *tipo*, e.g. ``REQ-0001``.

    The number comes from the ``folio_counters`` row for the prefix: it is
    read with ``SELECT ... FOR UPDATE`` and incremented in place with
    ``ultimo = ultimo + 1``, so concurrent submissions serialize on the row
    lock. The increment is only visible once the caller commits. On first
    use the counter starts from the highest folio already stored.

    Raises:
        ConflictError: If the counter row cannot be created or read.
    """
    model = MODELOS[tipo]
    prefijo = FOLIO_PREFIJOS[tipo]

    if _lock_counter(db, prefijo) is None:
        db.add(
            FolioCounter(prefijo=prefijo, ultimo=_ultimo_folio_existente(db, model, prefijo))
        )
        try:
            db.flush()
        except IntegrityError:
            # Another submission created the counter first.
            db.rollback()
            logger.debug("folio counter race on prefix=%s, re-reading", prefijo)
            if _lock_counter(db, prefijo) is None:
                raise ConflictError(
                    f"No se pudo reservar un folio {prefijo}. Intente nuevamente."
                ) from None

    db.query(FolioCounter).filter(FolioCounter.prefijo == prefijo).update(
        {FolioCounter.ultimo: FolioCounter.ultimo + 1}, synchronize_session=False
    )
    ultimo = (
        db.query(FolioCounter.ultimo).filter(FolioCounter.prefijo == prefijo).scalar()
    )
    return f"{prefijo}-{ultimo:04d}"


def _get_record(db: Session, tipo: str, tramite_id: int) -> Any:
    if tipo not in MODELOS:
        raise NotFoundError(f"Tipo de trámite '{tipo}' desconocido.")
    model = MODELOS[tipo]
    record = db.query(model).filter(model.id == tramite_id).first()
    if record is None:
        raise NotFoundError(f"{_label(tipo)} con id={tramite_id} no encontrada.")
    return record


def _require_justificacion(justificacion: str | None) -> str:
    texto = (justificacion or "").strip()
    if not texto:
        raise ValidationError("Se requiere una justificación para rechazar el trámite.")
    return texto


def _authorize(actor: Actor, anterior: TramiteSnapshot, operacion: Operacion) -> None:
    if not is_allowed(actor, anterior, operacion):
        logger.info(
            "workflow: denied op=%s tipo=%s id=%s estado=%s actor=%s roles=%s",
            operacion.value, anterior.tipo, anterior.id, anterior.estado,
            actor.user_id, sorted(actor.roles),
        )
        raise UnauthorizedError(
            f"No tiene permiso para '{operacion.value}' sobre {anterior.folio} "
            f"(estado '{anterior.estado}')."
        )


def _check_precondition(anterior: TramiteSnapshot, operacion: Operacion) -> None:
    if not precondition_met(anterior, operacion):
        raise ConflictError(
            f"El estado actual de {anterior.folio} ('{anterior.estado}') no admite "
            f"la operación '{operacion.value}'."
        )


def _compare_and_set(
    db: Session,
    anterior: TramiteSnapshot,
    values: dict[str, Any],
    *,
    eliminado: bool = False,
    con_rechazo: bool = False,
) -> Any:
    """Apply *values* only if the row still matches *anterior*.

    Args:
        db: Active SQLAlchemy session.
        anterior: Snapshot the caller's decision was based on.
        values: Columns to write.
        eliminado: Expect the row to be soft-deleted (restore).
        con_rechazo: Expect a non-empty ``justificacion_rechazo`` (resubmit).

    Returns:
        The refreshed ORM instance.

    Raises:
        ConflictError: If another transaction changed the row first.
    """
    model = MODELOS[anterior.tipo]
    query = db.query(model).filter(
        model.id == anterior.id,
        model.estado == anterior.estado,
    )
    if hasattr(model, "deleted_at"):
        if eliminado:
            query = query.filter(model.deleted_at.isnot(None))
        else:
            query = query.filter(model.deleted_at.is_(None))
    if con_rechazo:
        query = query.filter(
            model.justificacion_rechazo.isnot(None),
            model.justificacion_rechazo != "",
        )

    values = {**values, "updated_at": _utcnow()}
    updated = query.update(values, synchronize_session=False)
    if updated != 1:
        db.rollback()
        logger.info(
            "workflow: CAS conflict tipo=%s id=%s expected estado=%s",
            anterior.tipo, anterior.id, anterior.estado,
        )
        raise ConflictError(
            f"{_label(anterior.tipo)} {anterior.folio} fue modificada por otro usuario. "
            f"Recargue el trámite antes de continuar."
        )

    db.commit()
    record = db.query(model).filter(model.id == anterior.id).first()
    db.refresh(record)
    return record


def _resultado(anterior: TramiteSnapshot, record: Any) -> TransicionResultado:
    nuevo = TramiteSnapshot.from_record(anterior.tipo, record)
    evento = TransitionEvent(
        change_type="update",
        table=anterior.tipo,
        new_record=_event_dict(nuevo),
        previous_record=_event_dict(anterior),
    )
    return TransicionResultado(tramite=record, evento=evento)


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------


def load_snapshot(
    db: Session, tipo: str, tramite_id: int, operacion: Operacion | None = None
) -> TramiteSnapshot:
    """Read a record and return its snapshot.

    Soft-deleted records are reported as missing unless *operacion* is one
    of the operations that target deleted records (restore, purge).

    Raises:
        NotFoundError: If the record does not exist or is hidden.
    """
    record = _get_record(db, tipo, tramite_id)
    snapshot = TramiteSnapshot.from_record(tipo, record)
    if snapshot.deleted_at is not None and operacion not in (Operacion.RESTORE, Operacion.PURGE):
        raise NotFoundError(f"{_label(tipo)} con id={tramite_id} no encontrada.")
    return snapshot


def get_tramite(db: Session, tipo: str, tramite_id: int, actor: Actor) -> Any:
    """Return one record; soft-deleted ones are visible to superadmin only."""
    record = _get_record(db, tipo, tramite_id)
    if getattr(record, "deleted_at", None) is not None and not actor.is_superadmin:
        raise NotFoundError(f"{_label(tipo)} con id={tramite_id} no encontrada.")
    return record


def list_tramites(
    db: Session,
    tipo: str,
    actor: Actor,
    *,
    estado: str | None = None,
    eliminadas: bool = False,
) -> list[Any]:
    """List records newest first, hiding soft-deleted ones.

    ``eliminadas=True`` lists only soft-deleted requisiciones and is honoured
    for superadmin only.
    """
    model = MODELOS[tipo]
    query = db.query(model)
    if hasattr(model, "deleted_at"):
        if eliminadas and actor.is_superadmin:
            query = query.filter(model.deleted_at.isnot(None))
        else:
            query = query.filter(model.deleted_at.is_(None))
    if estado is not None:
        query = query.filter(model.estado == estado)
    rows = query.order_by(model.created_at.desc(), model.id.desc()).all()
    logger.debug("list_tramites: tipo=%s estado=%s rows=%d", tipo, estado, len(rows))
    return rows


def submit(db: Session, tipo: str, actor: Actor, data: TramiteCreate) -> TransicionResultado:
    """Create a new trámite in ``pendiente`` owned by *actor*."""
    model = MODELOS[tipo]
    folio = _generate_folio(db, tipo)
    record = model(
        folio=folio,
        estado=ESTADO_PENDIENTE,
        solicitado_por=actor.user_id,
        autorizador_id=data.autorizador_id,
        asunto=data.asunto,
        justificacion=data.justificacion,
        monto=data.monto,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("submit: folio %s already taken (tipo=%s)", folio, tipo)
        raise ConflictError(
            f"El folio {folio} ya fue asignado. Intente nuevamente."
        ) from None
    db.refresh(record)

    logger.info(
        "submit: tipo=%s id=%d folio=%s solicitado_por=%s autorizador_id=%s",
        tipo, record.id, record.folio, record.solicitado_por, record.autorizador_id,
    )
    nuevo = TramiteSnapshot.from_record(tipo, record)
    evento = TransitionEvent(change_type="insert", table=tipo, new_record=_event_dict(nuevo))
    return TransicionResultado(tramite=record, evento=evento)


def execute(
    db: Session,
    anterior: TramiteSnapshot,
    actor: Actor,
    operacion: Operacion,
    justificacion: str | None = None,
) -> TransicionResultado:
    """Apply an estado-changing operation against a previously read snapshot.

    Args:
        db: Active SQLAlchemy session.
        anterior: Snapshot the decision is based on.
        actor: Acting user.
        operacion: One of the operations in ``TRANSICIONES``.
        justificacion: Rejection reason for reject operations.

    Raises:
        UnauthorizedError: If the permission table denies the operation.
        ValidationError: If a required justification is missing or blank.
        ConflictError: If the state no longer admits the operation.
    """
    transicion = TRANSICIONES.get((anterior.tipo, operacion))
    _authorize(actor, anterior, operacion)
    if transicion is None:
        raise ConflictError(
            f"La operación '{operacion.value}' no aplica a {_label(anterior.tipo)}."
        )

    values: dict[str, Any] = {"estado": transicion.destino}
    if transicion.requiere_justificacion:
        values["justificacion_rechazo"] = _require_justificacion(justificacion)
    _check_precondition(anterior, operacion)

    if transicion.etapa is not None:
        actor_column, fecha_column = transicion.etapa
        values[actor_column] = actor.user_id
        values[fecha_column] = _utcnow()

    record = _compare_and_set(db, anterior, values)
    logger.info(
        "workflow: %s tipo=%s id=%s folio=%s %s -> %s actor=%s",
        operacion.value, anterior.tipo, anterior.id, anterior.folio,
        anterior.estado, record.estado, actor.user_id,
    )
    return _resultado(anterior, record)


def transition(
    db: Session,
    tipo: str,
    tramite_id: int,
    actor: Actor,
    operacion: Operacion,
    justificacion: str | None = None,
) -> TransicionResultado:
    """Load a record and apply *operacion* to it (see ``execute``)."""
    anterior = load_snapshot(db, tipo, tramite_id, operacion)
    return execute(db, anterior, actor, operacion, justificacion)


def soft_delete(db: Session, tramite_id: int, actor: Actor) -> TransicionResultado:
    """Hide a pending requisición by setting ``deleted_at``."""
    anterior = load_snapshot(db, TIPO_REQUISICION, tramite_id, Operacion.SOFT_DELETE)
    _authorize(actor, anterior, Operacion.SOFT_DELETE)
    _check_precondition(anterior, Operacion.SOFT_DELETE)

    record = _compare_and_set(db, anterior, {"deleted_at": _utcnow()})
    logger.info("soft_delete: id=%s folio=%s actor=%s", record.id, record.folio, actor.user_id)
    return TransicionResultado(tramite=record, evento=None)


def restore(db: Session, tramite_id: int, actor: Actor) -> TransicionResultado:
    """Clear ``deleted_at`` on a soft-deleted requisición (superadmin only)."""
    anterior = load_snapshot(db, TIPO_REQUISICION, tramite_id, Operacion.RESTORE)
    _authorize(actor, anterior, Operacion.RESTORE)
    _check_precondition(anterior, Operacion.RESTORE)

    record = _compare_and_set(db, anterior, {"deleted_at": None}, eliminado=True)
    logger.info("restore: id=%s folio=%s actor=%s", record.id, record.folio, actor.user_id)
    return TransicionResultado(tramite=record, evento=None)


def purge(db: Session, tramite_id: int, actor: Actor) -> None:
    """Permanently delete a soft-deleted requisición (superadmin only)."""
    anterior = load_snapshot(db, TIPO_REQUISICION, tramite_id, Operacion.PURGE)
    _authorize(actor, anterior, Operacion.PURGE)
    _check_precondition(anterior, Operacion.PURGE)

    deleted = (
        db.query(Requisicion)
        .filter(Requisicion.id == anterior.id, Requisicion.deleted_at.isnot(None))
        .delete(synchronize_session=False)
    )
    if deleted != 1:
        db.rollback()
        raise ConflictError(
            f"Requisición {anterior.folio} fue modificada por otro usuario. "
            f"Recargue el trámite antes de continuar."
        )
    db.commit()
    logger.info("purge: id=%s folio=%s actor=%s", anterior.id, anterior.folio, actor.user_id)


def resubmit(
    db: Session, tramite_id: int, actor: Actor, data: ReenvioRequest
) -> TransicionResultado:
    """Edit a requisición rejected back to ``pendiente`` and send it again.

    Clears ``justificacion_rechazo``; estado stays ``pendiente``.
    """
    anterior = load_snapshot(db, TIPO_REQUISICION, tramite_id, Operacion.RESUBMIT)
    _authorize(actor, anterior, Operacion.RESUBMIT)
    _check_precondition(anterior, Operacion.RESUBMIT)

    values: dict[str, Any] = data.model_dump(exclude_none=True)
    values["justificacion_rechazo"] = None
    record = _compare_and_set(db, anterior, values, con_rechazo=True)
    logger.info(
        "resubmit: id=%s folio=%s fields=%s",
        record.id, record.folio, sorted(values.keys()),
    )
    return _resultado(anterior, record)

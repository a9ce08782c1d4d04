"""
Pydantic v2 schemas for trámite snapshots and transition events.

A ``TramiteSnapshot`` is the storage-independent view of a record that the
permission table and the notification resolver reason about.  A
``TransitionEvent`` pairs the snapshot before and after a committed
mutation; it is produced by the workflow service and also accepted from the
database-change webhook, which sends camelCase keys.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TramiteSnapshot(BaseModel):
    """Immutable copy of the fields the workflow core reasons about.

    Attributes:
        tipo: "requisiciones" or "reposiciones".
        id: Record primary key.
        folio: Human-readable reference.
        estado: Lifecycle state at snapshot time.
        solicitado_por: Owner user id.
        autorizador_id: Assigned approver user id.
        justificacion_rechazo: Rejection reason, if any.
        deleted_at: Soft-delete marker (requisiciones only).
    """

    tipo: str = Field(..., description="Tabla del trámite: requisiciones o reposiciones.")
    id: int | None = Field(default=None, description="PK del trámite.")
    folio: str | None = Field(default=None, description="Folio, ej. REQ-0001.")
    estado: str | None = Field(default=None, description="Estado del trámite.")
    solicitado_por: str | None = Field(
        default=None,
        validation_alias=AliasChoices("solicitado_por", "solicitadoPor"),
        description="Usuario solicitante (dueño).",
    )
    autorizador_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("autorizador_id", "autorizadorId"),
        description="Autorizador asignado.",
    )
    justificacion_rechazo: str | None = Field(
        default=None,
        validation_alias=AliasChoices("justificacion_rechazo", "justificacionRechazo"),
        description="Motivo de rechazo vigente.",
    )
    deleted_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("deleted_at", "deletedAt"),
        description="Marca de eliminación lógica.",
    )

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @classmethod
    def from_record(cls, tipo: str, record: Any) -> TramiteSnapshot:
        return cls(
            tipo=tipo,
            id=record.id,
            folio=record.folio,
            estado=record.estado,
            solicitado_por=record.solicitado_por,
            autorizador_id=record.autorizador_id,
            justificacion_rechazo=record.justificacion_rechazo,
            deleted_at=getattr(record, "deleted_at", None),
        )


class TransitionEvent(BaseModel):
    """A committed change on a trámite, delivered after commit.

    Attributes:
        change_type: "update" for transitions, "insert" for new submissions.
        table: "requisiciones" or "reposiciones".
        new_record: Record fields after the change.
        previous_record: Record fields before the change (None for inserts).
    """

    change_type: Literal["update", "insert"] = Field(
        ...,
        validation_alias=AliasChoices("change_type", "changeType"),
        description="Tipo de cambio: update o insert.",
    )
    table: Literal["requisiciones", "reposiciones"] = Field(
        ..., description="Tabla afectada."
    )
    new_record: dict[str, Any] = Field(
        ...,
        validation_alias=AliasChoices("new_record", "newRecord"),
        description="Registro después del cambio.",
    )
    previous_record: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("previous_record", "previousRecord"),
        description="Registro antes del cambio.",
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "changeType": "update",
                "table": "requisiciones",
                "newRecord": {"id": 42, "folio": "REQ-0042", "estado": "aprobado"},
                "previousRecord": {"id": 42, "folio": "REQ-0042", "estado": "pendiente"},
            }
        },
    )

    def snapshots(self) -> tuple[TramiteSnapshot | None, TramiteSnapshot]:
        previous = None
        if self.previous_record is not None:
            previous = TramiteSnapshot(tipo=self.table, **_without_tipo(self.previous_record))
        new = TramiteSnapshot(tipo=self.table, **_without_tipo(self.new_record))
        return previous, new


def _without_tipo(record: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in record.items() if key != "tipo"}

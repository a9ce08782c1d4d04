"""
Pydantic v2 schemas for requisiciones and reposiciones.

These models define the JSON shapes consumed and returned by the endpoints
in ``portal/routers/requisiciones.py`` and ``portal/routers/reposiciones.py``.
They are deliberately free of SQLAlchemy imports.

Justification fields are optional at the schema level: a missing or blank
justification on a reject operation is reported by the workflow service as
a ``ValidationError`` with the same body shape as every other workflow
error.
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Input schemas — write operations
# ---------------------------------------------------------------------------


class TramiteCreate(BaseModel):
    """Payload for submitting a new requisición or reposición.

    The folio is always generated by the service; the caller becomes
    ``solicitado_por``.

    Attributes:
        autorizador_id: User id of the approver who must decide.
        asunto: Short subject line.
        justificacion: Purpose of the request.
        monto: Amount requested.
    """

    autorizador_id: str = Field(
        ..., min_length=1, max_length=64, description="Autorizador asignado."
    )
    asunto: str | None = Field(default=None, max_length=300, description="Asunto.")
    justificacion: str | None = Field(default=None, description="Justificación del gasto.")
    monto: Decimal | None = Field(default=None, ge=0, description="Monto solicitado.")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "autorizador_id": "2b4f7c1e-8d0a-4e55-9a61-3f0c2d9e7b11",
                "asunto": "Compra de tóner para impresoras",
                "justificacion": "Reposición de consumibles del trimestre",
                "monto": 4500.00,
            }
        }
    )


class RechazoRequest(BaseModel):
    """Body for operations that require a rejection reason."""

    justificacion: str | None = Field(
        default=None,
        max_length=2000,
        description="Motivo del rechazo (obligatorio, no vacío).",
    )


class ReenvioRequest(BaseModel):
    """Body for edit & resubmit; only the supplied fields are changed.

    Attributes:
        asunto: Updated subject line.
        justificacion: Updated purpose text.
        monto: Updated amount.
    """

    asunto: str | None = Field(default=None, max_length=300, description="Asunto corregido.")
    justificacion: str | None = Field(default=None, description="Justificación corregida.")
    monto: Decimal | None = Field(default=None, ge=0, description="Monto corregido.")


# ---------------------------------------------------------------------------
# Output schemas
# ---------------------------------------------------------------------------


class RequisicionResponse(BaseModel):
    """Full representation of a requisición, mirroring the ORM model."""

    id: int
    folio: str
    estado: str
    solicitado_por: str
    autorizador_id: str | None = None
    asunto: str | None = None
    justificacion: str | None = None
    monto: float | None = None
    justificacion_rechazo: str | None = None
    autorizado_por: str | None = None
    fecha_autorizacion_real: datetime.datetime | None = None
    licitado_por: str | None = None
    fecha_licitacion: datetime.datetime | None = None
    pedido_colocado_por: str | None = None
    fecha_pedido_colocado: datetime.datetime | None = None
    pedido_autorizado_por: str | None = None
    fecha_pedido_autorizado: datetime.datetime | None = None
    pagado_por: str | None = None
    fecha_pago: datetime.datetime | None = None
    deleted_at: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 42,
                "folio": "REQ-0042",
                "estado": "aprobado",
                "solicitado_por": "u-solicitante",
                "autorizador_id": "u-autorizador",
                "asunto": "Compra de tóner",
                "autorizado_por": "u-autorizador",
                "fecha_autorizacion_real": "2026-03-02T15:04:05Z",
            }
        },
    )


class ReposicionResponse(BaseModel):
    """Full representation of a reposición, mirroring the ORM model."""

    id: int
    folio: str
    estado: str
    solicitado_por: str
    autorizador_id: str | None = None
    asunto: str | None = None
    justificacion: str | None = None
    monto: float | None = None
    justificacion_rechazo: str | None = None
    autorizado_por: str | None = None
    fecha_autorizacion: datetime.datetime | None = None
    pagado_por: str | None = None
    fecha_pago: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    model_config = ConfigDict(from_attributes=True)

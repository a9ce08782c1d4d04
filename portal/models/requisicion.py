"""Requisicion model — purchase request moving through the approval workflow."""

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from portal.database import Base


class Requisicion(Base):
    """Purchase request (requisición) with the full procurement pipeline.

    States: pendiente → aprobado → en_licitacion → pedido_colocado →
    pedido_autorizado → pedido_pagado, plus rechazado and cancelado.
    Every forward stage records who moved it there and when; re-entering a
    stage after a revert overwrites the pair.

    Attributes:
        id: Primary key.
        folio: Unique human-readable reference, e.g. "REQ-0001".
        estado: Current lifecycle state.
        solicitado_por: User id of the requester (owner).
        autorizador_id: User id of the assigned approver.
        asunto: Short subject line.
        justificacion: Purpose of the purchase.
        monto: Approximate budget.
        justificacion_rechazo: Reason given by the approver or by compras
            when rejecting; cleared on edit & resubmit.
        autorizado_por / fecha_autorizacion_real: Approval stage pair.
        licitado_por / fecha_licitacion: Bidding stage pair.
        pedido_colocado_por / fecha_pedido_colocado: Order placement pair.
        pedido_autorizado_por / fecha_pedido_autorizado: Budget authorisation pair.
        pagado_por / fecha_pago: Payment stage pair.
        deleted_at: Soft-delete marker; non-null hides the record.
        created_at: Record creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "requisiciones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    folio = Column(String(20), unique=True, nullable=False)
    estado = Column(String(30), nullable=False, default="pendiente", index=True)
    solicitado_por = Column(String(64), nullable=False, index=True)
    autorizador_id = Column(String(64), nullable=True, index=True)
    asunto = Column(String(300), nullable=True)
    justificacion = Column(Text, nullable=True)
    monto = Column(Numeric(15, 2), nullable=True)
    justificacion_rechazo = Column(Text, nullable=True)

    autorizado_por = Column(String(64), nullable=True)
    fecha_autorizacion_real = Column(DateTime(timezone=True), nullable=True)
    licitado_por = Column(String(64), nullable=True)
    fecha_licitacion = Column(DateTime(timezone=True), nullable=True)
    pedido_colocado_por = Column(String(64), nullable=True)
    fecha_pedido_colocado = Column(DateTime(timezone=True), nullable=True)
    pedido_autorizado_por = Column(String(64), nullable=True)
    fecha_pedido_autorizado = Column(DateTime(timezone=True), nullable=True)
    pagado_por = Column(String(64), nullable=True)
    fecha_pago = Column(DateTime(timezone=True), nullable=True)

    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False
    )

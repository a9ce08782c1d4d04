"""Reposicion model — expense reimbursement request."""

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from portal.database import Base


class Reposicion(Base):
    """Expense reimbursement (reposición).

    Shorter lifecycle than a requisición: pendiente → aprobado → pagado,
    plus rechazado and cancelado.  Reposiciones have no soft-delete.

    Attributes:
        id: Primary key.
        folio: Unique human-readable reference, e.g. "REP-0001".
        estado: Current lifecycle state.
        solicitado_por: User id of the requester (owner).
        autorizador_id: User id of the assigned approver.
        asunto: Short subject line.
        justificacion: Description of the expenses.
        monto: Total amount to reimburse.
        justificacion_rechazo: Reason given when rejected.
        autorizado_por / fecha_autorizacion: Approval stage pair.
        pagado_por / fecha_pago: Payment stage pair.
    """

    __tablename__ = "reposiciones"

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
    fecha_autorizacion = Column(DateTime(timezone=True), nullable=True)
    pagado_por = Column(String(64), nullable=True)
    fecha_pago = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False
    )

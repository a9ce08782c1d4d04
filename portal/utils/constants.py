"""
Application-wide constants for the Portal de Trámites.

Defines role codes, lifecycle states, table names and display labels used
across routers, services, and models.
"""

from typing import Final

# ---------------------------------------------------------------------------
# User roles
# ---------------------------------------------------------------------------

ROL_SUPERADMIN: Final[str] = "superadmin"
ROL_ADMIN: Final[str] = "admin"
ROL_COMPRADOR: Final[str] = "comprador"
ROL_SOLICITADOR: Final[str] = "solicitador"
ROL_INACTIVO: Final[str] = "inactivo"
ROL_AUTORIZADOR: Final[str] = "autorizador"
ROL_PRESUPUESTOS: Final[str] = "presupuestos"
ROL_TESORERIA: Final[str] = "tesoreria"

ROLES: Final[list[str]] = [
    ROL_SUPERADMIN,
    ROL_ADMIN,
    ROL_COMPRADOR,
    ROL_SOLICITADOR,
    ROL_INACTIVO,
    ROL_AUTORIZADOR,
    ROL_PRESUPUESTOS,
    ROL_TESORERIA,
    "contabilidad1",
    "contabilidad_gastos",
    "contabilidad_ingresos",
]

# Roles that may decide on a pending trámite besides its assigned autorizador
ROLES_APROBADORES: Final[frozenset[str]] = frozenset({ROL_ADMIN, ROL_AUTORIZADOR})

# Owners holding any of these cannot use the self-service cancel path
ROLES_ELEVADOS: Final[frozenset[str]] = frozenset(
    {ROL_SUPERADMIN, ROL_ADMIN, ROL_AUTORIZADOR}
)

# Owners allowed to soft-delete their own pending requisición
ROLES_ELIMINACION: Final[frozenset[str]] = frozenset({ROL_SOLICITADOR, ROL_ADMIN})

# ---------------------------------------------------------------------------
# Trámite types (the value doubles as the table name)
# ---------------------------------------------------------------------------

TIPO_REQUISICION: Final[str] = "requisiciones"
TIPO_REPOSICION: Final[str] = "reposiciones"

TIPOS_TRAMITE: Final[list[str]] = [TIPO_REQUISICION, TIPO_REPOSICION]

TIPO_LABELS: Final[dict[str, str]] = {
    TIPO_REQUISICION: "Requisición",
    TIPO_REPOSICION: "Reposición",
}

FOLIO_PREFIJOS: Final[dict[str, str]] = {
    TIPO_REQUISICION: "REQ",
    TIPO_REPOSICION: "REP",
}

# ---------------------------------------------------------------------------
# Lifecycle states
# ---------------------------------------------------------------------------

ESTADO_PENDIENTE: Final[str] = "pendiente"
ESTADO_APROBADO: Final[str] = "aprobado"
ESTADO_RECHAZADO: Final[str] = "rechazado"
ESTADO_CANCELADO: Final[str] = "cancelado"
ESTADO_EN_LICITACION: Final[str] = "en_licitacion"
ESTADO_PEDIDO_COLOCADO: Final[str] = "pedido_colocado"
ESTADO_PEDIDO_AUTORIZADO: Final[str] = "pedido_autorizado"
ESTADO_PEDIDO_PAGADO: Final[str] = "pedido_pagado"
ESTADO_PAGADO: Final[str] = "pagado"

ESTADOS_REQUISICION: Final[list[str]] = [
    ESTADO_PENDIENTE,
    ESTADO_APROBADO,
    ESTADO_RECHAZADO,
    ESTADO_CANCELADO,
    ESTADO_EN_LICITACION,
    ESTADO_PEDIDO_COLOCADO,
    ESTADO_PEDIDO_AUTORIZADO,
    ESTADO_PEDIDO_PAGADO,
]

ESTADOS_REPOSICION: Final[list[str]] = [
    ESTADO_PENDIENTE,
    ESTADO_APROBADO,
    ESTADO_RECHAZADO,
    ESTADO_CANCELADO,
    ESTADO_PAGADO,
]

ESTADO_LABELS: Final[dict[str, str]] = {
    ESTADO_PENDIENTE: "Pendiente de Autorización",
    ESTADO_APROBADO: "Aprobado",
    ESTADO_RECHAZADO: "Rechazado",
    ESTADO_CANCELADO: "Cancelado",
    ESTADO_EN_LICITACION: "En Licitación",
    ESTADO_PEDIDO_COLOCADO: "Pedido Colocado",
    ESTADO_PEDIDO_AUTORIZADO: "Pedido Autorizado",
    ESTADO_PEDIDO_PAGADO: "Pagado",
    ESTADO_PAGADO: "Pagado",
}

# ---------------------------------------------------------------------------
# Push delivery
# ---------------------------------------------------------------------------

# Push-service responses meaning the endpoint no longer exists
PUSH_STATUS_GONE: Final[frozenset[int]] = frozenset({404, 410})
PUSH_STATUS_OK: Final[frozenset[int]] = frozenset({200, 201})

# ---------------------------------------------------------------------------
# Scheduled notifications
# ---------------------------------------------------------------------------

TIPOS_NOTIFICACION_PROGRAMADA: Final[list[str]] = ["broadcast", "role", "personal"]

ESTADOS_NOTIFICACION_PROGRAMADA: Final[list[str]] = [
    "pending",
    "sent",
    "failed",
    "cancelled",
]

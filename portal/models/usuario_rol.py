"""UsuarioRol model — role directory used for authorisation and role broadcasts."""

from sqlalchemy import Column, Integer, String, UniqueConstraint

from portal.database import Base


class UsuarioRol(Base):
    """One role held by one user.

    Users and their roles are administered elsewhere; this table is read to
    build the acting user's role set and to expand role broadcasts into
    concrete recipients.

    Attributes:
        id: Primary key.
        user_id: Opaque user identifier (the JWT ``sub``).
        role: Role code from ``constants.ROLES``.
    """

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    role = Column(String(50), nullable=False, index=True)

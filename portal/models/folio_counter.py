"""FolioCounter model — last folio number issued per prefix."""

from sqlalchemy import Column, Integer, String

from portal.database import Base


class FolioCounter(Base):
    """Counter row read with ``SELECT ... FOR UPDATE`` when a folio is issued.

    Attributes:
        prefijo: Folio prefix (``REQ``, ``REP``).
        ultimo: Number of the last folio issued with this prefix.
    """

    __tablename__ = "folio_counters"

    prefijo = Column(String(10), primary_key=True)
    ultimo = Column(Integer, nullable=False, default=0)

"""
Modello SQLAlchemy per la numerazione documenti
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Un contatore per coppia (organizzazione, tipo documento), incrementato
atomicamente da services/sequence_service.py.
"""

import uuid

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rent_billing.models import Base
from rent_billing.models.mixins import TimestampMixin, UUIDMixin


class NumberSequence(Base, UUIDMixin, TimestampMixin):
    """
    Contatore progressivo per tipo documento.

    Attributes:
        org_id: UUID organizzazione
        sequence_type: Tipo documento ('invoice', 'credit_note')
        last_value: Ultimo valore assegnato (0 = nessun numero emesso)
    """

    __tablename__ = "number_sequences"

    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, doc="UUID organizzazione")

    sequence_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="Tipo documento numerato",
    )

    last_value: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Ultimo numero assegnato",
    )

    __table_args__ = (
        UniqueConstraint("org_id", "sequence_type", name="uq_number_sequences_org_type"),
        CheckConstraint("last_value >= 0", name="ck_number_sequences_last_value_positive"),
    )

    def __repr__(self) -> str:
        return f"<NumberSequence(org_id={self.org_id}, type={self.sequence_type}, last={self.last_value})>"

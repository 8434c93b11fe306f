"""
Modelli SQLAlchemy per le Note di credito
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Contiene:
- CreditNote: Nota di credito emessa a fronte di una fattura
- CreditNoteLine: Righe (importi negativi) riferite alle righe della fattura
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rent_billing.models import Base
from rent_billing.models.mixins import TimestampMixin, UUIDMixin


class CreditNote(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le note di credito.

    La nota riduce quanto dovuto su una fattura emessa, riga per riga.
    Gli importi sono negativi. Non modifica i totali della fattura: è un
    documento separato, numerato con la propria sequenza.

    Attributes:
        org_id: UUID organizzazione
        invoice_id: Fattura stornata
        credit_note_number: Numero (PREFIX-YYYYMM-NNNNNN)
        credit_note_date: Data documento
        reason: billing_error | discount | refund | goodwill | adjustment | other
        total_amount: Somma delle righe (negativa)
        issued_at: Emissione (NULL finché la nota è modificabile)
        version: Token di concorrenza ottimistica
    """

    __tablename__ = "credit_notes"

    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, doc="UUID organizzazione")

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        doc="Fattura stornata",
    )

    credit_note_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Numero nota di credito",
    )

    credit_note_date: Mapped[date] = mapped_column(Date, nullable=False)

    reason: Mapped[str] = mapped_column(String(30), nullable=False, doc="Causale")

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale (negativo)",
    )

    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    lines: Mapped[List["CreditNoteLine"]] = relationship(
        "CreditNoteLine",
        back_populates="credit_note",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CreditNoteLine.line_number",
    )

    __table_args__ = (
        Index("ix_credit_notes_invoice", "invoice_id"),
        UniqueConstraint("org_id", "credit_note_number", name="uq_credit_notes_org_number"),
        CheckConstraint("total_amount <= 0", name="ck_credit_notes_total_negative"),
        CheckConstraint(
            "reason IN ('billing_error', 'discount', 'refund', 'goodwill', 'adjustment', 'other')",
            name="ck_credit_notes_reason",
        ),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_issued(self) -> bool:
        return self.issued_at is not None

    def __repr__(self) -> str:
        return f"<CreditNote(number={self.credit_note_number}, total={self.total_amount})>"


class CreditNoteLine(Base, UUIDMixin, TimestampMixin):
    """
    Riga di nota di credito.

    total_amount è l'importo stornato (negativo); amount e tax_amount ne
    sono la quota imponibile e la quota imposta, nella stessa proporzione
    della riga fattura di riferimento.
    """

    __tablename__ = "credit_note_lines"

    credit_note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("credit_notes.id", ondelete="CASCADE"),
        nullable=False,
    )

    invoice_line_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoice_lines.id", ondelete="RESTRICT"),
        nullable=False,
        doc="Riga fattura stornata",
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("1.00"))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    credit_note: Mapped["CreditNote"] = relationship("CreditNote", back_populates="lines")

    __table_args__ = (
        Index("ix_credit_note_lines_invoice_line", "invoice_line_id"),
        CheckConstraint("total_amount < 0", name="ck_credit_note_lines_total_negative"),
        CheckConstraint("tax_amount <= 0", name="ck_credit_note_lines_tax_negative"),
    )

    def __repr__(self) -> str:
        return f"<CreditNoteLine(credit_note_id={self.credit_note_id}, line={self.line_number})>"

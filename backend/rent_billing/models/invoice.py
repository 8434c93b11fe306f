"""
Modelli SQLAlchemy per la Fatturazione
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Contiene:
- Invoice: Fattura di un contratto per un periodo di fatturazione
- InvoiceLine: Righe della fattura (canone, addebiti ricorrenti)
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
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rent_billing.models import Base
from rent_billing.models.mixins import TimestampMixin, UUIDMixin


INVOICE_STATUSES = ("draft", "issued", "partially_paid", "paid", "voided")


class Invoice(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le fatture.

    Una fattura copre un contratto per un periodo di fatturazione
    (estremi inclusi). Nasce in bozza dalla generazione e viene poi
    emessa, pagata (anche parzialmente) o annullata.

    Attributes:
        org_id: UUID organizzazione
        lease_id: UUID contratto
        invoice_number: Numero fattura (PREFIX-YYYYMM-NNNNNN), NULL finché non assegnato
        invoice_date: Data fattura (= fine periodo)
        due_date: Data scadenza
        billing_period_start: Inizio periodo di fatturazione
        billing_period_end: Fine periodo di fatturazione
        status: draft | issued | partially_paid | paid | voided
        subtotal: Totale imponibile
        tax_amount: Totale imposte
        total_amount: subtotal + tax_amount
        paid_amount: Somma dei pagamenti completati
        balance_amount: total_amount - paid_amount
        issued_at, paid_at, voided_at: Timestamp delle transizioni
        void_reason: Motivo annullo
        version: Token di concorrenza ottimistica

    Relationships:
        lines: Righe della fattura (sostituite in blocco alla rigenerazione)
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Colonne Relazioni
    # ------------------------------------------------------------
    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        doc="UUID organizzazione",
    )

    lease_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("leases.id", ondelete="RESTRICT"),
        nullable=False,
        doc="UUID contratto fatturato",
    )

    # ------------------------------------------------------------
    # Colonne Identificazione
    # ------------------------------------------------------------
    invoice_number: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Numero fattura (formato: PREFIX-YYYYMM-NNNNNN)",
    )

    invoice_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data fattura",
    )

    due_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data scadenza pagamento",
    )

    billing_period_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Inizio periodo di fatturazione (incluso)",
    )

    billing_period_end: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Fine periodo di fatturazione (incluso)",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        doc="Stato fattura",
    )

    # ------------------------------------------------------------
    # Colonne Importi
    # ------------------------------------------------------------
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale imponibile",
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale imposte",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale fattura",
    )

    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale pagamenti completati",
    )

    balance_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Saldo residuo",
    )

    # ------------------------------------------------------------
    # Colonne Ciclo di vita
    # ------------------------------------------------------------
    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    void_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Motivo dell'annullo",
    )

    payment_instructions: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Istruzioni di pagamento (da impostazioni contratto)",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Token di concorrenza ottimistica",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    lines: Mapped[List["InvoiceLine"]] = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLine.line_number",
        doc="Righe della fattura",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_invoices_org_status", "org_id", "status"),
        Index("ix_invoices_lease_period", "lease_id", "billing_period_start", "billing_period_end"),
        # Al massimo una bozza per contratto e periodo
        Index(
            "uq_invoices_draft_lease_period",
            "lease_id",
            "billing_period_start",
            "billing_period_end",
            unique=True,
            postgresql_where=text("status = 'draft'"),
            sqlite_where=text("status = 'draft'"),
        ),
        UniqueConstraint("org_id", "invoice_number", name="uq_invoices_org_number"),
        CheckConstraint("billing_period_end >= billing_period_start", name="ck_invoices_period_order"),
        CheckConstraint("subtotal >= 0", name="ck_invoices_subtotal_positive"),
        CheckConstraint("tax_amount >= 0", name="ck_invoices_tax_amount_positive"),
        CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_amount_positive"),
        CheckConstraint("paid_amount <= total_amount", name="ck_invoices_paid_not_over_total"),
        CheckConstraint("balance_amount >= 0", name="ck_invoices_balance_positive"),
        CheckConstraint(
            "status IN ('draft', 'issued', 'partially_paid', 'paid', 'voided')",
            name="ck_invoices_status",
        ),
    )

    __mapper_args__ = {"version_id_col": version}

    # ------------------------------------------------------------
    # Properties Calcolate
    # ------------------------------------------------------------
    @property
    def accepts_payments(self) -> bool:
        """True se la fattura può ricevere pagamenti (emessa o parzialmente pagata)."""
        return self.status in ("issued", "partially_paid")

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, number={self.invoice_number}, "
            f"status={self.status}, total={self.total_amount})>"
        )


class InvoiceLine(Base, UUIDMixin, TimestampMixin):
    """
    Riga di fattura.

    Ogni riga deriva da un addebito (canone o ricorrente) eventualmente
    riproporzionato sui giorni effettivi del periodo.

    Attributes:
        invoice_id: UUID fattura
        charge_type_id: Tipologia di addebito
        line_number: Numero progressivo nella fattura
        description: Descrizione
        quantity: Quantità (1 per canoni e ricorrenti)
        unit_price: Prezzo unitario
        amount: Imponibile riga
        tax_rate: Aliquota in percentuale
        tax_amount: Imposta (arrotondata al centesimo)
        total_amount: amount + tax_amount
    """

    __tablename__ = "invoice_lines"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        doc="UUID fattura",
    )

    charge_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("charge_types.id", ondelete="RESTRICT"),
        nullable=False,
        doc="Tipologia di addebito",
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Numero progressivo riga",
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        doc="Descrizione della riga",
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("1.00"),
        doc="Quantità",
    )

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Prezzo unitario",
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Imponibile riga",
    )

    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Aliquota imposta",
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Importo imposta",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Totale riga",
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="lines")

    __table_args__ = (
        Index("ix_invoice_lines_invoice_number", "invoice_id", "line_number"),
        CheckConstraint("quantity > 0", name="ck_invoice_lines_quantity_positive"),
        CheckConstraint("amount >= 0", name="ck_invoice_lines_amount_positive"),
        CheckConstraint(
            "tax_rate >= 0 AND tax_rate <= 100",
            name="ck_invoice_lines_tax_rate_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<InvoiceLine(invoice_id={self.invoice_id}, line={self.line_number}, amount={self.amount})>"

"""
Modelli SQLAlchemy per Pagamenti e Richieste di conferma
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Contiene:
- Payment: Pagamento registrato su una fattura
- PaymentConfirmationRequest: Prova di pagamento inviata dall'inquilino,
  in attesa di revisione

Entrambi referenziano la fattura per id e modificano i totali
della fattura solo tramite InvoiceLifecycleService.apply_payment.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

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
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from rent_billing.models import Base
from rent_billing.models.mixins import TimestampMixin, UUIDMixin


class Payment(Base, UUIDMixin, TimestampMixin):
    """
    Pagamento registrato su una fattura.

    Un pagamento 'completed' è stato validato sul saldo al momento
    dell'applicazione; un pagamento 'pending' (gateway) non incide
    sui totali finché non viene completato.

    Attributes:
        payment_mode: cash | online | upi | bank_transfer | cheque | card | other
        status: pending | completed | failed
        transaction_reference: Obbligatorio per le modalità diverse da cash
        gateway_transaction_id / gateway_name: Dati del gateway (opzionali)
        received_by: Operatore che ha registrato il pagamento
        failure_reason: Motivo del fallimento (solo status 'failed')
        completed_at: Timestamp di completamento
        version: Token di concorrenza ottimistica
    """

    __tablename__ = "payments"

    # ------------------------------------------------------------
    # Colonne Relazioni
    # ------------------------------------------------------------
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, doc="UUID organizzazione")

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        doc="UUID fattura",
    )

    lease_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, doc="UUID contratto")

    # ------------------------------------------------------------
    # Colonne Dati
    # ------------------------------------------------------------
    payment_mode: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Modalità di pagamento",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        doc="Stato pagamento",
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Importo del pagamento",
    )

    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data del pagamento",
    )

    transaction_reference: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Riferimento transazione (UTR, numero assegno, ricevuta)",
    )

    gateway_transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    payer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Note aggiuntive sul pagamento",
    )

    received_by: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Operatore che ha registrato il pagamento",
    )

    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Token di concorrenza ottimistica",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_payments_invoice_status", "invoice_id", "status"),
        Index("ix_payments_org_id", "org_id"),
        Index("ix_payments_payment_date", "payment_date"),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "payment_mode IN ('cash', 'online', 'upi', 'bank_transfer', 'cheque', 'card', 'other')",
            name="ck_payments_payment_mode",
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_payments_status",
        ),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, amount={self.amount}, "
            f"mode={self.payment_mode}, status={self.status})>"
        )


class PaymentConfirmationRequest(Base, UUIDMixin, TimestampMixin):
    """
    Richiesta di conferma pagamento inviata dall'inquilino.

    Modificabile solo in stato 'pending'; 'confirmed' e 'rejected' sono
    terminali. La conferma crea un Payment e accredita la fattura.
    """

    __tablename__ = "payment_confirmation_requests"

    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, doc="UUID organizzazione")

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        doc="UUID fattura",
    )

    lease_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, doc="UUID contratto")

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Importo dichiarato",
    )

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    receipt_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Numero ricevuta dichiarato dall'inquilino",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    proof_file_ref: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        doc="Riferimento al file di prova (storage esterno)",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        doc="Stato: pending | confirmed | rejected",
    )

    # ------------------------------------------------------------
    # Colonne Revisione
    # ------------------------------------------------------------
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    review_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("payments.id", ondelete="SET NULL"),
        nullable=True,
        doc="Pagamento creato alla conferma",
    )

    created_by: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Utente che ha inviato la richiesta",
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Token di concorrenza ottimistica",
    )

    __table_args__ = (
        Index("ix_payment_confirmation_requests_invoice_id", "invoice_id"),
        Index("ix_payment_confirmation_requests_org_status", "org_id", "status"),
        CheckConstraint("amount > 0", name="ck_payment_confirmation_requests_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected')",
            name="ck_payment_confirmation_requests_status",
        ),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<PaymentConfirmationRequest(id={self.id}, amount={self.amount}, status={self.status})>"

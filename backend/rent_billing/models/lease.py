"""
Modelli SQLAlchemy per i dati contrattuali
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Contiene:
- ChargeType: Tipologia di addebito (RENT, MAINT, PARKING, ...)
- Lease: Contratto di locazione
- LeaseTerm: Canone mensile con periodo di validità
- LeaseRecurringCharge: Addebiti ricorrenti del contratto
- LeaseBillingSetting: Impostazioni di fatturazione del contratto

Il motore li legge solo tramite il LeaseChargeProvider.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
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


class ChargeType(Base, UUIDMixin, TimestampMixin):
    """
    Tipologia di addebito.

    org_id NULL indica un tipo di sistema valido per tutte le organizzazioni.
    """

    __tablename__ = "charge_types"

    org_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        doc="Organizzazione proprietaria (NULL = tipo di sistema)",
    )

    code: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="Codice tipologia (es. RENT)",
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Nome leggibile",
    )

    __table_args__ = (
        UniqueConstraint("org_id", "code", name="uq_charge_types_org_code"),
        Index("ix_charge_types_code", "code"),
    )

    def __repr__(self) -> str:
        return f"<ChargeType(code={self.code}, org_id={self.org_id})>"


class Lease(Base, UUIDMixin, TimestampMixin):
    """
    Contratto di locazione.

    Solo i contratti in stato 'active' possono essere fatturati.

    Attributes:
        org_id: Organizzazione proprietaria
        lease_number: Numero contratto (opzionale, per i log)
        status: draft | active | notice_given | ended | terminated
        start_date: Data inizio locazione
        end_date: Data fine locazione (NULL = a tempo indeterminato)
    """

    __tablename__ = "leases"

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        doc="UUID organizzazione",
    )

    lease_number: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Numero contratto",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        doc="Stato contratto",
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data inizio locazione",
    )

    end_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Data fine locazione",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    terms: Mapped[List["LeaseTerm"]] = relationship(
        "LeaseTerm",
        back_populates="lease",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LeaseTerm.effective_from",
        doc="Canoni con periodo di validità",
    )

    recurring_charges: Mapped[List["LeaseRecurringCharge"]] = relationship(
        "LeaseRecurringCharge",
        back_populates="lease",
        cascade="all, delete-orphan",
        lazy="selectin",
        doc="Addebiti ricorrenti",
    )

    billing_setting: Mapped[Optional["LeaseBillingSetting"]] = relationship(
        "LeaseBillingSetting",
        back_populates="lease",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
        doc="Impostazioni di fatturazione",
    )

    __table_args__ = (
        Index("ix_leases_org_status", "org_id", "status"),
        CheckConstraint(
            "status IN ('draft', 'active', 'notice_given', 'ended', 'terminated')",
            name="ck_leases_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Lease(id={self.id}, status={self.status})>"


class LeaseTerm(Base, UUIDMixin, TimestampMixin):
    """Canone mensile valido da effective_from a effective_to (inclusi)."""

    __tablename__ = "lease_terms"

    lease_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("leases.id", ondelete="CASCADE"),
        nullable=False,
        doc="UUID contratto",
    )

    monthly_rent: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Canone mensile pieno",
    )

    effective_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Inizio validità",
    )

    effective_to: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Fine validità (NULL = senza scadenza)",
    )

    lease: Mapped["Lease"] = relationship("Lease", back_populates="terms")

    __table_args__ = (
        Index("ix_lease_terms_lease_id", "lease_id"),
        CheckConstraint("monthly_rent >= 0", name="ck_lease_terms_rent_positive"),
    )


class LeaseRecurringCharge(Base, UUIDMixin, TimestampMixin):
    """
    Addebito ricorrente (manutenzione, posto auto, ...).

    Solo la frequenza 'monthly' viene fatturata dal motore.
    """

    __tablename__ = "lease_recurring_charges"

    lease_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("leases.id", ondelete="CASCADE"),
        nullable=False,
        doc="UUID contratto",
    )

    charge_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("charge_types.id", ondelete="RESTRICT"),
        nullable=False,
        doc="Tipologia di addebito",
    )

    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Descrizione riportata in fattura",
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Importo pieno per periodo",
    )

    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Aliquota imposta in percentuale",
    )

    frequency: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="monthly",
        doc="Frequenza: monthly | quarterly | yearly | one_time",
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="False = addebito sospeso",
    )

    lease: Mapped["Lease"] = relationship("Lease", back_populates="recurring_charges")

    __table_args__ = (
        Index("ix_lease_recurring_charges_lease_id", "lease_id"),
        CheckConstraint("amount >= 0", name="ck_lease_recurring_charges_amount_positive"),
        CheckConstraint(
            "tax_rate >= 0 AND tax_rate <= 100",
            name="ck_lease_recurring_charges_tax_rate_range",
        ),
        CheckConstraint(
            "frequency IN ('monthly', 'quarterly', 'yearly', 'one_time')",
            name="ck_lease_recurring_charges_frequency",
        ),
    )


class LeaseBillingSetting(Base, UUIDMixin, TimestampMixin):
    """Impostazioni di fatturazione (una per contratto)."""

    __tablename__ = "lease_billing_settings"

    lease_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("leases.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        doc="UUID contratto (relazione 1:1)",
    )

    payment_term_days: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Giorni tra data fattura e scadenza",
    )

    invoice_prefix: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
        doc="Prefisso numero fattura (default da configurazione)",
    )

    payment_instructions: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Istruzioni di pagamento copiate in fattura",
    )

    lease: Mapped["Lease"] = relationship("Lease", back_populates="billing_setting")

    __table_args__ = (
        CheckConstraint("payment_term_days >= 0", name="ck_lease_billing_settings_term_positive"),
    )

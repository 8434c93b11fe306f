"""
Modelli SQLAlchemy per le esecuzioni batch di fatturazione
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Contiene:
- InvoiceRun: Esecuzione della generazione fatture per un'organizzazione e un periodo
- InvoiceRunItem: Esito per singolo contratto
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rent_billing.models import Base
from rent_billing.models.mixins import TimestampMixin, UUIDMixin


class InvoiceRun(Base, UUIDMixin, TimestampMixin):
    """
    Esecuzione batch della generazione fatture.

    Attributes:
        run_number: Identificativo leggibile (RUN-YYYYMM-XXXXXXXX)
        status: in_progress | completed | completed_with_errors | failed | interrupted
        total_leases / success_count / failure_count: Contatori esito
        error_message: Primi errori concatenati
    """

    __tablename__ = "invoice_runs"

    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, doc="UUID organizzazione")

    run_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    billing_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    billing_period_end: Mapped[date] = mapped_column(Date, nullable=False)

    proration_method: Mapped[str] = mapped_column(String(30), nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="in_progress",
        doc="Stato esecuzione",
    )

    total_leases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    items: Mapped[List["InvoiceRunItem"]] = relationship(
        "InvoiceRunItem",
        back_populates="run",
        cascade="all, delete-orphan",
        lazy="selectin",
        doc="Esiti per contratto",
    )

    __table_args__ = (
        Index("ix_invoice_runs_org_period", "org_id", "billing_period_start"),
        CheckConstraint(
            "status IN ('in_progress', 'completed', 'completed_with_errors', 'failed', 'interrupted')",
            name="ck_invoice_runs_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<InvoiceRun(run_number={self.run_number}, status={self.status})>"


class InvoiceRunItem(Base, UUIDMixin, TimestampMixin):
    """Esito della generazione per un singolo contratto."""

    __tablename__ = "invoice_run_items"

    invoice_run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoice_runs.id", ondelete="CASCADE"),
        nullable=False,
    )

    lease_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    is_success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    run: Mapped["InvoiceRun"] = relationship("InvoiceRun", back_populates="items")

    __table_args__ = (
        Index("ix_invoice_run_items_run_id", "invoice_run_id"),
    )

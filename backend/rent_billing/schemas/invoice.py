"""
Schemas Pydantic per la Fatturazione
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Contiene:
- Enums: InvoiceStatus, ProrationMethod, SequenceType
- Schemas per InvoiceLine e Invoice (lettura)
- InvoiceGenerate: input della generazione
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rent_billing.core.exceptions import InvalidArgumentError


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class InvoiceStatus(str, Enum):
    """Stati del ciclo di vita della fattura."""
    DRAFT = "draft"
    ISSUED = "issued"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    VOIDED = "voided"


class ProrationMethod(str, Enum):
    """
    Metodo di riproporzionamento.

    - actual_days: giorni effettivi del periodo (28/29/30/31)
    - thirty_day_month: base fissa di 30 giorni (convenzione commerciale)
    """
    ACTUAL_DAYS = "actual_days"
    THIRTY_DAY_MONTH = "thirty_day_month"


class SequenceType(str, Enum):
    """Tipi di documento numerati."""
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"


# -------------------------------------------------------------------
# Schemas per InvoiceLine
# -------------------------------------------------------------------

class InvoiceLineRead(BaseModel):
    """Schema per la lettura di una riga fattura."""

    id: uuid.UUID = Field(..., description="UUID della riga fattura")
    invoice_id: uuid.UUID = Field(..., description="UUID della fattura")
    charge_type_id: uuid.UUID = Field(..., description="Tipologia di addebito")
    line_number: int = Field(..., ge=1, description="Numero progressivo riga")
    description: str = Field(..., description="Descrizione della riga")
    quantity: Decimal = Field(..., description="Quantità")
    unit_price: Decimal = Field(..., description="Prezzo unitario")
    amount: Decimal = Field(..., description="Imponibile riga")
    tax_rate: Decimal = Field(..., description="Aliquota imposta")
    tax_amount: Decimal = Field(..., description="Importo imposta")
    total_amount: Decimal = Field(..., description="Totale riga")

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per Invoice
# -------------------------------------------------------------------

class InvoiceGenerate(BaseModel):
    """Input per generare (o rigenerare) la bozza di un contratto per un periodo."""

    lease_id: uuid.UUID = Field(..., description="UUID del contratto")
    billing_period_start: date = Field(..., description="Inizio periodo (incluso)")
    billing_period_end: date = Field(..., description="Fine periodo (incluso)")
    proration_method: ProrationMethod = Field(
        default=ProrationMethod.ACTUAL_DAYS,
        description="Metodo di riproporzionamento",
    )

    @model_validator(mode="after")
    def validate_period(self) -> "InvoiceGenerate":
        """La fine del periodo non può precedere l'inizio."""
        if self.billing_period_end < self.billing_period_start:
            raise InvalidArgumentError(
                "La fine del periodo di fatturazione non può precedere l'inizio"
            )
        return self


class InvoiceRead(BaseModel):
    """Schema per la lettura di una fattura con le sue righe."""

    id: uuid.UUID = Field(..., description="UUID della fattura")
    org_id: uuid.UUID
    lease_id: uuid.UUID
    invoice_number: Optional[str] = Field(None, description="Numero fattura (se assegnato)")
    invoice_date: date
    due_date: date
    billing_period_start: date
    billing_period_end: date
    status: InvoiceStatus
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    issued_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None
    payment_instructions: Optional[str] = None
    notes: Optional[str] = None
    version: int = Field(..., description="Token di concorrenza da ripassare nelle modifiche")
    created_at: datetime
    updated_at: datetime

    lines: list[InvoiceLineRead] = Field(default_factory=list, description="Righe della fattura")

    model_config = ConfigDict(from_attributes=True)


class InvoiceSummary(BaseModel):
    """Schema ridotto per le liste di fatture (senza righe)."""

    id: uuid.UUID
    lease_id: uuid.UUID
    invoice_number: Optional[str] = None
    billing_period_start: date
    billing_period_end: date
    due_date: date
    status: InvoiceStatus
    total_amount: Decimal
    balance_amount: Decimal
    version: int

    model_config = ConfigDict(from_attributes=True)


class InvoiceList(BaseModel):
    """Schema per la lista paginata delle fatture."""

    items: list[InvoiceSummary] = Field(default_factory=list, description="Fatture della pagina")
    total: int = Field(..., ge=0, description="Totale fatture che soddisfano i filtri")
    page: int = Field(..., ge=1, description="Pagina corrente")
    per_page: int = Field(..., ge=1, description="Elementi per pagina")

"""
Schemas Pydantic per le Note di credito
Progetto: Rent Billing (Motore di Fatturazione Locazioni)
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreditNoteReason(str, Enum):
    """Causale della nota di credito."""
    BILLING_ERROR = "billing_error"
    DISCOUNT = "discount"
    REFUND = "refund"
    GOODWILL = "goodwill"
    ADJUSTMENT = "adjustment"
    OTHER = "other"


class CreditNoteLineRequest(BaseModel):
    """Importo da stornare su una riga della fattura (tasse incluse)."""

    invoice_line_id: uuid.UUID = Field(..., description="Riga fattura da stornare")
    amount: Decimal = Field(..., max_digits=12, decimal_places=2, description="Importo lordo stornato")
    notes: Optional[str] = Field(None, max_length=500)


class CreditNoteCreate(BaseModel):
    """Input per creare una nota di credito su una fattura emessa."""

    invoice_id: uuid.UUID = Field(..., description="UUID della fattura")
    reason: CreditNoteReason = Field(..., description="Causale")
    lines: list[CreditNoteLineRequest] = Field(..., min_length=1, description="Righe da stornare")
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class CreditNoteLineRead(BaseModel):
    id: uuid.UUID
    invoice_line_id: uuid.UUID
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CreditNoteRead(BaseModel):
    """Schema per la lettura di una nota di credito con le righe."""

    id: uuid.UUID
    org_id: uuid.UUID
    invoice_id: uuid.UUID
    credit_note_number: str
    credit_note_date: date
    reason: CreditNoteReason
    notes: Optional[str] = None
    total_amount: Decimal = Field(..., description="Totale stornato (negativo)")
    issued_at: Optional[datetime] = None
    created_by: Optional[str] = None
    version: int = Field(..., description="Token di concorrenza da ripassare nelle modifiche")
    created_at: datetime
    updated_at: datetime

    lines: list[CreditNoteLineRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

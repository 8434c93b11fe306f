"""
Schemas Pydantic per Pagamenti e Richieste di conferma
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Contiene:
- Enums: PaymentMode, PaymentStatus, ConfirmationStatus
- PaymentRecord / PaymentRead / PaymentRecordResult
- PaymentConfirmationRequestCreate / PaymentConfirmationRequestRead
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class PaymentMode(str, Enum):
    """Modalità di pagamento supportate."""
    CASH = "cash"
    ONLINE = "online"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    CARD = "card"
    OTHER = "other"


class PaymentStatus(str, Enum):
    """Stati del pagamento."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ConfirmationStatus(str, Enum):
    """Stati della richiesta di conferma."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


def _strip_or_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


# -------------------------------------------------------------------
# Schemas per Payment
# -------------------------------------------------------------------

class PaymentRecord(BaseModel):
    """
    Input per registrare un pagamento.

    L'importo non è vincolato qui: il controllo `amount > 0` e il confronto
    con il saldo sono regole del PaymentService.
    """

    invoice_id: uuid.UUID = Field(..., description="UUID della fattura")
    payment_mode: PaymentMode = Field(..., description="Modalità di pagamento")
    amount: Decimal = Field(..., max_digits=12, decimal_places=2, description="Importo")
    payment_date: date = Field(..., description="Data del pagamento")
    transaction_reference: Optional[str] = Field(
        None,
        max_length=255,
        description="Riferimento transazione (obbligatorio se non cash)",
    )
    payer_name: Optional[str] = Field(None, max_length=255)
    gateway_transaction_id: Optional[str] = Field(
        None,
        max_length=255,
        description="Id transazione gateway: il pagamento resta pending fino al callback",
    )
    gateway_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @field_validator(
        "transaction_reference", "payer_name", "gateway_transaction_id", "gateway_name", "notes"
    )
    @classmethod
    def strip_optional_text(cls, v: Optional[str]) -> Optional[str]:
        """Stringhe vuote o di soli spazi diventano None."""
        return _strip_or_none(v)


class PaymentRead(BaseModel):
    """Schema per la lettura di un pagamento."""

    id: uuid.UUID = Field(..., description="UUID del pagamento")
    org_id: uuid.UUID
    invoice_id: uuid.UUID
    lease_id: uuid.UUID
    payment_mode: PaymentMode
    status: PaymentStatus
    amount: Decimal
    payment_date: date
    transaction_reference: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    gateway_name: Optional[str] = None
    payer_name: Optional[str] = None
    notes: Optional[str] = None
    received_by: Optional[str] = None
    failure_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentRecordResult(BaseModel):
    """Pagamento registrato con lo stato aggiornato della fattura."""

    payment: PaymentRead
    invoice_status: str = Field(..., description="Stato fattura dopo la registrazione")
    invoice_balance: Decimal = Field(..., description="Saldo fattura dopo la registrazione")
    invoice_version: int


# -------------------------------------------------------------------
# Schemas per PaymentConfirmationRequest
# -------------------------------------------------------------------

class PaymentConfirmationRequestCreate(BaseModel):
    """Input dell'inquilino per dichiarare un pagamento da verificare."""

    invoice_id: uuid.UUID = Field(..., description="UUID della fattura")
    amount: Decimal = Field(..., max_digits=12, decimal_places=2, description="Importo dichiarato")
    payment_date: date = Field(..., description="Data del pagamento")
    receipt_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    proof_file_ref: Optional[str] = Field(
        None,
        max_length=500,
        description="Riferimento al file di prova già caricato nello storage",
    )

    @field_validator("receipt_number", "notes", "proof_file_ref")
    @classmethod
    def strip_optional_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip_or_none(v)


class PaymentConfirmationRequestRead(BaseModel):
    """Schema per la lettura di una richiesta di conferma."""

    id: uuid.UUID
    org_id: uuid.UUID
    invoice_id: uuid.UUID
    lease_id: uuid.UUID
    amount: Decimal
    payment_date: date
    receipt_number: Optional[str] = None
    notes: Optional[str] = None
    proof_file_ref: Optional[str] = None
    status: ConfirmationStatus
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_response: Optional[str] = None
    payment_id: Optional[uuid.UUID] = None
    created_by: Optional[str] = None
    version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

"""
Schemas Pydantic per i dati contrattuali forniti al motore
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Contiene i DTO restituiti dal LeaseChargeProvider:
- LeaseBillingContext: contratto + impostazioni di fatturazione
- ChargeInput: addebito con periodo di validità da fatturare
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LeaseStatus(str, Enum):
    """Stati del contratto di locazione."""
    DRAFT = "draft"
    ACTIVE = "active"
    NOTICE_GIVEN = "notice_given"
    ENDED = "ended"
    TERMINATED = "terminated"


class LeaseBillingContext(BaseModel):
    """Dati del contratto necessari alla generazione della fattura."""

    lease_id: uuid.UUID
    org_id: uuid.UUID
    lease_number: Optional[str] = None
    status: LeaseStatus
    payment_term_days: Optional[int] = Field(
        None,
        ge=0,
        description="Giorni di scadenza (None = nessuna impostazione sul contratto)",
    )
    invoice_prefix: Optional[str] = None
    payment_instructions: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ChargeInput(BaseModel):
    """
    Addebito da fatturare.

    `amount` è l'importo pieno per un periodo intero; la generazione lo
    riproporziona sui giorni di sovrapposizione con il periodo fatturato.
    """

    charge_type_id: uuid.UUID
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., ge=0, description="Importo pieno per periodo")
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    effective_from: date = Field(..., description="Inizio validità (incluso)")
    effective_to: Optional[date] = Field(None, description="Fine validità (None = aperta)")
    is_rent: bool = Field(default=False, description="True per le righe di canone")

    model_config = ConfigDict(frozen=True)

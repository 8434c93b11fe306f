"""
Schemas Pydantic per le esecuzioni batch di fatturazione
Progetto: Rent Billing (Motore di Fatturazione Locazioni)
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class InvoiceRunStatus(str, Enum):
    """Esito complessivo di un'esecuzione."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


class InvoiceRunItemRead(BaseModel):
    """Esito per singolo contratto."""

    lease_id: uuid.UUID
    invoice_id: Optional[uuid.UUID] = None
    is_success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceRunRead(BaseModel):
    """Riepilogo di un'esecuzione batch."""

    id: uuid.UUID
    org_id: uuid.UUID
    run_number: str
    billing_period_start: date
    billing_period_end: date
    proration_method: str
    status: InvoiceRunStatus
    total_leases: int
    success_count: int
    failure_count: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    notes: Optional[str] = None
    items: list[InvoiceRunItemRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

"""
Schemas Pydantic per il progetto Rent Billing

Questo modulo contiene gli schemi Pydantic usati per la validazione
degli input e la serializzazione dei risultati del BillingEngine.
"""

from rent_billing.schemas.credit_note import (
    CreditNoteCreate,
    CreditNoteLineRead,
    CreditNoteLineRequest,
    CreditNoteRead,
    CreditNoteReason,
)
from rent_billing.schemas.invoice import (
    InvoiceGenerate,
    InvoiceLineRead,
    InvoiceList,
    InvoiceRead,
    InvoiceStatus,
    InvoiceSummary,
    ProrationMethod,
    SequenceType,
)
from rent_billing.schemas.invoice_run import (
    InvoiceRunItemRead,
    InvoiceRunRead,
    InvoiceRunStatus,
)
from rent_billing.schemas.lease import ChargeInput, LeaseBillingContext, LeaseStatus
from rent_billing.schemas.payment import (
    ConfirmationStatus,
    PaymentConfirmationRequestCreate,
    PaymentConfirmationRequestRead,
    PaymentMode,
    PaymentRead,
    PaymentRecord,
    PaymentRecordResult,
    PaymentStatus,
)

__all__ = [
    "CreditNoteCreate",
    "CreditNoteLineRead",
    "CreditNoteLineRequest",
    "CreditNoteRead",
    "CreditNoteReason",
    "InvoiceGenerate",
    "InvoiceLineRead",
    "InvoiceList",
    "InvoiceRead",
    "InvoiceStatus",
    "InvoiceSummary",
    "ProrationMethod",
    "SequenceType",
    "InvoiceRunItemRead",
    "InvoiceRunRead",
    "InvoiceRunStatus",
    "ChargeInput",
    "LeaseBillingContext",
    "LeaseStatus",
    "ConfirmationStatus",
    "PaymentConfirmationRequestCreate",
    "PaymentConfirmationRequestRead",
    "PaymentMode",
    "PaymentRead",
    "PaymentRecord",
    "PaymentRecordResult",
    "PaymentStatus",
]

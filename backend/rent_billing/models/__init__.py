"""
Modelli Database SQLAlchemy
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Import centralizzato di tutti i modelli per create_all e usage generico.

Modelli:
- ChargeType, Lease, LeaseTerm, LeaseRecurringCharge, LeaseBillingSetting:
  dati contrattuali letti dal LeaseChargeProvider
- Invoice, InvoiceLine: Fatture e righe
- Payment: Pagamenti
- PaymentConfirmationRequest: Richieste di conferma pagamento dell'inquilino
- CreditNote, CreditNoteLine: Note di credito su fatture emesse
- NumberSequence: Contatori per la numerazione documenti
- InvoiceRun, InvoiceRunItem: Esecuzioni batch di generazione fatture
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from rent_billing.models.lease import (
    ChargeType,
    Lease,
    LeaseBillingSetting,
    LeaseRecurringCharge,
    LeaseTerm,
)
from rent_billing.models.invoice import Invoice, InvoiceLine
from rent_billing.models.payment import Payment, PaymentConfirmationRequest
from rent_billing.models.credit_note import CreditNote, CreditNoteLine
from rent_billing.models.sequence import NumberSequence
from rent_billing.models.invoice_run import InvoiceRun, InvoiceRunItem

__all__ = [
    "Base",
    "ChargeType",
    "Lease",
    "LeaseTerm",
    "LeaseRecurringCharge",
    "LeaseBillingSetting",
    "Invoice",
    "InvoiceLine",
    "Payment",
    "PaymentConfirmationRequest",
    "CreditNote",
    "CreditNoteLine",
    "NumberSequence",
    "InvoiceRun",
    "InvoiceRunItem",
]

"""
Pytest configuration and fixtures for the billing engine tests.

I test dei servizi usano un database SQLite su file temporaneo
(aiosqlite, NullPool: ogni sessione ha la propria connessione) con lo
schema completo creato da Base.metadata.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from rent_billing.core.config import Settings
from rent_billing.core.database import create_session_factory
from rent_billing.engine import BillingEngine
from rent_billing.models import Base
from rent_billing.models.invoice import Invoice
from rent_billing.models.lease import (
    ChargeType,
    Lease,
    LeaseBillingSetting,
    LeaseRecurringCharge,
    LeaseTerm,
)
from rent_billing.services.credit_note_service import CreditNoteService
from rent_billing.services.invoice_generation_service import InvoiceGenerationService
from rent_billing.services.invoice_lifecycle_service import InvoiceLifecycleService
from rent_billing.services.lease_charge_provider import SqlLeaseChargeProvider
from rent_billing.services.payment_confirmation_service import PaymentConfirmationService
from rent_billing.services.payment_service import PaymentService
from rent_billing.services.sequence_service import SequenceService

JAN_START = date(2025, 1, 1)
JAN_END = date(2025, 1, 31)


# ============================================================
# Fixtures per AsyncSession Mock
# ============================================================


@pytest.fixture
def mock_db():
    """Crea un mock di AsyncSession."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    return db


# ============================================================
# Fixtures Database SQLite
# ============================================================


@pytest.fixture
async def db_engine(tmp_path):
    """Engine SQLite su file con schema creato."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Sessione per preparare i dati e invocare i servizi."""
    async with session_factory() as session:
        yield session


# ============================================================
# Fixtures Dati contrattuali
# ============================================================


@pytest.fixture
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
async def rent_charge_type(db) -> ChargeType:
    """Tipo addebito RENT di sistema (valido per tutte le organizzazioni)."""
    charge_type = ChargeType(org_id=None, code="RENT", name="Canone di locazione")
    db.add(charge_type)
    await db.commit()
    return charge_type


@pytest.fixture
async def maintenance_charge_type(db, org_id) -> ChargeType:
    charge_type = ChargeType(org_id=org_id, code="MAINT", name="Spese condominiali")
    db.add(charge_type)
    await db.commit()
    return charge_type


async def create_lease(
    db: AsyncSession,
    org_id: uuid.UUID,
    status: str = "active",
    monthly_rent: Decimal = Decimal("10000.00"),
    start_date: date = JAN_START,
    end_date: Optional[date] = None,
    payment_term_days: Optional[int] = None,
    invoice_prefix: Optional[str] = None,
    payment_instructions: Optional[str] = None,
) -> Lease:
    """Crea un contratto con un canone valido da start_date."""
    lease = Lease(
        org_id=org_id,
        lease_number=f"L-{uuid.uuid4().hex[:6].upper()}",
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    lease.terms.append(
        LeaseTerm(monthly_rent=monthly_rent, effective_from=start_date, effective_to=end_date)
    )
    if payment_term_days is not None or invoice_prefix or payment_instructions:
        lease.billing_setting = LeaseBillingSetting(
            payment_term_days=payment_term_days or 0,
            invoice_prefix=invoice_prefix,
            payment_instructions=payment_instructions,
        )
    db.add(lease)
    await db.commit()
    return lease


async def add_recurring_charge(
    db: AsyncSession,
    lease: Lease,
    charge_type: ChargeType,
    amount: Decimal,
    tax_rate: Decimal = Decimal("0"),
    description: str = "Spese condominiali",
    start_date: date = JAN_START,
    frequency: str = "monthly",
    is_active: bool = True,
) -> LeaseRecurringCharge:
    charge = LeaseRecurringCharge(
        lease_id=lease.id,
        charge_type_id=charge_type.id,
        description=description,
        amount=amount,
        tax_rate=tax_rate,
        frequency=frequency,
        start_date=start_date,
        is_active=is_active,
    )
    db.add(charge)
    await db.commit()
    return charge


@pytest.fixture
async def lease(db, org_id, rent_charge_type) -> Lease:
    """Contratto attivo: canone 10000.00 dal 01/01/2025, scadenza a vista."""
    return await create_lease(db, org_id)


# ============================================================
# Fixtures Servizi
# ============================================================


@pytest.fixture
def lease_provider() -> SqlLeaseChargeProvider:
    return SqlLeaseChargeProvider()


@pytest.fixture
def sequence_service() -> SequenceService:
    return SequenceService(max_value=999999)


@pytest.fixture
def lifecycle_service(lease_provider, sequence_service) -> InvoiceLifecycleService:
    return InvoiceLifecycleService(lease_provider, sequence_service, default_prefix="INV")


@pytest.fixture
def generation_service(lease_provider, lifecycle_service) -> InvoiceGenerationService:
    return InvoiceGenerationService(
        lease_provider,
        lifecycle_service,
        assign_number_on_generation=False,
        default_payment_term_days=0,
    )


@pytest.fixture
def payment_service(lifecycle_service) -> PaymentService:
    return PaymentService(lifecycle_service)


@pytest.fixture
def confirmation_service(lifecycle_service) -> PaymentConfirmationService:
    return PaymentConfirmationService(lifecycle_service)


@pytest.fixture
def credit_note_service(lifecycle_service, sequence_service) -> CreditNoteService:
    return CreditNoteService(lifecycle_service, sequence_service, default_prefix="CN")



@pytest.fixture
async def draft_invoice(db, lease, generation_service) -> Invoice:
    """Bozza di gennaio 2025 (totale 10000.00)."""
    return await generation_service.generate(db, lease.id, JAN_START, JAN_END)


@pytest.fixture
async def issued_invoice(db, draft_invoice, lifecycle_service) -> Invoice:
    """Fattura di gennaio 2025 emessa (totale 10000.00, saldo 10000.00)."""
    return await lifecycle_service.issue(db, draft_invoice.id, draft_invoice.version)


# ============================================================
# Fixtures BillingEngine
# ============================================================


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        app_env="testing",
        billing_default_invoice_prefix="INV",
        billing_default_payment_term_days=0,
        billing_assign_number_on_generation=False,
        billing_operation_timeout_seconds=10.0,
    )


@pytest.fixture
def billing_engine(session_factory, test_settings) -> BillingEngine:
    return BillingEngine(session_factory, config=test_settings)

"""
Tests for InvoiceRunService (batch generation per organization).
"""

import asyncio
import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import JAN_END, JAN_START, create_lease
from rent_billing.core.exceptions import InvalidArgumentError, NotFoundError
from rent_billing.models.invoice import Invoice
from rent_billing.models.invoice_run import InvoiceRun
from rent_billing.services.invoice_generation_service import InvoiceGenerationService
from rent_billing.services.invoice_run_service import InvoiceRunService, generate_run_number
from rent_billing.services.lease_charge_provider import SqlLeaseChargeProvider


class DelayedLeaseProvider(SqlLeaseChargeProvider):
    """Provider che ritarda la lettura dei contratti indicati."""

    def __init__(self, delay: float, slow_lease_ids=None):
        self.delay = delay
        self.slow_lease_ids = slow_lease_ids

    async def get_lease_context(self, db, lease_id):
        if self.slow_lease_ids is None or lease_id in self.slow_lease_ids:
            await asyncio.sleep(self.delay)
        return await super().get_lease_context(db, lease_id)


class BlockingLeaseProvider(SqlLeaseChargeProvider):
    """Provider che si blocca al secondo contratto e lo segnala."""

    def __init__(self):
        self.calls = 0
        self.blocked = asyncio.Event()

    async def get_lease_context(self, db, lease_id):
        self.calls += 1
        if self.calls == 2:
            self.blocked.set()
            await asyncio.sleep(10)
        return await super().get_lease_context(db, lease_id)


@pytest.fixture
def run_service(session_factory, lease_provider, generation_service) -> InvoiceRunService:
    return InvoiceRunService(session_factory, lease_provider, generation_service)


def run_service_with(session_factory, lifecycle_service, provider, lease_timeout_seconds=None):
    """InvoiceRunService con un provider dedicato per batch e generazione."""
    generation_service = InvoiceGenerationService(
        provider,
        lifecycle_service,
        assign_number_on_generation=False,
        default_payment_term_days=0,
    )
    return InvoiceRunService(
        session_factory,
        provider,
        generation_service,
        lease_timeout_seconds=lease_timeout_seconds,
    )


async def count_drafts(session_factory, org_id) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(Invoice).where(Invoice.org_id == org_id)
        )
        return result.scalar_one()


# ============================================================
# Tests for execute
# ============================================================


class TestInvoiceRun:
    """Tests for generating drafts for every active lease."""

    async def test_all_active_leases_billed(self, db, org_id, rent_charge_type, run_service):
        """Test solo i contratti attivi vengono fatturati."""
        first = await create_lease(db, org_id)
        second = await create_lease(db, org_id, monthly_rent=Decimal("8500.00"))
        await create_lease(db, org_id, status="ended")

        run = await run_service.execute(db, org_id, JAN_START, JAN_END)

        assert run.status == "completed"
        assert run.total_leases == 2
        assert run.success_count == 2
        assert run.failure_count == 0
        assert run.run_number.startswith("RUN-202501-")
        assert {item.lease_id for item in run.items} == {first.id, second.id}
        assert all(item.invoice_id is not None for item in run.items)

    async def test_failure_does_not_stop_run(
        self, db, org_id, rent_charge_type, generation_service, lifecycle_service, run_service
    ):
        """Test un contratto già fatturato viene saltato, gli altri proseguono."""
        billed = await create_lease(db, org_id)
        await create_lease(db, org_id)
        draft = await generation_service.generate(db, billed.id, JAN_START, JAN_END)
        await lifecycle_service.issue(db, draft.id, draft.version)

        run = await run_service.execute(db, org_id, JAN_START, JAN_END)

        assert run.status == "completed_with_errors"
        assert run.success_count == 1
        assert run.failure_count == 1
        failed = next(item for item in run.items if not item.is_success)
        assert failed.lease_id == billed.id
        assert failed.error_code == "INVOICE_ALREADY_EXISTS"
        assert str(billed.id) in run.error_message

    async def test_rerun_regenerates_drafts(self, db, org_id, rent_charge_type, run_service):
        """Test una seconda esecuzione aggiorna le stesse bozze."""
        await create_lease(db, org_id)

        first = await run_service.execute(db, org_id, JAN_START, JAN_END)
        second = await run_service.execute(db, org_id, JAN_START, JAN_END)

        assert first.items[0].invoice_id == second.items[0].invoice_id
        assert first.run_number != second.run_number

    async def test_no_active_leases(self, db, org_id, run_service):
        """Test organizzazione senza contratti attivi."""
        run = await run_service.execute(db, org_id, JAN_START, JAN_END)

        assert run.status == "completed"
        assert run.total_leases == 0
        assert run.notes == "Nessun contratto attivo"

    async def test_inverted_period(self, db, org_id, run_service):
        """Test periodo invertito rifiutato."""
        with pytest.raises(InvalidArgumentError):
            await run_service.execute(db, org_id, JAN_END, JAN_START)


# ============================================================
# Tests for timeout and interruption
# ============================================================


class TestInvoiceRunInterruption:
    """Tests for the per-lease timeout and for cancelled runs."""

    async def test_timeout_applies_per_lease(
        self, db, session_factory, org_id, rent_charge_type, lifecycle_service
    ):
        """Test 5 contratti da 0.1s con limite 0.35s: il limite vale per contratto, non per il batch."""
        for _ in range(5):
            await create_lease(db, org_id)
        service = run_service_with(
            session_factory, lifecycle_service, DelayedLeaseProvider(0.1), lease_timeout_seconds=0.35
        )

        run = await service.execute(db, org_id, JAN_START, JAN_END)

        assert run.status == "completed"
        assert run.success_count == 5
        assert await count_drafts(session_factory, org_id) == 5

    async def test_slow_lease_recorded_as_failed(
        self, db, session_factory, org_id, rent_charge_type, lifecycle_service
    ):
        """Test contratto oltre il limite: esito fallito, gli altri proseguono."""
        slow = await create_lease(db, org_id)
        await create_lease(db, org_id)
        service = run_service_with(
            session_factory,
            lifecycle_service,
            DelayedLeaseProvider(5, slow_lease_ids={slow.id}),
            lease_timeout_seconds=0.05,
        )

        run = await service.execute(db, org_id, JAN_START, JAN_END)

        assert run.status == "completed_with_errors"
        assert run.success_count == 1
        failed = next(item for item in run.items if not item.is_success)
        assert failed.lease_id == slow.id
        assert failed.error_code == "LEASE_TIMEOUT"
        assert failed.invoice_id is None
        assert await count_drafts(session_factory, org_id) == 1

    async def test_cancelled_run_is_saved_as_interrupted(
        self, db, session_factory, org_id, rent_charge_type, lifecycle_service
    ):
        """Test esecuzione cancellata: record salvato come interrupted con gli esiti parziali."""
        for _ in range(3):
            await create_lease(db, org_id)
        provider = BlockingLeaseProvider()
        service = run_service_with(session_factory, lifecycle_service, provider)

        task = asyncio.create_task(service.execute(db, org_id, JAN_START, JAN_END))
        await asyncio.wait_for(provider.blocked.wait(), timeout=5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        async with session_factory() as session:
            runs = (
                await session.execute(select(InvoiceRun).where(InvoiceRun.org_id == org_id))
            ).scalars().all()

        assert len(runs) == 1
        assert runs[0].status == "interrupted"
        assert runs[0].total_leases == 3
        assert runs[0].success_count == 1
        assert len(runs[0].items) == 1
        assert runs[0].completed_at is not None
        assert "1 contratti su 3" in runs[0].error_message
        assert await count_drafts(session_factory, org_id) == 1


# ============================================================
# Tests for queries
# ============================================================


class TestInvoiceRunQueries:
    """Tests for reading past runs."""

    async def test_get_by_id_and_latest(self, db, org_id, run_service):
        """Test lettura per id e ultime esecuzioni."""
        run = await run_service.execute(db, org_id, JAN_START, JAN_END)

        assert (await run_service.get_by_id(db, run.id)).run_number == run.run_number
        assert [r.id for r in await run_service.get_latest(db, org_id)] == [run.id]

    async def test_get_unknown(self, db, run_service):
        """Test esecuzione inesistente."""
        with pytest.raises(NotFoundError):
            await run_service.get_by_id(db, uuid.uuid4())

    def test_run_number_format(self):
        """Test formato RUN-YYYYMM-XXXXXXXX."""
        number = generate_run_number(date(2025, 3, 1))

        assert number.startswith("RUN-202503-")
        assert len(number) == len("RUN-202503-") + 8

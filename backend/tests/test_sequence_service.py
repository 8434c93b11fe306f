"""
Tests for SequenceService and document number formatting.
"""

import asyncio
import uuid
from datetime import date

import pytest

from rent_billing.core.exceptions import BusinessRuleViolationError
from rent_billing.schemas.invoice import SequenceType
from rent_billing.services.sequence_service import SequenceService, format_document_number


# ============================================================
# Tests for next_sequence_number
# ============================================================


class TestNextSequenceNumber:
    """Tests for per-organization document counters."""

    async def test_first_numbers_are_consecutive(self, db, sequence_service, org_id):
        """Test i primi numeri sono 1, 2, 3."""
        values = [
            await sequence_service.next_sequence_number(db, org_id, SequenceType.INVOICE)
            for _ in range(3)
        ]
        await db.commit()

        assert values == [1, 2, 3]

    async def test_counter_survives_commit(self, db, sequence_service, org_id):
        """Test il contatore riprende dopo il commit."""
        await sequence_service.next_sequence_number(db, org_id, SequenceType.INVOICE)
        await db.commit()

        assert await sequence_service.next_sequence_number(db, org_id, SequenceType.INVOICE) == 2

    async def test_rollback_releases_number(self, db, sequence_service, org_id):
        """Test il rollback della transazione annulla l'incremento."""
        await sequence_service.next_sequence_number(db, org_id, SequenceType.INVOICE)
        await db.commit()
        await sequence_service.next_sequence_number(db, org_id, SequenceType.INVOICE)
        await db.rollback()

        assert await sequence_service.next_sequence_number(db, org_id, SequenceType.INVOICE) == 2

    async def test_organizations_are_independent(self, db, sequence_service):
        """Test organizzazioni diverse hanno contatori separati."""
        org_a, org_b = uuid.uuid4(), uuid.uuid4()

        await sequence_service.next_sequence_number(db, org_a, SequenceType.INVOICE)
        await sequence_service.next_sequence_number(db, org_a, SequenceType.INVOICE)

        assert await sequence_service.next_sequence_number(db, org_b, SequenceType.INVOICE) == 1

    async def test_document_types_are_independent(self, db, sequence_service, org_id):
        """Test fatture e note di credito hanno contatori separati."""
        await sequence_service.next_sequence_number(db, org_id, SequenceType.INVOICE)

        assert await sequence_service.next_sequence_number(db, org_id, SequenceType.CREDIT_NOTE) == 1

    async def test_exhausted_sequence(self, db, org_id):
        """Test superato il valore massimo viene sollevato SEQUENCE_EXHAUSTED."""
        service = SequenceService(max_value=2)
        await service.next_sequence_number(db, org_id, SequenceType.INVOICE)
        await service.next_sequence_number(db, org_id, SequenceType.INVOICE)

        with pytest.raises(BusinessRuleViolationError) as exc_info:
            await service.next_sequence_number(db, org_id, SequenceType.INVOICE)

        assert exc_info.value.error_code == "SEQUENCE_EXHAUSTED"


# ============================================================
# Tests for concurrent allocation
# ============================================================


class TestConcurrentSequence:
    """Tests for numbers drawn from separate sessions at the same time."""

    async def test_concurrent_sessions_get_distinct_numbers(self, session_factory, sequence_service, org_id):
        """Test 5 sessioni in parallelo ottengono 1..5 senza duplicati né buchi."""

        async def draw() -> int:
            async with session_factory() as session:
                value = await sequence_service.next_sequence_number(session, org_id, SequenceType.INVOICE)
                await session.commit()
                return value

        values = await asyncio.gather(*(draw() for _ in range(5)))

        assert sorted(values) == [1, 2, 3, 4, 5]

        async with session_factory() as session:
            assert await sequence_service.next_sequence_number(session, org_id, SequenceType.INVOICE) == 6


# ============================================================
# Tests for format_document_number
# ============================================================


class TestFormatDocumentNumber:
    """Tests for the PREFIX-YYYYMM-NNNNNN format."""

    def test_zero_padded(self):
        """Test numero con zeri iniziali a 6 cifre."""
        assert format_document_number("INV", date(2025, 1, 31), 42) == "INV-202501-000042"

    def test_month_from_document_date(self):
        """Test anno e mese presi dalla data documento."""
        assert format_document_number("ACME", date(2024, 12, 1), 1) == "ACME-202412-000001"

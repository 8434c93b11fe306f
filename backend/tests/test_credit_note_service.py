"""
Tests for CreditNoteService.

Note di credito sulla fattura di gennaio 2025 (canone 10000.00 più,
dove indicato, spese condominiali 500.00 con imposta al 18%).
"""

import uuid
from decimal import Decimal

import pytest

from conftest import JAN_END, JAN_START, add_recurring_charge, create_lease
from rent_billing.core.exceptions import (
    BusinessRuleViolationError,
    ConcurrencyConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from rent_billing.schemas.credit_note import CreditNoteCreate, CreditNoteLineRequest, CreditNoteReason
from rent_billing.schemas.payment import PaymentMode, PaymentRecord


def credit(
    invoice_id: uuid.UUID,
    *lines: tuple,
    reason: CreditNoteReason = CreditNoteReason.DISCOUNT,
) -> CreditNoteCreate:
    """Richiesta di nota di credito da coppie (riga fattura, importo)."""
    return CreditNoteCreate(
        invoice_id=invoice_id,
        reason=reason,
        lines=[CreditNoteLineRequest(invoice_line_id=line_id, amount=Decimal(amount)) for line_id, amount in lines],
    )


@pytest.fixture
async def taxed_invoice(db, lease, maintenance_charge_type, generation_service, lifecycle_service):
    """Fattura emessa con canone (10000.00) e spese tassate (590.00)."""
    await add_recurring_charge(db, lease, maintenance_charge_type, Decimal("500.00"), tax_rate=Decimal("18"))
    draft = await generation_service.generate(db, lease.id, JAN_START, JAN_END)
    return await lifecycle_service.issue(db, draft.id, draft.version)


# ============================================================
# Tests for create
# ============================================================


class TestCreateCreditNote:
    """Tests for creating numbered credit notes."""

    async def test_create_on_issued_invoice(self, db, issued_invoice, credit_note_service):
        """Test nota numerata con importi negativi e causale."""
        rent_line = issued_invoice.lines[0]

        credit_note = await credit_note_service.create(
            db, credit(issued_invoice.id, (rent_line.id, "1500.00")), created_by="operatore"
        )

        assert credit_note.credit_note_number == f"CN-{credit_note.credit_note_date:%Y%m}-000001"
        assert credit_note.org_id == issued_invoice.org_id
        assert credit_note.reason == "discount"
        assert credit_note.created_by == "operatore"
        assert credit_note.total_amount == Decimal("-1500.00")
        assert credit_note.issued_at is None
        assert len(credit_note.lines) == 1
        assert credit_note.lines[0].invoice_line_id == rent_line.id
        assert credit_note.lines[0].description.startswith("Storno: ")

    async def test_tax_split_follows_invoice_line(self, db, taxed_invoice, credit_note_service):
        """Test imposta stornata nella stessa proporzione della riga fattura."""
        maintenance = taxed_invoice.lines[1]

        credit_note = await credit_note_service.create(db, credit(taxed_invoice.id, (maintenance.id, "295.00")))

        line = credit_note.lines[0]
        assert line.total_amount == Decimal("-295.00")
        assert line.tax_amount == Decimal("-45.00")
        assert line.amount == Decimal("-250.00")

    async def test_numbers_are_sequential(self, db, issued_invoice, credit_note_service):
        """Test numerazione progressiva, indipendente da quella delle fatture."""
        line_id = issued_invoice.lines[0].id

        first = await credit_note_service.create(db, credit(issued_invoice.id, (line_id, "100.00")))
        second = await credit_note_service.create(db, credit(issued_invoice.id, (line_id, "100.00")))

        assert first.credit_note_number.endswith("-000001")
        assert second.credit_note_number.endswith("-000002")
        assert issued_invoice.invoice_number.endswith("-000001")

    async def test_invoice_totals_unchanged(self, db, issued_invoice, credit_note_service, lifecycle_service):
        """Test la nota non modifica totali e saldo della fattura."""
        await credit_note_service.create(db, credit(issued_invoice.id, (issued_invoice.lines[0].id, "2000.00")))

        invoice = await lifecycle_service.get_invoice(db, issued_invoice.id, for_update=True)

        assert invoice.total_amount == Decimal("10000.00")
        assert invoice.balance_amount == Decimal("10000.00")
        assert invoice.status == "issued"

    async def test_paid_invoice_accepted(self, db, issued_invoice, payment_service, credit_note_service):
        """Test nota di credito su fattura pagata."""
        await payment_service.record_payment(
            db,
            PaymentRecord(
                invoice_id=issued_invoice.id,
                payment_mode=PaymentMode.CASH,
                amount=Decimal("10000.00"),
                payment_date=JAN_END,
            ),
        )

        credit_note = await credit_note_service.create(
            db, credit(issued_invoice.id, (issued_invoice.lines[0].id, "500.00"), reason=CreditNoteReason.REFUND)
        )

        assert credit_note.reason == "refund"

    async def test_draft_invoice_rejected(self, db, draft_invoice, credit_note_service):
        """Test bozza non stornabile."""
        with pytest.raises(InvalidStateError):
            await credit_note_service.create(db, credit(draft_invoice.id, (draft_invoice.lines[0].id, "10.00")))

    async def test_voided_invoice_rejected(self, db, issued_invoice, lifecycle_service, credit_note_service):
        """Test fattura annullata non stornabile."""
        line_id = issued_invoice.lines[0].id
        await lifecycle_service.void(db, issued_invoice.id, issued_invoice.version, "Emessa per errore")

        with pytest.raises(InvalidStateError):
            await credit_note_service.create(db, credit(issued_invoice.id, (line_id, "10.00")))

    async def test_line_of_other_invoice(
        self, db, org_id, issued_invoice, generation_service, lifecycle_service, credit_note_service
    ):
        """Test riga appartenente a un'altra fattura rifiutata."""
        other_lease = await create_lease(db, org_id)
        other_draft = await generation_service.generate(db, other_lease.id, JAN_START, JAN_END)
        other = await lifecycle_service.issue(db, other_draft.id, other_draft.version)

        with pytest.raises(InvalidArgumentError) as exc_info:
            await credit_note_service.create(db, credit(issued_invoice.id, (other.lines[0].id, "10.00")))

        assert exc_info.value.error_code == "INVOICE_LINE_NOT_FOUND"

    async def test_non_positive_amount(self, db, issued_invoice, credit_note_service):
        """Test importo zero o negativo rifiutato."""
        line_id = issued_invoice.lines[0].id

        with pytest.raises(InvalidArgumentError):
            await credit_note_service.create(db, credit(issued_invoice.id, (line_id, "0")))
        with pytest.raises(InvalidArgumentError):
            await credit_note_service.create(db, credit(issued_invoice.id, (line_id, "-10.00")))

    async def test_cumulative_credit_over_line_total(self, db, issued_invoice, credit_note_service):
        """Test il residuo stornabile tiene conto delle note precedenti."""
        line_id = issued_invoice.lines[0].id
        await credit_note_service.create(db, credit(issued_invoice.id, (line_id, "7000.00")))

        with pytest.raises(BusinessRuleViolationError) as exc_info:
            await credit_note_service.create(db, credit(issued_invoice.id, (line_id, "3000.01")))

        assert exc_info.value.error_code == "CREDIT_EXCEEDS_LINE"
        assert exc_info.value.extra["available"] == "3000.00"

        rest = await credit_note_service.create(db, credit(issued_invoice.id, (line_id, "3000.00")))
        assert rest.total_amount == Decimal("-3000.00")

    async def test_same_line_twice_in_one_request(self, db, issued_invoice, credit_note_service):
        """Test più righe sulla stessa riga fattura sommate nella stessa richiesta."""
        line_id = issued_invoice.lines[0].id

        with pytest.raises(BusinessRuleViolationError):
            await credit_note_service.create(
                db, credit(issued_invoice.id, (line_id, "6000.00"), (line_id, "4000.01"))
            )

        assert await credit_note_service.get_by_invoice(db, issued_invoice.id) == []

    async def test_invoice_not_found(self, db, credit_note_service):
        """Test fattura inesistente."""
        with pytest.raises(NotFoundError):
            await credit_note_service.create(db, credit(uuid.uuid4(), (uuid.uuid4(), "10.00")))


# ============================================================
# Tests for issue
# ============================================================


class TestIssueCreditNote:
    """Tests for issuing a credit note."""

    async def test_issue(self, db, issued_invoice, credit_note_service):
        """Test emissione: data di emissione valorizzata, seconda emissione rifiutata."""
        created = await credit_note_service.create(db, credit(issued_invoice.id, (issued_invoice.lines[0].id, "10.00")))

        credit_note = await credit_note_service.issue(db, created.id, created.version)

        assert credit_note.is_issued
        with pytest.raises(InvalidStateError):
            await credit_note_service.issue(db, credit_note.id, credit_note.version)

    async def test_issue_requires_version(self, db, issued_invoice, credit_note_service):
        """Test emissione senza versione rifiutata."""
        created = await credit_note_service.create(db, credit(issued_invoice.id, (issued_invoice.lines[0].id, "10.00")))

        with pytest.raises(InvalidArgumentError) as exc_info:
            await credit_note_service.issue(db, created.id, None)

        assert exc_info.value.error_code == "VERSION_REQUIRED"
        assert not created.is_issued

    async def test_stale_version(self, db, issued_invoice, credit_note_service):
        """Test versione obsoleta."""
        created = await credit_note_service.create(db, credit(issued_invoice.id, (issued_invoice.lines[0].id, "10.00")))

        with pytest.raises(ConcurrencyConflictError):
            await credit_note_service.issue(db, created.id, created.version + 1)

    async def test_unknown_credit_note(self, db, credit_note_service):
        """Test nota inesistente."""
        with pytest.raises(NotFoundError):
            await credit_note_service.issue(db, uuid.uuid4(), 1)


# ============================================================
# Tests for reads
# ============================================================


class TestCreditNoteReads:
    """Tests for listing credit notes and credited totals."""

    async def test_by_invoice_and_credited_total(self, db, taxed_invoice, credit_note_service):
        """Test elenco per fattura e totale stornato per riga."""
        rent, maintenance = taxed_invoice.lines
        await credit_note_service.create(db, credit(taxed_invoice.id, (rent.id, "1000.00"), (maintenance.id, "590.00")))
        await credit_note_service.create(db, credit(taxed_invoice.id, (rent.id, "250.50")))

        notes = await credit_note_service.get_by_invoice(db, taxed_invoice.id)

        assert [n.credit_note_number[-6:] for n in notes] == ["000001", "000002"]
        assert await credit_note_service.credited_total(db, rent.id) == Decimal("1250.50")
        assert await credit_note_service.credited_total(db, maintenance.id) == Decimal("590.00")

    async def test_by_unknown_invoice(self, db, credit_note_service):
        """Test fattura inesistente."""
        with pytest.raises(NotFoundError):
            await credit_note_service.get_by_invoice(db, uuid.uuid4())

"""
Service Layer per la numerazione documenti
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Assegna numeri progressivi per (organizzazione, tipo documento).
L'incremento è un singolo UPDATE ... RETURNING: il lock di riga resta
attivo fino a fine transazione del chiamante, quindi due transazioni
concorrenti sullo stesso contatore non ottengono mai lo stesso valore.
Contatori diversi non si bloccano a vicenda.
"""

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from rent_billing.core.config import settings
from rent_billing.core.exceptions import BusinessRuleViolationError
from rent_billing.models.sequence import NumberSequence
from rent_billing.schemas.invoice import SequenceType

logger = logging.getLogger(__name__)


class SequenceService:
    """Service per i contatori dei numeri documento."""

    def __init__(self, max_value: Optional[int] = None):
        self.max_value = max_value if max_value is not None else settings.billing_sequence_max_value

    async def next_sequence_number(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        sequence_type: SequenceType,
    ) -> int:
        """
        Restituisce il prossimo numero della sequenza.

        Il valore è consumato nella transazione del chiamante: se questa
        esegue il rollback, anche l'incremento viene annullato.

        Args:
            db: Sessione database async
            org_id: UUID organizzazione
            sequence_type: Tipo documento

        Returns:
            int: Numero assegnato (1 per il primo documento)

        Raises:
            BusinessRuleViolationError: Sequenza esaurita
        """
        value = await self._increment(db, org_id, sequence_type)
        if value is None:
            # Primo numero per questo contatore: crea la riga (idempotente) e ripeti
            await self._ensure_sequence_row(db, org_id, sequence_type)
            value = await self._increment(db, org_id, sequence_type)

        if value is None:
            raise RuntimeError(f"Contatore {sequence_type.value} non disponibile per org {org_id}")

        if value > self.max_value:
            raise BusinessRuleViolationError(
                f"Sequenza {sequence_type.value} esaurita (massimo {self.max_value})",
                error_code="SEQUENCE_EXHAUSTED",
                extra={"org_id": str(org_id), "sequence_type": sequence_type.value},
            )

        logger.debug("Sequenza %s/%s -> %s", org_id, sequence_type.value, value)
        return value

    async def _increment(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        sequence_type: SequenceType,
    ) -> Optional[int]:
        stmt = (
            update(NumberSequence)
            .where(
                NumberSequence.org_id == org_id,
                NumberSequence.sequence_type == sequence_type.value,
            )
            .values(
                last_value=NumberSequence.last_value + 1,
                updated_at=func.now(),
            )
            .returning(NumberSequence.last_value)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def _ensure_sequence_row(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        sequence_type: SequenceType,
    ) -> None:
        dialect = db.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert(NumberSequence)
            .values(
                id=uuid.uuid4(),
                org_id=org_id,
                sequence_type=sequence_type.value,
                last_value=0,
            )
            .on_conflict_do_nothing(index_elements=["org_id", "sequence_type"])
        )
        await db.execute(stmt)


def format_document_number(prefix: str, document_date: date, sequence: int) -> str:
    """
    Formatta il numero documento: PREFIX-YYYYMM-NNNNNN.

    Esempio: format_document_number("INV", date(2025, 1, 31), 42) -> "INV-202501-000042"
    """
    return f"{prefix}-{document_date:%Y%m}-{sequence:06d}"

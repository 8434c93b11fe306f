"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Definisce engine, session factory e il commit dell'unità di lavoro
con traduzione degli errori di persistenza in eccezioni di dominio.
"""

import logging

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm.exc import StaleDataError

from rent_billing.core.config import settings
from rent_billing.core.exceptions import (
    BusinessRuleViolationError,
    ConcurrencyConflictError,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Crea la session factory usata dal BillingEngine.

    expire_on_commit=False: gli oggetti restituiti restano leggibili
    dopo il commit senza nuovi round-trip.
    """
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,  # Log query in modalità debug
    pool_pre_ping=True,   # Verifica connessione prima di usarla
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
AsyncSessionLocal = create_session_factory(engine)


async def commit_or_raise(db: AsyncSession, operation: str) -> None:
    """
    Esegue il commit dell'unità di lavoro corrente.

    In caso di errore esegue il rollback e solleva l'eccezione di dominio:
    - StaleDataError (version_id_col) -> ConcurrencyConflictError
    - IntegrityError su vincolo unique -> ConcurrencyConflictError
    - IntegrityError su altri vincoli (check, FK) -> BusinessRuleViolationError

    Args:
        db: Sessione database async
        operation: Nome dell'operazione (solo per log e dettagli errore)

    Raises:
        ConcurrencyConflictError: Modifica concorrente o duplicato
        BusinessRuleViolationError: Vincolo di integrità violato
    """
    try:
        await db.commit()
    except (StaleDataError, IntegrityError) as e:
        await db.rollback()
        raise _translate_persistence_error(e, operation) from e


async def flush_or_raise(db: AsyncSession, operation: str) -> None:
    """Come commit_or_raise, per i flush intermedi della stessa unità di lavoro."""
    try:
        await db.flush()
    except (StaleDataError, IntegrityError) as e:
        await db.rollback()
        raise _translate_persistence_error(e, operation) from e


def _translate_persistence_error(e: Exception, operation: str) -> Exception:
    if isinstance(e, StaleDataError):
        logger.warning("Conflitto di versione durante %s: %s", operation, e)
        return ConcurrencyConflictError(extra={"operation": operation})

    message = str(getattr(e, "orig", e)).lower()
    if "unique" in message or "duplicate" in message:
        logger.warning("Vincolo unique violato durante %s: %s", operation, message)
        return ConcurrencyConflictError(
            "Operazione concorrente sulla stessa risorsa. Ricaricare e riprovare.",
            extra={"operation": operation},
        )
    logger.error("Errore integrità durante %s: %s", operation, message)
    return BusinessRuleViolationError(
        "Vincolo di integrità dei dati violato",
        extra={"operation": operation},
    )


async def init_db() -> None:
    """
    Inizializza la connessione al database.

    Esegue un test di connessione per verificare
    che il database sia raggiungibile.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def close_db() -> None:
    """
    Chiude le connessioni al database.
    """
    await engine.dispose()
    logger.info("Connessioni database chiuse")

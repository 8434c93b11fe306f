"""
Eccezioni Custom per il motore di fatturazione.
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Definisce la tassonomia degli errori di dominio. I servizi sollevano
queste eccezioni; il BillingEngine le converte in OperationResult
falliti, così i chiamanti non devono mai interpretare i messaggi.

NOTA: InvalidArgumentError è distinta da pydantic.ValidationError.
- pydantic.ValidationError: errori di formato/tipo nei dati di input
  (il BillingEngine li riporta come INVALID_ARGUMENT)
- InvalidArgumentError: argomenti formalmente validi ma non accettabili
  (es. periodo con fine prima dell'inizio, motivo di annullo vuoto)
"""

from enum import Enum
from typing import Any, Dict, Optional

__all__ = [
    "ErrorKind",
    "AppException",
    "InvalidArgumentError",
    "NotFoundError",
    "InvalidStateError",
    "BusinessRuleViolationError",
    "ConcurrencyConflictError",
    "ServiceUnavailableError",
]


class ErrorKind(str, Enum):
    """Categorie di errore esposte ai chiamanti."""
    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    BUSINESS_RULE_VIOLATION = "business_rule_violation"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    SERVICE_UNAVAILABLE = "service_unavailable"


class AppException(Exception):
    """
    Base exception per il motore.

    Attributes:
        kind: Categoria dell'errore (ErrorKind)
        status_code: HTTP status code suggerito per un eventuale livello API
        error_code: Identificativo univoco dell'errore
        detail: Messaggio di errore leggibile
        extra: Dizionario con dati aggiuntivi (id, importi, versioni)
    """

    kind: ErrorKind = ErrorKind.SERVICE_UNAVAILABLE
    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi (default: None)
        """
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class InvalidArgumentError(ValueError, AppException):
    """
    Argomento non valido passato a un'operazione.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    Esempi di utilizzo:
        - "La fine del periodo non può precedere l'inizio"
        - "Riferimento transazione obbligatorio per pagamenti non in contanti"
    """

    kind = ErrorKind.INVALID_ARGUMENT
    status_code: int = 400
    error_code: str = "INVALID_ARGUMENT"

    def __init__(
        self,
        detail: str = "Argomento non valido",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


class NotFoundError(AppException):
    """
    Eccezione sollevata quando una risorsa non viene trovata.
    """

    kind = ErrorKind.NOT_FOUND
    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Risorsa non trovata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class InvalidStateError(AppException):
    """
    Operazione non consentita nello stato corrente della risorsa.

    Esempi di utilizzo:
        - "Solo fatture in bozza possono essere emesse"
        - "La richiesta è già stata confermata"
    """

    kind = ErrorKind.INVALID_STATE
    status_code: int = 409
    error_code: str = "INVALID_STATE"

    def __init__(
        self,
        detail: str = "Stato non valido per l'operazione",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessRuleViolationError(AppException):
    """
    Violazione di una regola finanziaria.

    Esempi di utilizzo:
        - "L'importo supera il saldo residuo"
        - "Impossibile emettere una fattura senza righe"
    """

    kind = ErrorKind.BUSINESS_RULE_VIOLATION
    status_code: int = 422
    error_code: str = "BUSINESS_RULE_VIOLATION"

    def __init__(
        self,
        detail: str = "Regola di business violata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ConcurrencyConflictError(AppException):
    """
    Modifica concorrente rilevata (versione obsoleta o vincolo unique).

    Il chiamante deve rileggere la risorsa e ritentare.
    """

    kind = ErrorKind.CONCURRENCY_CONFLICT
    status_code: int = 409
    error_code: str = "CONCURRENCY_CONFLICT"

    def __init__(
        self,
        detail: str = "La risorsa è stata modificata da un altro utente. Ricaricare e riprovare.",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ServiceUnavailableError(AppException):
    """
    Errore infrastrutturale (database non raggiungibile, connessione persa).

    Non viene convertita in OperationResult: si propaga al chiamante.
    """

    kind = ErrorKind.SERVICE_UNAVAILABLE
    status_code: int = 503
    error_code: str = "SERVICE_UNAVAILABLE"

    def __init__(
        self,
        detail: str = "Servizio temporaneamente non disponibile",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)

"""
Risultato tipizzato delle operazioni del motore
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Ogni operazione pubblica del BillingEngine restituisce un OperationResult:
valore in caso di successo, categoria + codice errore altrimenti.
"""

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from rent_billing.core.exceptions import AppException, ErrorKind

T = TypeVar("T")


class OperationResult(BaseModel, Generic[T]):
    """Esito di un'operazione: successo con valore oppure errore tipizzato."""

    value: Optional[T] = Field(default=None, description="Valore restituito in caso di successo")
    error_kind: Optional[ErrorKind] = Field(default=None, description="Categoria errore")
    error_code: Optional[str] = Field(default=None, description="Codice errore univoco")
    detail: Optional[str] = Field(default=None, description="Messaggio leggibile")
    extra: Optional[Dict[str, Any]] = Field(default=None, description="Dati aggiuntivi sull'errore")

    model_config = ConfigDict(frozen=True)

    @property
    def is_success(self) -> bool:
        return self.error_kind is None

    @classmethod
    def ok(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, exc: AppException) -> "OperationResult[T]":
        return cls(
            error_kind=exc.kind,
            error_code=exc.error_code,
            detail=exc.detail,
            extra=exc.extra,
        )
